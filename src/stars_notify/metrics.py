"""
Prometheus metrics for GitHub Stars Notify.

This module owns every collector the service exports on ``/metrics``. All
collectors live in one ``CollectorRegistry`` so tests can build an isolated
instance instead of touching the process-wide default registry.
"""

import time

import structlog
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = structlog.get_logger(__name__)


class StarsMetrics:
    """Collectors for checks, GitHub API usage, notifications and uptime."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize metrics.

        Args:
            registry: Optional custom registry for test isolation
        """
        self.registry = registry or CollectorRegistry()
        self._start_time = time.time()

        self.stars_total = Gauge(
            "github_stars_total",
            "Total number of stars for repositories",
            ["owner", "repo"],
            registry=self.registry,
        )
        self.new_stars_total = Counter(
            "github_stars_new_total",
            "Total number of new stars detected",
            ["owner", "repo"],
            registry=self.registry,
        )
        self.check_duration = Histogram(
            "github_stars_check_duration_seconds",
            "Duration of repository star checks",
            ["owner", "repo"],
            registry=self.registry,
        )
        self.last_check_timestamp = Gauge(
            "github_stars_last_check_timestamp",
            "Timestamp of the last successful check",
            ["owner", "repo"],
            registry=self.registry,
        )
        self.checks_total = Counter(
            "github_stars_checks_total",
            "Total number of repository checks",
            ["owner", "repo", "status"],
            registry=self.registry,
        )
        self.check_errors_total = Counter(
            "github_stars_check_errors_total",
            "Total number of check errors",
            ["owner", "repo", "error_type"],
            registry=self.registry,
        )

        self.api_requests_total = Counter(
            "github_api_requests_total",
            "Total number of GitHub API requests",
            ["endpoint", "status"],
            registry=self.registry,
        )
        self.api_errors_total = Counter(
            "github_api_errors_total",
            "Total number of GitHub API errors",
            ["endpoint", "error_type"],
            registry=self.registry,
        )
        self.rate_limit_limit = Gauge(
            "github_api_rate_limit_limit",
            "GitHub API rate limit",
            ["resource"],
            registry=self.registry,
        )
        self.rate_limit_remaining = Gauge(
            "github_api_rate_limit_remaining",
            "GitHub API rate limit remaining",
            ["resource"],
            registry=self.registry,
        )

        self.notifications_sent_total = Counter(
            "notifications_sent_total",
            "Total number of notification attempts",
            ["provider", "status"],
            registry=self.registry,
        )
        self.notification_errors_total = Counter(
            "notification_errors_total",
            "Total number of notification errors",
            ["provider", "error_type"],
            registry=self.registry,
        )
        self.notification_latency = Histogram(
            "notification_latency_seconds",
            "Latency of notification delivery",
            ["provider"],
            registry=self.registry,
        )

        self.uptime_seconds = Gauge(
            "github_stars_service_uptime_seconds",
            "Service uptime in seconds",
            registry=self.registry,
        )
        self.start_time_timestamp = Gauge(
            "github_stars_service_start_time_timestamp",
            "Service start time as unix timestamp",
            registry=self.registry,
        )
        self.config_reloads_total = Counter(
            "config_reloads_total",
            "Total number of configuration reload attempts",
            ["status"],
            registry=self.registry,
        )

        self.start_time_timestamp.set(self._start_time)

    def record_stars_count(self, owner: str, repo: str, count: int) -> None:
        self.stars_total.labels(owner=owner, repo=repo).set(count)

    def record_new_stars(self, owner: str, repo: str, count: int) -> None:
        if count > 0:
            self.new_stars_total.labels(owner=owner, repo=repo).inc(count)

    def record_check(
        self, owner: str, repo: str, duration: float, success: bool
    ) -> None:
        """Record the outcome of one repository check."""
        status = "success" if success else "error"
        self.checks_total.labels(owner=owner, repo=repo, status=status).inc()
        self.check_duration.labels(owner=owner, repo=repo).observe(duration)
        if success:
            self.last_check_timestamp.labels(owner=owner, repo=repo).set(time.time())

    def record_check_error(self, owner: str, repo: str, error_type: str) -> None:
        self.check_errors_total.labels(
            owner=owner, repo=repo, error_type=error_type
        ).inc()

    def record_api_request(self, endpoint: str, status_code: int) -> None:
        self.api_requests_total.labels(
            endpoint=endpoint, status=str(status_code)
        ).inc()

    def record_api_error(self, endpoint: str, error_type: str) -> None:
        self.api_errors_total.labels(endpoint=endpoint, error_type=error_type).inc()

    def record_rate_limit(
        self, limit: int, remaining: int, resource: str = "core"
    ) -> None:
        self.rate_limit_limit.labels(resource=resource).set(limit)
        self.rate_limit_remaining.labels(resource=resource).set(remaining)

    def record_notification_attempt(self, provider: str, success: bool) -> None:
        status = "success" if success else "failed"
        self.notifications_sent_total.labels(provider=provider, status=status).inc()

    def record_notification_error(self, provider: str, error_type: str) -> None:
        self.notification_errors_total.labels(
            provider=provider, error_type=error_type
        ).inc()

    def record_notification_latency(self, provider: str, duration: float) -> None:
        self.notification_latency.labels(provider=provider).observe(duration)

    def record_config_reload(self, status: str) -> None:
        self.config_reloads_total.labels(status=status).inc()

    def update_uptime(self) -> float:
        """Refresh and return the uptime gauge."""
        uptime = time.time() - self._start_time
        self.uptime_seconds.set(uptime)
        return uptime

    def render(self) -> bytes:
        """Render all collectors in the Prometheus text exposition format."""
        self.update_uptime()
        return generate_latest(self.registry)


_metrics_instance: StarsMetrics | None = None


def get_metrics() -> StarsMetrics:
    """Get the global metrics instance."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = StarsMetrics()
        logger.debug("Metrics registry initialized")
    return _metrics_instance


def reset_metrics() -> None:
    """Reset the global metrics instance."""
    global _metrics_instance
    _metrics_instance = None
