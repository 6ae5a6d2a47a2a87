"""
Rate limit manager for the GitHub Stars Notify polling system.

This module probes the GitHub API quota, exports it as metrics and keeps the
last known status for the status endpoint.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from ..exceptions import RemoteError
from ..github_client import RetryingGitHubClient
from ..metrics import StarsMetrics

logger = structlog.get_logger(__name__)

LOW_REMAINING_THRESHOLD = 10


@dataclass(frozen=True)
class RateLimitStatus:
    """Rate limit status information."""

    remaining: int
    limit: int
    reset_time: datetime
    checked_at: datetime

    @property
    def usage_percentage(self) -> float:
        return 1.0 - (self.remaining / self.limit) if self.limit > 0 else 0.0

    @property
    def is_low(self) -> bool:
        return self.remaining < LOW_REMAINING_THRESHOLD

    def to_dict(self) -> dict[str, Any]:
        return {
            "remaining": self.remaining,
            "limit": self.limit,
            "reset": self.reset_time.isoformat(),
        }


class RateLimitManager:
    """
    Manager for GitHub API rate limit monitoring.

    The GitHub client can be swapped at runtime when credentials change.
    """

    def __init__(
        self, github_client: RetryingGitHubClient, metrics: StarsMetrics | None = None
    ):
        """
        Initialize the rate limit manager.

        Args:
            github_client: GitHub API client
            metrics: Optional metrics sink
        """
        self.github_client = github_client
        self.metrics = metrics
        self._cached_status: RateLimitStatus | None = None

    @property
    def last_status(self) -> RateLimitStatus | None:
        return self._cached_status

    async def check_rate_limits(self) -> RateLimitStatus | None:
        """
        Probe the current GitHub API quota.

        Failures are logged and leave the last known status in place.

        Returns:
            Fresh rate limit status, or None if the probe failed
        """
        try:
            rate_limit = await self.github_client.get_rate_limit()
        except RemoteError as e:
            logger.warning("Rate limit check failed", error=str(e))
            return None

        status = RateLimitStatus(
            remaining=rate_limit.remaining,
            limit=rate_limit.limit,
            reset_time=rate_limit.reset,
            checked_at=datetime.now(UTC),
        )
        self._cached_status = status

        if self.metrics:
            self.metrics.record_rate_limit(status.limit, status.remaining)

        logger.info(
            "Rate limit status",
            remaining=status.remaining,
            limit=status.limit,
            reset=status.reset_time.isoformat(),
        )
        if status.is_low:
            logger.warning("Low API rate limit remaining", remaining=status.remaining)

        return status
