"""
Polling orchestrator for GitHub Stars Notify.

This module runs the periodic check loop: fetch the stargazers of every
configured repository, diff them against stored state, notify every provider
about new stargazers and persist the observation. The loop cadence and its
collaborators can be replaced at runtime through configuration reload.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from ..config import (
    CHANGE_LOG_FORMAT,
    CHANGE_LOG_LEVEL,
    CHANGE_SERVER,
    CHANGE_STORAGE,
    Config,
    GitHubConfig,
    NotificationsConfig,
    ProviderSettings,
    StorageConfig,
    detect_changes,
)
from ..config_reloader import ConfigReloader
from ..exceptions import RemoteError, ServiceError, StorageError
from ..github_client import GitHubClient, RetryingGitHubClient
from ..logging_config import setup_logging
from ..metrics import StarsMetrics, get_metrics
from ..notify import Notifier, build_notifier
from ..state import StateStore, create_state_store
from .rate_limiter import RateLimitManager

logger = structlog.get_logger(__name__)

GITHUB_MAX_RETRIES = 3
GITHUB_RETRY_BACKOFF = 2.0

ClientFactory = Callable[[GitHubConfig], RetryingGitHubClient]
NotifierFactory = Callable[[ProviderSettings, NotificationsConfig], Notifier]
StoreFactory = Callable[[StorageConfig], StateStore]


def _delivery_tuning(config: NotificationsConfig) -> tuple[float, ...]:
    return (
        config.max_retries,
        config.retry_backoff_seconds,
        config.rate_limit_seconds,
        config.timeout_seconds,
    )


class IntervalUpdateSignal:
    """
    Single-slot mailbox carrying a new check interval to the polling loop.

    Posting overwrites any value not yet consumed, so the loop always sees
    the most recent interval.
    """

    def __init__(self) -> None:
        self._value: timedelta | None = None
        self._event = asyncio.Event()

    def post(self, interval: timedelta) -> None:
        self._value = interval
        self._event.set()

    @property
    def pending(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float | None = None) -> timedelta | None:
        """
        Wait for a posted interval and consume it.

        Returns:
            The posted interval, or None if the timeout elapsed first
        """
        if not self._event.is_set():
            try:
                await asyncio.wait_for(self._event.wait(), timeout)
            except TimeoutError:
                return None
        self._event.clear()
        value, self._value = self._value, None
        return value


def create_github_client(
    config: GitHubConfig, metrics: StarsMetrics | None = None
) -> RetryingGitHubClient:
    return RetryingGitHubClient(
        GitHubClient(config, metrics=metrics),
        max_retries=GITHUB_MAX_RETRIES,
        backoff=GITHUB_RETRY_BACKOFF,
    )


class PollingOrchestrator:
    """
    Orchestrates periodic stargazer checks across repositories.

    Every collaborator is read once per use, so a reload that swaps the
    GitHub client, a notifier or the state store takes effect on the next
    repository check. Replaced clients are closed once no check is running.
    """

    def __init__(
        self,
        reloader: ConfigReloader,
        metrics: StarsMetrics | None = None,
        github_client: RetryingGitHubClient | None = None,
        notifiers: dict[str, Notifier] | None = None,
        state_store: StateStore | None = None,
        client_factory: ClientFactory | None = None,
        notifier_factory: NotifierFactory | None = None,
        store_factory: StoreFactory | None = None,
    ):
        """
        Initialize the polling orchestrator.

        Args:
            reloader: Owner of the live configuration
            metrics: Metrics sink, defaults to the global metrics
            github_client: GitHub client, built from config when omitted
            notifiers: Notifiers keyed by provider, built from config when omitted
            state_store: State store, built from config when omitted
            client_factory: Builds GitHub clients on credential changes
            notifier_factory: Builds notifiers on notification changes
            store_factory: Builds state stores on storage changes
        """
        self.reloader = reloader
        self.metrics = metrics or get_metrics()
        self._client_factory = client_factory or (
            lambda cfg: create_github_client(cfg, self.metrics)
        )
        self._notifier_factory = notifier_factory or (
            lambda settings, tuning: build_notifier(settings, tuning, self.metrics)
        )
        self._store_factory = store_factory or create_state_store

        config = reloader.get_config()
        self.github_client = github_client or self._client_factory(config.github)
        if notifiers is None:
            notifiers = {
                provider.name: self._notifier_factory(provider, config.notifications)
                for provider in config.notifications.enabled_providers()
            }
        self.notifiers = notifiers
        self.state_store = state_store or self._store_factory(config.storage)

        self.rate_limiter = RateLimitManager(self.github_client, self.metrics)
        self.interval_signal = IntervalUpdateSignal()

        self.is_running_flag = False
        self.polling_task: asyncio.Task[None] | None = None
        self.start_time = datetime.now(UTC)

        self._active_checks = 0
        self._retired: list[Any] = []

    def is_running(self) -> bool:
        """Check if polling is currently active."""
        return self.is_running_flag

    async def start_polling(self) -> None:
        """
        Start the polling process.

        Initializes storage and probes every notifier first; either failing
        is fatal. Then runs the check loop until cancelled.

        Raises:
            ServiceError: If startup fails
        """
        if self.is_running_flag:
            logger.warning("Polling already running")
            return

        try:
            await self.state_store.initialize()
        except StorageError as e:
            raise ServiceError(
                f"failed to initialize storage: {e}", component="storage"
            ) from e

        for name, notifier in list(self.notifiers.items()):
            logger.info("Testing notification connection", provider=name)
            try:
                await notifier.probe()
            except Exception as e:
                self.metrics.record_notification_error(name, "connection_test_failed")
                logger.error(
                    "Notification connection test failed", provider=name, error=str(e)
                )
                raise ServiceError(
                    f"failed to test {name} connection: {e}", component="notification"
                ) from e
            logger.info("Notification connection test successful", provider=name)

        await self.rate_limiter.check_rate_limits()

        config = self.reloader.get_config()
        self.is_running_flag = True
        self.start_time = datetime.now(UTC)
        logger.info(
            "Starting polling orchestrator",
            repositories=len(config.repositories),
            check_interval=str(config.check_interval),
            notifiers=list(self.notifiers),
        )

        self.polling_task = asyncio.create_task(
            self._polling_loop(config.check_interval), name="polling-loop"
        )
        try:
            await self.polling_task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.info("Polling cancelled")
        finally:
            self.is_running_flag = False
            await self._close_retired()

    async def stop_polling(self) -> None:
        """Stop the polling process."""
        if not self.is_running_flag:
            return

        logger.info("Stopping polling orchestrator")
        self.is_running_flag = False

        if self.polling_task and not self.polling_task.done():
            self.polling_task.cancel()
            try:
                await self.polling_task
            except asyncio.CancelledError:
                pass

    async def _polling_loop(self, initial_interval: timedelta) -> None:
        """Main polling loop."""
        loop = asyncio.get_running_loop()
        interval = initial_interval.total_seconds()
        next_tick = loop.time() + interval

        while True:
            posted = await self.interval_signal.wait(
                max(0.0, next_tick - loop.time())
            )

            if posted is not None:
                new_interval = posted.total_seconds()
                if new_interval != interval:
                    logger.info(
                        "Check interval updated immediately",
                        old_interval=str(timedelta(seconds=interval)),
                        new_interval=str(posted),
                    )
                    interval = new_interval
                    next_tick = loop.time() + interval
                continue

            await self.run_check_cycle()
            self.metrics.update_uptime()

            next_tick += interval
            now = loop.time()
            while next_tick <= now:
                next_tick += interval

    @asynccontextmanager
    async def _check_in_progress(self) -> AsyncIterator[None]:
        self._active_checks += 1
        try:
            yield
        finally:
            self._active_checks -= 1
            if not self._active_checks:
                await self._close_retired()

    def _retire(self, resource: Any) -> None:
        self._retired.append(resource)

    async def _close_retired(self) -> None:
        retired, self._retired = self._retired, []
        for resource in retired:
            try:
                close = getattr(resource, "aclose", None) or resource.close
                await close()
            except Exception as e:
                logger.warning(
                    "Failed to close replaced client",
                    client=type(resource).__name__,
                    error=str(e),
                )

    async def run_check_cycle(self) -> None:
        """Check every configured repository once, then refresh the quota."""
        config = self.reloader.get_config()
        logger.info(
            "Repository check cycle started",
            repositories=len(config.repositories),
            check_interval=str(config.check_interval),
        )

        async with self._check_in_progress():
            for repository in config.repositories:
                started = time.monotonic()
                try:
                    await self.check_repository(repository.owner, repository.repo)
                except Exception as e:
                    logger.error(
                        "Repository check failed",
                        repository=repository.full_name,
                        error=str(e),
                    )
                    self.metrics.record_check(
                        repository.owner,
                        repository.repo,
                        time.monotonic() - started,
                        success=False,
                    )

            await self.rate_limiter.check_rate_limits()

        logger.info("Repository check cycle completed")

    async def check_repository(self, owner: str, repo: str) -> None:
        """
        Check one repository for new stargazers.

        A fetch or diff failure skips the repository without saving. Each
        notifier failure is isolated. The observation is saved whether or
        not notifications succeeded.

        Raises:
            ServiceError: If fetching, diffing or saving fails
        """
        started = time.monotonic()
        repository = f"{owner}/{repo}"

        async with self._check_in_progress():
            github_client = self.github_client
            state_store = self.state_store
            notifiers = list(self.notifiers.values())

            try:
                stargazers = await github_client.fetch_stargazers(owner, repo)
            except RemoteError as e:
                self.metrics.record_check_error(owner, repo, "github_api_error")
                raise ServiceError(
                    f"failed to fetch stargazers: {e}", component="github"
                ) from e

            self.metrics.record_stars_count(owner, repo, len(stargazers))

            try:
                new_stargazers = await state_store.get_new_stargazers(
                    owner, repo, stargazers
                )
            except StorageError as e:
                self.metrics.record_check_error(owner, repo, "storage_error")
                raise ServiceError(
                    f"failed to get new stargazers: {e}", component="storage"
                ) from e

            if new_stargazers:
                logger.info(
                    "New stargazers detected",
                    repository=repository,
                    count=len(new_stargazers),
                )
                self.metrics.record_new_stars(owner, repo, len(new_stargazers))
                for notifier in notifiers:
                    try:
                        await notifier.deliver(owner, repo, new_stargazers)
                    except Exception as e:
                        logger.error(
                            "Notification failed",
                            repository=repository,
                            provider=notifier.name,
                            error=str(e),
                        )
            else:
                logger.debug("No new stargazers found", repository=repository)

            try:
                await state_store.save(owner, repo, stargazers)
            except StorageError as e:
                self.metrics.record_check_error(owner, repo, "storage_save_error")
                raise ServiceError(
                    f"failed to save stargazers data: {e}", component="storage"
                ) from e

        duration = time.monotonic() - started
        self.metrics.record_check(owner, repo, duration, success=True)
        logger.info(
            "Repository check completed",
            repository=repository,
            total_stars=len(stargazers),
            new_stars=len(new_stargazers),
            duration_seconds=round(duration, 3),
        )

    async def handle_config_reload(self, old: Config, new: Config) -> None:
        """
        Apply a configuration change before it becomes live.

        Registered as a reload callback. Raising aborts the reload and keeps
        the old configuration.
        """
        changes = detect_changes(old, new)
        logger.info("Handling configuration reload", changes=list(changes))

        if CHANGE_STORAGE in changes:
            store = self._store_factory(new.storage)
            await store.initialize()
            self._retire(self.state_store)
            self.state_store = store
            logger.info("Recreated state store", path=new.storage.path)

        if changes.credentials_changed:
            client = self._client_factory(new.github)
            self._retire(self.github_client)
            self.github_client = client
            self.rate_limiter.github_client = client
            logger.info("Recreated GitHub client")

        if changes.notifications_changed:
            await self._rebuild_notifiers(old.notifications, new.notifications)

        if CHANGE_LOG_LEVEL in changes or CHANGE_LOG_FORMAT in changes:
            setup_logging(new.logging.level, new.logging.format)
            logger.info(
                "Logging reconfigured",
                level=new.logging.level,
                format=new.logging.format,
            )

        if CHANGE_SERVER in changes:
            logger.warning(
                "Server settings changed, restart required to apply",
                address=new.server_address,
            )

        if changes.interval_changed:
            logger.info(
                "Check interval changed, signaling loop",
                old_interval=str(old.check_interval),
                new_interval=str(new.check_interval),
            )
            self.interval_signal.post(new.check_interval)

        if self._active_checks == 0:
            await self._close_retired()

    async def _rebuild_notifiers(
        self, old: NotificationsConfig, new: NotificationsConfig
    ) -> None:
        old_providers = {p.name: p for p in old.providers()}
        tuning_changed = _delivery_tuning(old) != _delivery_tuning(new)

        notifiers: dict[str, Notifier] = {}
        for provider in new.enabled_providers():
            current = self.notifiers.get(provider.name)
            unchanged = (
                current is not None
                and not tuning_changed
                and old_providers.get(provider.name) == provider
            )
            if unchanged:
                notifiers[provider.name] = current
                continue

            notifier = self._notifier_factory(provider, new)
            try:
                await notifier.probe()
                logger.info(
                    "New notification connection test successful",
                    provider=provider.name,
                )
            except Exception as e:
                self.metrics.record_notification_error(
                    provider.name, "connection_test_failed"
                )
                logger.error(
                    "New notification connection test failed",
                    provider=provider.name,
                    error=str(e),
                )
            notifiers[provider.name] = notifier

        for name, notifier in self.notifiers.items():
            if notifiers.get(name) is not notifier:
                self._retire(notifier)

        self.notifiers = notifiers
        logger.info("Recreated notifiers", providers=list(notifiers))

    def get_status(self) -> dict[str, Any]:
        """Get the current orchestrator status."""
        config = self.reloader.get_config()
        status: dict[str, Any] = {
            "running": self.is_running_flag,
            "repositories": len(config.repositories),
            "notifiers": len(self.notifiers),
            "check_interval": str(config.check_interval),
            "uptime": str(datetime.now(UTC) - self.start_time),
        }
        rate_limit = self.rate_limiter.last_status
        if rate_limit is not None:
            status["rate_limit"] = rate_limit.to_dict()
        return status

