"""
Notifier decorators for rate limiting and retry.

Both wrap another ``Notifier`` and are chained at construction time with the
rate limiter innermost, so every retry attempt also respects the minimum
interval between deliveries.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ..exceptions import NotificationError
from ..github_client import Stargazer
from ..metrics import StarsMetrics
from ..retry import SleepFunc, retry_policy
from .base import Notifier

logger = structlog.get_logger(__name__)


class RateLimitedNotifier(Notifier):
    """
    Enforces a minimum interval between deliveries of one provider.

    A delivery that arrives too early waits until it is allowed. The wait is
    cancellable. Probes are never delayed.
    """

    def __init__(
        self,
        inner: Notifier,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.inner = inner
        self.name = inner.name
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last_delivery: float | None = None
        self._lock = asyncio.Lock()

    async def _wait_for_slot(self, owner: str, repo: str) -> None:
        async with self._lock:
            if self._last_delivery is not None:
                delay = self._last_delivery + self.interval - self._clock()
                if delay > 0:
                    logger.debug(
                        "Rate limit hit, waiting",
                        provider=self.name,
                        repository=f"{owner}/{repo}",
                        wait_seconds=round(delay, 3),
                    )
                    await self._sleep(delay)
            self._last_delivery = self._clock()

    async def deliver(
        self, owner: str, repo: str, stargazers: list[Stargazer]
    ) -> None:
        if not stargazers:
            return
        await self._wait_for_slot(owner, repo)
        await self.inner.deliver(owner, repo, stargazers)

    async def probe(self) -> None:
        await self.inner.probe()

    async def aclose(self) -> None:
        await self.inner.aclose()


class RetryingNotifier(Notifier):
    """
    Retries deliveries and probes with bounded linear backoff.

    Every attempt is counted in ``notifications_sent_total`` and the latency
    of the whole logical call is observed once.
    """

    def __init__(
        self,
        inner: Notifier,
        max_retries: int = 3,
        backoff: float = 2.0,
        metrics: StarsMetrics | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        self.inner = inner
        self.name = inner.name
        self.max_retries = max_retries
        self.backoff = backoff
        self.metrics = metrics
        self._sleep = sleep

    def _record_attempt(self, error: Exception | None) -> None:
        if not self.metrics:
            return
        self.metrics.record_notification_attempt(self.name, success=error is None)
        if error is not None:
            error_type = "send_failed"
            if isinstance(error, NotificationError) and error.status_code:
                error_type = f"http_{error.status_code}"
            self.metrics.record_notification_error(self.name, error_type)

    async def _call(
        self, operation: str, func: Callable[..., Awaitable[None]], *args: Any
    ) -> None:
        started = time.monotonic()
        retrying = retry_policy(
            self.max_retries,
            self.backoff,
            operation=f"{self.name}:{operation}",
            sleep=self._sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    try:
                        await func(*args)
                    except Exception as e:
                        self._record_attempt(e)
                        raise
                    self._record_attempt(None)
        finally:
            if self.metrics:
                self.metrics.record_notification_latency(
                    self.name, time.monotonic() - started
                )

    async def deliver(
        self, owner: str, repo: str, stargazers: list[Stargazer]
    ) -> None:
        if not stargazers:
            return
        await self._call("deliver", self.inner.deliver, owner, repo, stargazers)
        logger.info(
            "Notification sent",
            provider=self.name,
            repository=f"{owner}/{repo}",
            new_stars=len(stargazers),
        )

    async def probe(self) -> None:
        await self._call("probe", self.inner.probe)

    async def aclose(self) -> None:
        await self.inner.aclose()
