"""
Retry policy shared by the GitHub client and the notification pipeline.

Retries are bounded (``max_retries`` retries means ``max_retries + 1``
attempts) with linear backoff: the n-th retry waits ``backoff * n``.
Rate-limited GitHub errors are never retried and cancellation always
propagates immediately, including while waiting between attempts.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from .exceptions import RemoteError

logger = structlog.get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


def is_retryable(error: BaseException) -> bool:
    """Check whether a failed attempt may be retried."""
    if not isinstance(error, Exception):
        return False
    if isinstance(error, RemoteError) and error.is_rate_limited:
        return False
    return True


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Operation failed, retrying",
            operation=operation,
            attempt=retry_state.attempt_number,
            wait_seconds=(
                retry_state.next_action.sleep if retry_state.next_action else None
            ),
            error=str(error),
        )

    return before_sleep


def retry_policy(
    max_retries: int,
    backoff: float,
    operation: str,
    sleep: SleepFunc | None = None,
) -> AsyncRetrying:
    """
    Build a retry controller for one logical operation.

    Args:
        max_retries: Number of retries after the first attempt
        backoff: Linear backoff base in seconds
        operation: Name used in retry log events
        sleep: Optional sleep coroutine, replaced in tests

    Returns:
        Configured ``AsyncRetrying`` instance
    """
    kwargs: dict[str, Any] = {
        "stop": stop_after_attempt(max(max_retries, 0) + 1),
        "wait": wait_incrementing(start=backoff, increment=backoff),
        "retry": retry_if_exception(is_retryable),
        "before_sleep": _log_retry(operation),
        "reraise": True,
    }
    if sleep is not None:
        kwargs["sleep"] = sleep
    return AsyncRetrying(**kwargs)
