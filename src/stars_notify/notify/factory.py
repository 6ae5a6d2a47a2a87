"""
Notifier factory.

This module builds the notifier chain for each enabled provider: the base
webhook notifier, wrapped in a rate limiter, wrapped in retry.
"""

import httpx
import structlog

from ..config import (
    PROVIDER_DISCORD,
    PROVIDER_SLACK,
    NotificationsConfig,
    ProviderSettings,
)
from ..exceptions import ConfigurationError
from ..metrics import StarsMetrics
from ..retry import SleepFunc
from .base import Notifier, WebhookNotifier
from .decorators import RateLimitedNotifier, RetryingNotifier
from .discord import DiscordNotifier
from .slack import SlackNotifier

logger = structlog.get_logger(__name__)


def create_base_notifier(
    settings: ProviderSettings,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> WebhookNotifier:
    """
    Create an undecorated notifier for a provider.

    Raises:
        ConfigurationError: If the provider is unknown
    """
    if settings.name == PROVIDER_DISCORD:
        return DiscordNotifier(settings.endpoint, timeout=timeout, transport=transport)
    if settings.name == PROVIDER_SLACK:
        return SlackNotifier(
            settings.endpoint,
            channel=settings.options.get("channel", ""),
            timeout=timeout,
            transport=transport,
        )
    raise ConfigurationError(
        f"unsupported notifier type: {settings.name}", field="notifications"
    )


def build_notifier(
    settings: ProviderSettings,
    tuning: NotificationsConfig,
    metrics: StarsMetrics | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFunc | None = None,
) -> Notifier:
    """
    Build the decorated notifier chain for one provider.

    Args:
        settings: Provider settings
        tuning: Retry, rate limit and timeout settings
        metrics: Optional metrics sink
        transport: Optional HTTP transport, replaced in tests
        sleep: Optional retry sleep, replaced in tests

    Returns:
        Retry(RateLimit(base)) notifier
    """
    base = create_base_notifier(
        settings, timeout=tuning.timeout_seconds, transport=transport
    )
    rate_limited = RateLimitedNotifier(base, tuning.rate_limit_seconds)
    return RetryingNotifier(
        rate_limited,
        max_retries=tuning.max_retries,
        backoff=tuning.retry_backoff_seconds,
        metrics=metrics,
        sleep=sleep,
    )


def create_notifiers(
    config: NotificationsConfig,
    metrics: StarsMetrics | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Notifier]:
    """Build notifiers for every enabled provider, keyed by provider name."""
    notifiers = {
        provider.name: build_notifier(
            provider, config, metrics=metrics, transport=transport
        )
        for provider in config.enabled_providers()
    }
    logger.info("Notifiers initialized", providers=list(notifiers))
    return notifiers
