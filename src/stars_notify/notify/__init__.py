"""
Notification providers for GitHub Stars Notify.

This module provides Discord and Slack webhook notifiers and the rate limit
and retry decorators that wrap them.
"""

from .base import Notifier, WebhookNotifier
from .decorators import RateLimitedNotifier, RetryingNotifier
from .discord import DiscordNotifier
from .factory import build_notifier, create_base_notifier, create_notifiers
from .slack import SlackNotifier

__all__ = [
    "Notifier",
    "WebhookNotifier",
    "DiscordNotifier",
    "SlackNotifier",
    "RateLimitedNotifier",
    "RetryingNotifier",
    "build_notifier",
    "create_base_notifier",
    "create_notifiers",
]
