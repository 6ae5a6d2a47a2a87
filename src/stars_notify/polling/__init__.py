"""
Polling system for GitHub Stars Notify.

This package contains the periodic check loop and GitHub quota monitoring.
"""

from .orchestrator import IntervalUpdateSignal, PollingOrchestrator
from .rate_limiter import RateLimitManager, RateLimitStatus

__all__ = [
    "PollingOrchestrator",
    "IntervalUpdateSignal",
    "RateLimitManager",
    "RateLimitStatus",
]
