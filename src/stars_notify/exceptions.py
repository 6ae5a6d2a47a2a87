"""
Custom exceptions for GitHub Stars Notify.

This module defines the exception classes shared by the configuration,
GitHub, storage, notification and service layers.
"""

from enum import Enum
from typing import Any


class StarsNotifyError(Exception):
    """Base exception for GitHub Stars Notify errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "STARS_NOTIFY_ERROR"
        self.context = context or {}


class ConfigurationError(StarsNotifyError):
    """Exception for configuration parsing and validation errors."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "CONFIGURATION_ERROR", context)
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"configuration error in field '{self.field}': {self.message}"
        return f"configuration error: {self.message}"


class RemoteErrorKind(str, Enum):
    """Classification of GitHub API failures."""

    RATE_LIMITED = "rate_limited"
    OTHER = "other"


class RemoteError(StarsNotifyError):
    """Exception for GitHub API related errors."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "GITHUB_API_ERROR", context)
        self.endpoint = endpoint
        self.status_code = status_code

    @property
    def kind(self) -> RemoteErrorKind:
        if self.status_code in (403, 429):
            return RemoteErrorKind.RATE_LIMITED
        return RemoteErrorKind.OTHER

    @property
    def is_rate_limited(self) -> bool:
        return self.kind is RemoteErrorKind.RATE_LIMITED

    def __str__(self) -> str:
        if self.status_code:
            return (
                f"github api error [{self.status_code}] on {self.endpoint}: "
                f"{self.message}"
            )
        return f"github api error on {self.endpoint}: {self.message}"


class StorageError(StarsNotifyError):
    """Exception for state storage errors."""

    def __init__(
        self,
        message: str,
        operation: str,
        path: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "STORAGE_ERROR", context)
        self.operation = operation
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return (
                f"storage error during {self.operation} on {self.path}: "
                f"{self.message}"
            )
        return f"storage error during {self.operation}: {self.message}"


class NotificationError(StarsNotifyError):
    """Exception for notification delivery and probe errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "NOTIFICATION_ERROR", context)
        self.provider = provider
        self.status_code = status_code

    def __str__(self) -> str:
        return f"notification error ({self.provider}): {self.message}"


class ServiceError(StarsNotifyError):
    """Exception for orchestration level errors."""

    def __init__(
        self,
        message: str,
        component: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "SERVICE_ERROR", context)
        self.component = component

    def __str__(self) -> str:
        if self.component:
            return f"service error in {self.component}: {self.message}"
        return f"service error: {self.message}"
