"""
Configuration management for GitHub Stars Notify.

This module parses the YAML configuration file into an immutable, validated
snapshot using Pydantic models, applies environment variable overrides through
Pydantic Settings, and computes the set of facets that differ between two
snapshots.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

PROVIDER_DISCORD = "discord"
PROVIDER_SLACK = "slack"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class RepositoryConfig(_FrozenModel):
    """A GitHub repository to monitor."""

    owner: str = Field(..., description="Repository owner (user or organization)")
    repo: str = Field(..., description="Repository name")

    @field_validator("owner", "repo")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty owner/repo values."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class CheckSettings(_FrozenModel):
    """Polling cadence settings."""

    check_interval_minutes: int = Field(
        default=60, ge=1, description="Interval between check cycles in minutes"
    )


class GitHubConfig(_FrozenModel):
    """GitHub API configuration settings."""

    token: str = Field(default="", description="GitHub personal access token")
    timeout_seconds: int = Field(default=30, gt=0, description="HTTP timeout")
    base_url: str = Field(
        default="https://api.github.com", description="GitHub API URL"
    )


class DiscordConfig(_FrozenModel):
    """Discord webhook configuration."""

    enabled: bool = Field(default=False, description="Enable Discord notifications")
    webhook_url: str = Field(default="", description="Discord webhook URL")


class SlackConfig(_FrozenModel):
    """Slack webhook configuration."""

    enabled: bool = Field(default=False, description="Enable Slack notifications")
    webhook_url: str = Field(default="", description="Slack webhook URL")
    channel: str = Field(default="", description="Optional channel override")


@dataclass(frozen=True)
class ProviderSettings:
    """Provider-agnostic view of one notification provider's settings."""

    name: str
    enabled: bool
    endpoint: str
    options: dict[str, str] = field(default_factory=dict)


class NotificationsConfig(_FrozenModel):
    """Notification providers and delivery tuning."""

    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    max_retries: int = Field(default=3, ge=0, description="Retries per delivery")
    retry_backoff_seconds: float = Field(
        default=2.0, ge=0, description="Linear retry backoff base in seconds"
    )
    rate_limit_seconds: float = Field(
        default=60.0, ge=0, description="Minimum interval between deliveries"
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Webhook HTTP timeout in seconds"
    )

    @model_validator(mode="after")
    def validate_enabled_providers(self) -> "NotificationsConfig":
        """Every enabled provider needs an endpoint."""
        for provider in self.providers():
            if provider.enabled and not provider.endpoint:
                raise ValueError(
                    f"{provider.name} webhook URL is required when "
                    f"{provider.name} notifications are enabled"
                )
        return self

    def providers(self) -> list[ProviderSettings]:
        """Get all providers in a fixed order (discord, slack)."""
        return [
            ProviderSettings(
                name=PROVIDER_DISCORD,
                enabled=self.discord.enabled,
                endpoint=self.discord.webhook_url,
            ),
            ProviderSettings(
                name=PROVIDER_SLACK,
                enabled=self.slack.enabled,
                endpoint=self.slack.webhook_url,
                options={"channel": self.slack.channel} if self.slack.channel else {},
            ),
        ]

    def enabled_providers(self) -> list[ProviderSettings]:
        return [p for p in self.providers() if p.enabled]


class ServerConfig(_FrozenModel):
    """Operational HTTP server configuration."""

    host: str = Field(default="localhost", description="Server host")
    port: int = Field(default=8080, ge=0, le=65535, description="Server port")
    read_timeout_seconds: int = Field(default=30, gt=0)
    write_timeout_seconds: int = Field(default=30, gt=0)


class StorageConfig(_FrozenModel):
    """State storage configuration."""

    type: str = Field(default="file", description="Storage backend type")
    path: str = Field(default="./data", description="Directory for file storage")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Validate storage backend type."""
        if v != "file":
            raise ValueError(f"Unsupported storage type: {v}")
        return v


class LoggingConfig(_FrozenModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        level = v.upper()
        if level == "WARN":
            level = "WARNING"
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if level not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "text"}:
            raise ValueError(f"Invalid log format: {v}")
        return v.lower()


class Config(_FrozenModel):
    """A complete, validated configuration snapshot."""

    repositories: tuple[RepositoryConfig, ...] = Field(
        ..., description="Repositories to monitor, in check order"
    )
    settings: CheckSettings = Field(default_factory=CheckSettings)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("repositories")
    @classmethod
    def validate_repositories(
        cls, v: tuple[RepositoryConfig, ...]
    ) -> tuple[RepositoryConfig, ...]:
        """At least one repository must be configured."""
        if not v:
            raise ValueError("at least one repository must be configured")
        return v

    @property
    def check_interval(self) -> timedelta:
        return timedelta(minutes=self.settings.check_interval_minutes)

    @property
    def github_timeout(self) -> timedelta:
        return timedelta(seconds=self.github.timeout_seconds)

    @property
    def server_address(self) -> str:
        return f"{self.server.host}:{self.server.port}"

    @property
    def log_level(self) -> int:
        """Get the log level as a stdlib logging level."""
        return int(getattr(logging, self.logging.level))


class EnvironmentOverrides(BaseSettings):
    """Environment variables that override values from the YAML file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    github_token: str | None = None
    discord_webhook_url: str | None = None
    discord_enabled: bool | None = None
    slack_webhook_url: str | None = None
    slack_channel: str | None = None
    slack_enabled: bool | None = None
    server_port: int | None = None
    server_host: str | None = None
    storage_path: str | None = None
    log_level: str | None = None
    log_format: str | None = None
    check_interval_minutes: int | None = None

    def apply(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of the raw config mapping with overrides applied."""
        targets = {
            "github_token": ("github", "token"),
            "discord_webhook_url": ("notifications", "discord", "webhook_url"),
            "discord_enabled": ("notifications", "discord", "enabled"),
            "slack_webhook_url": ("notifications", "slack", "webhook_url"),
            "slack_channel": ("notifications", "slack", "channel"),
            "slack_enabled": ("notifications", "slack", "enabled"),
            "server_port": ("server", "port"),
            "server_host": ("server", "host"),
            "storage_path": ("storage", "path"),
            "log_level": ("logging", "level"),
            "log_format": ("logging", "format"),
            "check_interval_minutes": ("settings", "check_interval_minutes"),
        }
        result = _deep_copy_mapping(raw)
        for name, path in targets.items():
            value = getattr(self, name)
            if value is None or value == "":
                continue
            section = result
            for key in path[:-1]:
                child = section.get(key)
                if not isinstance(child, dict):
                    child = {}
                    section[key] = child
                section = child
            section[path[-1]] = value
        return result


def _deep_copy_mapping(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        key: _deep_copy_mapping(value) if isinstance(value, dict) else value
        for key, value in raw.items()
    }


def _format_validation_error(error: ValidationError) -> ConfigurationError:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", str(error))
    return ConfigurationError(
        message,
        field=location or None,
        context={"errors": error.error_count()},
    )


def parse_config(raw: bytes) -> Config:
    """
    Parse raw YAML bytes into a validated configuration snapshot.

    Args:
        raw: YAML document bytes

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the document cannot be parsed or is invalid
    """
    try:
        data = yaml.safe_load(raw) if raw else None
    except yaml.YAMLError as e:
        raise ConfigurationError(f"failed to parse config file: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("config file must contain a mapping at top level")

    try:
        data = EnvironmentOverrides().apply(data)
        return Config.model_validate(data)
    except ValidationError as e:
        raise _format_validation_error(e) from e


def load_config(path: str | Path) -> Config:
    """
    Load and validate configuration from a YAML file.

    Args:
        path: Path to the configuration file

    Returns:
        Validated configuration
    """
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        raise ConfigurationError(
            f"failed to read config file: {e}", context={"path": str(path)}
        ) from e
    return parse_config(raw)


CHANGE_REPOSITORIES = "repositories"
CHANGE_CHECK_INTERVAL = "check_interval"
CHANGE_GITHUB_TOKEN = "github_token"
CHANGE_GITHUB_TIMEOUT = "github_timeout"
CHANGE_NOTIFICATIONS = "notifications"
CHANGE_LOG_LEVEL = "log_level"
CHANGE_LOG_FORMAT = "log_format"
CHANGE_STORAGE = "storage"
CHANGE_SERVER = "server"


@dataclass(frozen=True)
class ChangeSet:
    """Facets that differ between an outgoing and an incoming snapshot."""

    facets: frozenset[str] = frozenset()

    def __bool__(self) -> bool:
        return bool(self.facets)

    def __contains__(self, facet: object) -> bool:
        return facet in self.facets

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(sorted(self.facets))

    def __len__(self) -> int:
        return len(self.facets)

    @property
    def credentials_changed(self) -> bool:
        return bool({CHANGE_GITHUB_TOKEN, CHANGE_GITHUB_TIMEOUT} & self.facets)

    @property
    def notifications_changed(self) -> bool:
        return CHANGE_NOTIFICATIONS in self.facets

    @property
    def interval_changed(self) -> bool:
        return CHANGE_CHECK_INTERVAL in self.facets


def detect_changes(old: Config, new: Config) -> ChangeSet:
    """Detect which configuration facets changed between two snapshots."""
    facets: set[str] = set()

    if old.repositories != new.repositories:
        facets.add(CHANGE_REPOSITORIES)
    if old.check_interval != new.check_interval:
        facets.add(CHANGE_CHECK_INTERVAL)
    if old.github.token != new.github.token:
        facets.add(CHANGE_GITHUB_TOKEN)
    if (
        old.github_timeout != new.github_timeout
        or old.github.base_url != new.github.base_url
    ):
        facets.add(CHANGE_GITHUB_TIMEOUT)
    if old.notifications != new.notifications:
        facets.add(CHANGE_NOTIFICATIONS)
    if old.log_level != new.log_level:
        facets.add(CHANGE_LOG_LEVEL)
    if old.logging.format != new.logging.format:
        facets.add(CHANGE_LOG_FORMAT)
    if old.storage != new.storage:
        facets.add(CHANGE_STORAGE)
    if old.server != new.server:
        facets.add(CHANGE_SERVER)

    return ChangeSet(frozenset(facets))
