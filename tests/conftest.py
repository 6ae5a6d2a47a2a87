"""
Pytest configuration and fixtures for GitHub Stars Notify tests.
"""

from collections.abc import Callable
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from stars_notify.config import Config, parse_config
from stars_notify.exceptions import NotificationError
from stars_notify.github_client import Stargazer
from stars_notify.metrics import StarsMetrics
from stars_notify.notify.base import Notifier

OVERRIDE_ENV_VARS = [
    "GITHUB_TOKEN",
    "DISCORD_WEBHOOK_URL",
    "DISCORD_ENABLED",
    "SLACK_WEBHOOK_URL",
    "SLACK_CHANNEL",
    "SLACK_ENABLED",
    "SERVER_PORT",
    "SERVER_HOST",
    "STORAGE_PATH",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "CHECK_INTERVAL_MINUTES",
]

BASIC_CONFIG = """
repositories:
  - owner: octo
    repo: alpha
settings:
  check_interval_minutes: 60
storage:
  path: {storage}
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the host environment from overriding test configuration."""
    for name in OVERRIDE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def metrics() -> StarsMetrics:
    """Metrics bound to an isolated registry."""
    return StarsMetrics(CollectorRegistry())


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[[str], Path]:
    """Write YAML text to a config file and return its path."""
    path = tmp_path / "config.yaml"

    def _write(text: str) -> Path:
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def basic_config(tmp_path: Path) -> Config:
    return parse_config(
        BASIC_CONFIG.format(storage=tmp_path / "data").encode("utf-8")
    )


@pytest.fixture
def make_stargazers() -> Callable[..., list[Stargazer]]:
    """Build stargazers with ids and logins derived from the ids."""

    def _make(*ids: int) -> list[Stargazer]:
        return [
            Stargazer(
                id=i,
                login=f"user{i}",
                avatar_url=f"https://avatars.example.com/{i}",
            )
            for i in ids
        ]

    return _make


class RecordingNotifier(Notifier):
    """In-memory notifier recording deliveries and probes."""

    def __init__(
        self, name: str = "discord", fail_deliveries: int = 0, fail_probe: bool = False
    ):
        self.name = name
        self.fail_deliveries = fail_deliveries
        self.fail_probe = fail_probe
        self.deliveries: list[tuple[str, str, list[Stargazer]]] = []
        self.delivery_attempts = 0
        self.probes = 0
        self.closed = False

    async def deliver(self, owner: str, repo: str, stargazers: list[Stargazer]) -> None:
        self.delivery_attempts += 1
        if self.fail_deliveries:
            self.fail_deliveries -= 1
            raise NotificationError("webhook down", provider=self.name, status_code=500)
        self.deliveries.append((owner, repo, list(stargazers)))

    async def probe(self) -> None:
        self.probes += 1
        if self.fail_probe:
            raise NotificationError("webhook unreachable", provider=self.name)

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def notifier_cls() -> type[RecordingNotifier]:
    return RecordingNotifier


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
