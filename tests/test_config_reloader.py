"""
Tests for configuration hot reload.
"""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from stars_notify.config import Config
from stars_notify.config_reloader import ConfigReloader

INITIAL = """
repositories:
  - owner: octo
    repo: alpha
settings:
  check_interval_minutes: 60
"""

UPDATED = """
repositories:
  - owner: octo
    repo: alpha
settings:
  check_interval_minutes: 5
"""


def _sample(metrics, status: str) -> float:
    return (
        metrics.registry.get_sample_value("config_reloads_total", {"status": status})
        or 0.0
    )


class TestConfigReloader:
    """Test validation, callback ordering and the snapshot swap."""

    @pytest.fixture(autouse=True)
    def _reloader(self, write_config, metrics):
        self.path = write_config(INITIAL)
        self.metrics = metrics
        self.reloader = ConfigReloader(self.path, metrics=metrics)

    @pytest.mark.asyncio
    async def test_initial_snapshot_loaded(self):
        config = self.reloader.get_config()

        assert isinstance(config, Config)
        assert config.settings.check_interval_minutes == 60

    @pytest.mark.asyncio
    async def test_successful_reload_swaps_snapshot(self):
        seen: list[tuple[int, int]] = []

        async def callback(old: Config, new: Config) -> None:
            seen.append(
                (old.settings.check_interval_minutes, new.settings.check_interval_minutes)
            )

        self.reloader.add_callback(callback)
        self.path.write_text(UPDATED)

        assert await self.reloader.reload() is True
        assert seen == [(60, 5)]
        assert self.reloader.get_config().settings.check_interval_minutes == 5
        assert _sample(self.metrics, "success") == 1.0

    @pytest.mark.asyncio
    async def test_callback_failure_keeps_old_snapshot(self):
        old = self.reloader.get_config()
        later = AsyncMock()

        async def failing(old: Config, new: Config) -> None:
            raise RuntimeError("storage unavailable")

        self.reloader.add_callback(failing)
        self.reloader.add_callback(later)
        self.path.write_text(UPDATED)

        assert await self.reloader.reload() is False
        assert self.reloader.get_config() is old
        later.assert_not_awaited()
        assert _sample(self.metrics, "failed") == 1.0

    @pytest.mark.asyncio
    async def test_invalid_file_keeps_old_snapshot(self):
        old = self.reloader.get_config()
        callback = AsyncMock()
        self.reloader.add_callback(callback)
        self.path.write_text("settings:\n  check_interval_minutes: 0\n")

        assert await self.reloader.reload() is False
        assert self.reloader.get_config() is old
        callback.assert_not_awaited()
        assert _sample(self.metrics, "invalid") == 1.0

    @pytest.mark.asyncio
    async def test_unchanged_file_skips_callbacks(self):
        callback = AsyncMock()
        self.reloader.add_callback(callback)
        self.path.write_text(INITIAL + "\n# comment only\n")

        assert await self.reloader.reload() is False
        callback.assert_not_awaited()
        assert _sample(self.metrics, "unchanged") == 1.0

    @pytest.mark.asyncio
    async def test_callbacks_run_in_registration_order(self):
        order: list[str] = []

        async def first(old: Config, new: Config) -> None:
            order.append("first")

        async def second(old: Config, new: Config) -> None:
            order.append("second")

        self.reloader.add_callback(first)
        self.reloader.add_callback(second)
        self.path.write_text(UPDATED)

        await self.reloader.reload()

        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_burst_of_changes_reloads_once(self):
        reloader = ConfigReloader(self.path, debounce_seconds=0.05)
        reloader.reload = AsyncMock(return_value=True)  # type: ignore[method-assign]
        await reloader.start()
        try:
            for _ in range(5):
                reloader.notify_change()
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.3)
        finally:
            await reloader.stop()

        assert reloader.reload.await_count == 1

    @pytest.mark.asyncio
    async def test_file_write_triggers_reload(self):
        reloader = ConfigReloader(self.path, debounce_seconds=0.05)
        await reloader.start()
        try:
            self.path.write_text(UPDATED)
            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                if reloader.get_config().settings.check_interval_minutes == 5:
                    break
                await asyncio.sleep(0.05)
        finally:
            await reloader.stop()

        assert reloader.get_config().settings.check_interval_minutes == 5

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        await self.reloader.start()
        assert self.reloader.running

        await self.reloader.stop()
        await self.reloader.stop()

        assert not self.reloader.running

    @pytest.mark.asyncio
    async def test_notify_change_before_start_is_ignored(self):
        self.reloader.notify_change()

        assert not self.reloader.running
