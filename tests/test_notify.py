"""
Tests for notification providers, decorators and the notifier factory.
"""

import asyncio
import json

import httpx
import pytest

from stars_notify.config import NotificationsConfig, ProviderSettings
from stars_notify.exceptions import ConfigurationError, NotificationError
from stars_notify.notify import (
    DiscordNotifier,
    RateLimitedNotifier,
    RetryingNotifier,
    SlackNotifier,
    build_notifier,
    create_base_notifier,
    create_notifiers,
)
from stars_notify.notify.base import PROBE_TEXT


class TestDiscordNotifier:
    """Test Discord payloads and delivery."""

    def setup_method(self):
        self.notifier = DiscordNotifier("https://discord.example/api/webhooks/1")

    def test_single_star_message(self, make_stargazers):
        message = self.notifier.build_message("octo", "alpha", make_stargazers(1))

        (embed,) = message["embeds"]
        assert embed["title"] == "New GitHub Stars"
        assert embed["description"] == (
            "🌟 **1 new star** for [octo/alpha](https://github.com/octo/alpha)!"
        )
        assert embed["color"] == 0x00FF00
        assert embed["footer"] == {"text": "GitHub Stars Notify"}
        assert embed["fields"] == [
            {
                "name": "⭐ user1",
                "value": "[View Profile](https://github.com/user1)",
                "inline": True,
            }
        ]

    def test_many_stars_are_truncated(self, make_stargazers):
        message = self.notifier.build_message(
            "octo", "alpha", make_stargazers(*range(1, 13))
        )

        embed = message["embeds"][0]
        assert embed["description"].startswith("🌟 **12 new stars**")
        assert len(embed["fields"]) == 11
        assert embed["fields"][-1] == {
            "name": "And more...",
            "value": "+ 2 more stargazers",
            "inline": False,
        }

    def test_probe_message(self):
        assert self.notifier.build_probe_message() == {"content": PROBE_TEXT}

    @pytest.mark.asyncio
    async def test_deliver_posts_json(self, make_stargazers):
        received: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(204)

        notifier = DiscordNotifier(
            "https://discord.example/api/webhooks/1",
            transport=httpx.MockTransport(handler),
        )
        try:
            await notifier.deliver("octo", "alpha", make_stargazers(1, 2))
        finally:
            await notifier.aclose()

        assert len(received) == 1
        assert received[0]["embeds"][0]["description"].startswith(
            "🌟 **2 new stars**"
        )

    @pytest.mark.asyncio
    async def test_zero_stargazers_sends_nothing(self):
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(204)

        notifier = DiscordNotifier(
            "https://discord.example/api/webhooks/1",
            transport=httpx.MockTransport(handler),
        )
        try:
            await notifier.deliver("octo", "alpha", [])
        finally:
            await notifier.aclose()

        assert calls == []

    @pytest.mark.asyncio
    async def test_non_success_status_raises(self, make_stargazers):
        notifier = DiscordNotifier(
            "https://discord.example/api/webhooks/1",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(400, text="bad payload")
            ),
        )
        try:
            with pytest.raises(NotificationError) as exc_info:
                await notifier.deliver("octo", "alpha", make_stargazers(1))
        finally:
            await notifier.aclose()

        assert exc_info.value.provider == "discord"
        assert exc_info.value.status_code == 400
        assert "bad payload" in str(exc_info.value)


class TestSlackNotifier:
    """Test Slack payloads."""

    def test_single_star_message_with_channel(self, make_stargazers):
        notifier = SlackNotifier("https://hooks.slack.example/T1", channel="#stars")

        message = notifier.build_message("octo", "alpha", make_stargazers(1))

        assert message["channel"] == "#stars"
        assert message["username"] == "GitHub Stars Notify"
        assert message["icon_emoji"] == ":star:"
        (attachment,) = message["attachments"]
        assert attachment["color"] == "good"
        assert attachment["title"] == "⭐ 1 new star for octo/alpha"
        assert attachment["title_link"] == "https://github.com/octo/alpha"
        assert attachment["text"] == (
            "Repository <https://github.com/octo/alpha|octo/alpha> "
            "received a new star!"
        )
        assert attachment["fields"] == [
            {
                "title": "user1",
                "value": "<https://github.com/user1|View Profile>",
                "short": True,
            }
        ]

    def test_many_stars_without_channel(self, make_stargazers):
        notifier = SlackNotifier("https://hooks.slack.example/T1")

        message = notifier.build_message(
            "octo", "alpha", make_stargazers(*range(1, 14))
        )

        assert "channel" not in message
        attachment = message["attachments"][0]
        assert attachment["text"].endswith("received 13 new stars!")
        assert attachment["fields"][-1] == {
            "title": "And more...",
            "value": "3 more stargazers",
            "short": False,
        }

    def test_probe_message(self):
        notifier = SlackNotifier("https://hooks.slack.example/T1", channel="#ops")

        message = notifier.build_probe_message()

        assert message["text"] == PROBE_TEXT
        assert message["icon_emoji"] == ":robot_face:"
        assert message["channel"] == "#ops"


class TestRateLimitedNotifier:
    """Test minimum spacing between deliveries."""

    @pytest.mark.asyncio
    async def test_deliveries_are_spaced(
        self, recording_notifier, fake_clock, make_stargazers
    ):
        limited = RateLimitedNotifier(
            recording_notifier, 60.0, clock=fake_clock.time, sleep=fake_clock.sleep
        )

        for _ in range(3):
            await limited.deliver("octo", "alpha", make_stargazers(1))

        assert len(recording_notifier.deliveries) == 3
        assert fake_clock.sleeps == [60.0, 60.0]

    @pytest.mark.asyncio
    async def test_no_wait_after_interval_elapsed(
        self, recording_notifier, fake_clock, make_stargazers
    ):
        limited = RateLimitedNotifier(
            recording_notifier, 60.0, clock=fake_clock.time, sleep=fake_clock.sleep
        )

        await limited.deliver("octo", "alpha", make_stargazers(1))
        fake_clock.now += 75.0
        await limited.deliver("octo", "alpha", make_stargazers(2))

        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_probe_is_never_delayed(
        self, recording_notifier, fake_clock, make_stargazers
    ):
        limited = RateLimitedNotifier(
            recording_notifier, 60.0, clock=fake_clock.time, sleep=fake_clock.sleep
        )

        await limited.deliver("octo", "alpha", make_stargazers(1))
        await limited.probe()
        await limited.probe()

        assert recording_notifier.probes == 2
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_zero_stargazers_does_not_consume_slot(
        self, recording_notifier, fake_clock, make_stargazers
    ):
        limited = RateLimitedNotifier(
            recording_notifier, 60.0, clock=fake_clock.time, sleep=fake_clock.sleep
        )

        await limited.deliver("octo", "alpha", [])
        await limited.deliver("octo", "alpha", make_stargazers(1))

        assert recording_notifier.delivery_attempts == 1
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_wait_is_cancellable(self, recording_notifier, make_stargazers):
        limited = RateLimitedNotifier(recording_notifier, 3600.0)
        await limited.deliver("octo", "alpha", make_stargazers(1))

        task = asyncio.create_task(
            limited.deliver("octo", "alpha", make_stargazers(2))
        )
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert recording_notifier.delivery_attempts == 1


class TestRetryingNotifier:
    """Test retry and per-attempt metrics."""

    def setup_method(self):
        self.sleeps: list[float] = []

    async def _sleep(self, delay: float) -> None:
        self.sleeps.append(delay)

    def _sample(self, metrics, name: str, labels: dict) -> float:
        return metrics.registry.get_sample_value(name, labels) or 0.0

    @pytest.mark.asyncio
    async def test_retry_exhaustion(self, notifier_cls, metrics, make_stargazers):
        inner = notifier_cls(fail_deliveries=100)
        notifier = RetryingNotifier(
            inner, max_retries=3, backoff=2.0, metrics=metrics, sleep=self._sleep
        )

        with pytest.raises(NotificationError):
            await notifier.deliver("octo", "alpha", make_stargazers(1))

        assert inner.delivery_attempts == 4
        assert self.sleeps == [2.0, 4.0, 6.0]
        labels = {"provider": "discord", "status": "failed"}
        assert self._sample(metrics, "notifications_sent_total", labels) == 4.0
        assert (
            self._sample(
                metrics,
                "notification_latency_seconds_count",
                {"provider": "discord"},
            )
            == 1.0
        )
        assert (
            self._sample(
                metrics,
                "notification_errors_total",
                {"provider": "discord", "error_type": "http_500"},
            )
            == 4.0
        )

    @pytest.mark.asyncio
    async def test_success_after_failure(self, notifier_cls, metrics, make_stargazers):
        inner = notifier_cls(fail_deliveries=1)
        notifier = RetryingNotifier(
            inner, max_retries=3, backoff=0.5, metrics=metrics, sleep=self._sleep
        )

        await notifier.deliver("octo", "alpha", make_stargazers(1))

        assert inner.delivery_attempts == 2
        assert len(inner.deliveries) == 1
        assert self.sleeps == [0.5]
        assert (
            self._sample(
                metrics,
                "notifications_sent_total",
                {"provider": "discord", "status": "success"},
            )
            == 1.0
        )
        assert (
            self._sample(
                metrics,
                "notifications_sent_total",
                {"provider": "discord", "status": "failed"},
            )
            == 1.0
        )

    @pytest.mark.asyncio
    async def test_probe_is_retried(self, notifier_cls):
        inner = notifier_cls(fail_probe=True)
        notifier = RetryingNotifier(inner, max_retries=2, sleep=self._sleep)

        with pytest.raises(NotificationError):
            await notifier.probe()

        assert inner.probes == 3

    @pytest.mark.asyncio
    async def test_zero_stargazers_is_noop(self, notifier_cls, metrics):
        inner = notifier_cls()
        notifier = RetryingNotifier(inner, metrics=metrics, sleep=self._sleep)

        await notifier.deliver("octo", "alpha", [])

        assert inner.delivery_attempts == 0
        assert (
            self._sample(
                metrics,
                "notification_latency_seconds_count",
                {"provider": "discord"},
            )
            == 0.0
        )

    @pytest.mark.asyncio
    async def test_cancellation_during_backoff(self, notifier_cls, make_stargazers):
        sleeping = asyncio.Event()

        async def blocking_sleep(delay: float) -> None:
            sleeping.set()
            await asyncio.Event().wait()

        inner = notifier_cls(fail_deliveries=100)
        notifier = RetryingNotifier(inner, max_retries=5, sleep=blocking_sleep)

        task = asyncio.create_task(
            notifier.deliver("octo", "alpha", make_stargazers(1))
        )
        await asyncio.wait_for(sleeping.wait(), timeout=1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert inner.delivery_attempts == 1


class TestNotifierFactory:
    """Test notifier chain construction."""

    def test_chain_order(self):
        settings = ProviderSettings(
            name="slack",
            enabled=True,
            endpoint="https://hooks.slack.example/T1",
            options={"channel": "#stars"},
        )
        tuning = NotificationsConfig(max_retries=5, rate_limit_seconds=10)

        notifier = build_notifier(settings, tuning)

        assert isinstance(notifier, RetryingNotifier)
        assert notifier.max_retries == 5
        assert isinstance(notifier.inner, RateLimitedNotifier)
        assert notifier.inner.interval == 10
        base = notifier.inner.inner
        assert isinstance(base, SlackNotifier)
        assert base.channel == "#stars"
        assert notifier.name == "slack"

    def test_unknown_provider_rejected(self):
        settings = ProviderSettings(name="email", enabled=True, endpoint="smtp://x")

        with pytest.raises(ConfigurationError):
            create_base_notifier(settings)

    def test_only_enabled_providers_created(self):
        config = NotificationsConfig.model_validate(
            {
                "discord": {
                    "enabled": True,
                    "webhook_url": "https://discord.example/api/webhooks/1",
                },
                "slack": {"enabled": False},
            }
        )

        notifiers = create_notifiers(config)

        assert list(notifiers) == ["discord"]
        assert isinstance(notifiers["discord"].inner.inner, DiscordNotifier)
