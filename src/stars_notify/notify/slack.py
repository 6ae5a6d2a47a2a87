"""
Slack notification provider.
"""

import time
from typing import Any

import httpx

from ..config import PROVIDER_SLACK
from ..github_client import Stargazer
from .base import (
    MAX_LISTED_STARGAZERS,
    PROBE_TEXT,
    SERVICE_NAME,
    WebhookNotifier,
    repository_url,
)


class SlackNotifier(WebhookNotifier):
    """Posts new star notifications as a Slack attachment."""

    name = PROVIDER_SLACK

    def __init__(
        self,
        webhook_url: str,
        channel: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(webhook_url, timeout=timeout, transport=transport)
        self.channel = channel

    def _with_channel(self, message: dict[str, Any]) -> dict[str, Any]:
        if self.channel:
            message["channel"] = self.channel
        return message

    def build_message(
        self, owner: str, repo: str, stargazers: list[Stargazer]
    ) -> dict[str, Any]:
        repo_url = repository_url(owner, repo)
        count = len(stargazers)
        if count == 1:
            title = f"⭐ 1 new star for {owner}/{repo}"
            text = f"Repository <{repo_url}|{owner}/{repo}> received a new star!"
        else:
            title = f"⭐ {count} new stars for {owner}/{repo}"
            text = (
                f"Repository <{repo_url}|{owner}/{repo}> received {count} new stars!"
            )

        fields: list[dict[str, Any]] = [
            {
                "title": stargazer.login,
                "value": f"<{stargazer.profile_url}|View Profile>",
                "short": True,
            }
            for stargazer in stargazers[:MAX_LISTED_STARGAZERS]
        ]
        if count > MAX_LISTED_STARGAZERS:
            fields.append(
                {
                    "title": "And more...",
                    "value": f"{count - MAX_LISTED_STARGAZERS} more stargazers",
                    "short": False,
                }
            )

        attachment = {
            "color": "good",
            "title": title,
            "title_link": repo_url,
            "text": text,
            "fields": fields,
            "footer": SERVICE_NAME,
            "ts": int(time.time()),
        }
        return self._with_channel(
            {
                "username": SERVICE_NAME,
                "icon_emoji": ":star:",
                "attachments": [attachment],
            }
        )

    def build_probe_message(self) -> dict[str, Any]:
        return self._with_channel(
            {
                "text": PROBE_TEXT,
                "username": SERVICE_NAME,
                "icon_emoji": ":robot_face:",
            }
        )
