"""
Discord notification provider.
"""

from datetime import UTC, datetime
from typing import Any

from ..config import PROVIDER_DISCORD
from ..github_client import Stargazer
from .base import (
    MAX_LISTED_STARGAZERS,
    PROBE_TEXT,
    SERVICE_NAME,
    WebhookNotifier,
    repository_url,
)

EMBED_COLOR = 0x00FF00


class DiscordNotifier(WebhookNotifier):
    """Posts new star notifications as a Discord embed."""

    name = PROVIDER_DISCORD

    def build_message(
        self, owner: str, repo: str, stargazers: list[Stargazer]
    ) -> dict[str, Any]:
        repo_url = repository_url(owner, repo)
        count = len(stargazers)
        if count == 1:
            description = f"🌟 **1 new star** for [{owner}/{repo}]({repo_url})!"
        else:
            description = f"🌟 **{count} new stars** for [{owner}/{repo}]({repo_url})!"

        fields: list[dict[str, Any]] = [
            {
                "name": f"⭐ {stargazer.login}",
                "value": f"[View Profile]({stargazer.profile_url})",
                "inline": True,
            }
            for stargazer in stargazers[:MAX_LISTED_STARGAZERS]
        ]
        if count > MAX_LISTED_STARGAZERS:
            fields.append(
                {
                    "name": "And more...",
                    "value": f"+ {count - MAX_LISTED_STARGAZERS} more stargazers",
                    "inline": False,
                }
            )

        embed = {
            "title": "New GitHub Stars",
            "description": description,
            "color": EMBED_COLOR,
            "timestamp": datetime.now(UTC).isoformat(),
            "footer": {"text": SERVICE_NAME},
            "fields": fields,
        }
        return {"embeds": [embed]}

    def build_probe_message(self) -> dict[str, Any]:
        return {"content": PROBE_TEXT}
