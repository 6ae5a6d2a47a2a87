"""
Base notifier abstract class.

This module defines the interface that all notification providers implement
and a webhook base class that posts JSON payloads over HTTP.
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from ..exceptions import NotificationError
from ..github_client import Stargazer

logger = structlog.get_logger(__name__)

SERVICE_NAME = "GitHub Stars Notify"
PROBE_TEXT = "🔔 GitHub Stars Notify is now active and monitoring your repositories!"
MAX_LISTED_STARGAZERS = 10


def repository_url(owner: str, repo: str) -> str:
    return f"https://github.com/{owner}/{repo}"


class Notifier(ABC):
    """
    Abstract base class for notification providers.

    Decorators such as rate limiting and retry implement the same interface
    and wrap another notifier.
    """

    name: str = ""

    @abstractmethod
    async def deliver(
        self, owner: str, repo: str, stargazers: list[Stargazer]
    ) -> None:
        """
        Deliver a new stars notification for a repository.

        Delivering zero stargazers does nothing.

        Args:
            owner: Repository owner
            repo: Repository name
            stargazers: Newly observed stargazers

        Raises:
            NotificationError: If delivery fails
        """
        pass

    @abstractmethod
    async def probe(self) -> None:
        """
        Send a message announcing that the service is active.

        Raises:
            NotificationError: If the provider cannot be reached
        """
        pass

    async def aclose(self) -> None:
        """Release provider resources."""


class WebhookNotifier(Notifier):
    """Notifier that posts JSON messages to an incoming webhook URL."""

    user_agent = "github-stars-notify/1.0"

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the webhook notifier.

        Args:
            webhook_url: Incoming webhook URL
            timeout: HTTP timeout in seconds
            transport: Optional HTTP transport, replaced in tests
        """
        self.webhook_url = webhook_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @abstractmethod
    def build_message(
        self, owner: str, repo: str, stargazers: list[Stargazer]
    ) -> dict[str, Any]:
        """Build the provider payload for new stargazers."""
        pass

    @abstractmethod
    def build_probe_message(self) -> dict[str, Any]:
        """Build the provider payload for the startup probe."""
        pass

    async def deliver(
        self, owner: str, repo: str, stargazers: list[Stargazer]
    ) -> None:
        if not stargazers:
            return
        await self._post(self.build_message(owner, repo, stargazers))

    async def probe(self) -> None:
        await self._post(self.build_probe_message())

    async def _post(self, payload: dict[str, Any]) -> None:
        try:
            response = await self._client.post(
                self.webhook_url,
                json=payload,
                headers={"User-Agent": self.user_agent},
            )
        except httpx.HTTPError as e:
            raise NotificationError(
                f"failed to send webhook: {e}", provider=self.name
            ) from e

        if not response.is_success:
            raise NotificationError(
                f"webhook request failed with status {response.status_code}, "
                f"response: {response.text[:512]}",
                provider=self.name,
                status_code=response.status_code,
            )

        logger.debug("Webhook delivered", provider=self.name)

    async def aclose(self) -> None:
        await self._client.aclose()
