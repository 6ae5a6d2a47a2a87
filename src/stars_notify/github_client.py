"""
GitHub API client for GitHub Stars Notify.

This module provides an async GitHub REST client for listing repository
stargazers and reading the API quota, plus a wrapper that adds bounded retry
with linear backoff.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from .config import GitHubConfig
from .exceptions import RemoteError
from .metrics import StarsMetrics
from .retry import SleepFunc, retry_policy

logger = structlog.get_logger(__name__)

STARGAZERS_PER_PAGE = 100
STAR_MEDIA_TYPE = "application/vnd.github.v3.star+json"
USER_AGENT = "github-stars-notify/1.0"


@dataclass(frozen=True)
class Stargazer:
    """A user who starred a repository. Identity is the numeric user id."""

    id: int
    login: str = field(default="", compare=False)
    avatar_url: str = field(default="", compare=False)
    starred_at: datetime | None = field(default=None, compare=False)

    @property
    def profile_url(self) -> str:
        return f"https://github.com/{self.login}"

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "Stargazer":
        """Build a stargazer from a ``star+json`` API item."""
        user = item["user"]
        return cls(
            id=int(user["id"]),
            login=user.get("login", ""),
            avatar_url=user.get("avatar_url", ""),
            starred_at=_parse_timestamp(item.get("starred_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "login": self.login,
            "avatar_url": self.avatar_url,
            "starred_at": self.starred_at.isoformat() if self.starred_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Stargazer":
        return cls(
            id=int(data["id"]),
            login=data.get("login", ""),
            avatar_url=data.get("avatar_url", ""),
            starred_at=_parse_timestamp(data.get("starred_at")),
        )


@dataclass(frozen=True)
class RateLimit:
    """GitHub API quota for the core resource."""

    limit: int
    remaining: int
    reset: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "limit": self.limit,
            "remaining": self.remaining,
            "reset": self.reset.isoformat(),
        }


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _next_page(response: httpx.Response) -> int:
    """Get the next page number from the ``Link`` header, or 0 if none."""
    next_link = response.links.get("next")
    if not next_link or not next_link.get("url"):
        return 0
    page = httpx.URL(next_link["url"]).params.get("page")
    try:
        return int(page) if page else 0
    except ValueError:
        return 0


class GitHubClient:
    """
    Async GitHub REST API client.

    Authentication is optional; without a token requests are made
    anonymously and are subject to the lower unauthenticated quota.
    """

    def __init__(
        self,
        config: GitHubConfig,
        metrics: StarsMetrics | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the GitHub client.

        Args:
            config: GitHub configuration
            metrics: Optional metrics sink for request accounting
            transport: Optional HTTP transport, replaced in tests
        """
        self.config = config
        self.metrics = metrics
        headers = {"User-Agent": USER_AGENT}
        if config.token:
            headers["Authorization"] = f"token {config.token}"
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers=headers,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def _request(
        self,
        endpoint: str,
        path: str,
        params: dict[str, Any] | None = None,
        accept: str | None = None,
    ) -> httpx.Response:
        headers = {"Accept": accept} if accept else None
        try:
            response = await self._client.get(path, params=params, headers=headers)
        except httpx.HTTPError as e:
            if self.metrics:
                self.metrics.record_api_error(endpoint, "request_failed")
            raise RemoteError(
                f"failed to execute request: {e}", endpoint=endpoint
            ) from e

        if self.metrics:
            self.metrics.record_api_request(endpoint, response.status_code)

        if response.status_code != 200:
            if self.metrics:
                error_type = (
                    "rate_limited"
                    if response.status_code in (403, 429)
                    else f"http_{response.status_code}"
                )
                self.metrics.record_api_error(endpoint, error_type)
            raise RemoteError(
                f"unexpected status: {response.text[:200]}",
                endpoint=endpoint,
                status_code=response.status_code,
            )
        return response

    async def fetch_stargazers_page(
        self, owner: str, repo: str, page: int
    ) -> tuple[list[Stargazer], int]:
        """
        Fetch one page of stargazers.

        Args:
            owner: Repository owner
            repo: Repository name
            page: 1-based page number

        Returns:
            Stargazers on the page and the next page number (0 when last)
        """
        endpoint = "stargazers"
        response = await self._request(
            endpoint,
            f"/repos/{owner}/{repo}/stargazers",
            params={"page": page, "per_page": STARGAZERS_PER_PAGE},
            accept=STAR_MEDIA_TYPE,
        )

        try:
            items = response.json()
            stargazers = [Stargazer.from_api(item) for item in items]
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteError(
                f"failed to decode response: {e}", endpoint=endpoint
            ) from e

        return stargazers, _next_page(response)

    async def fetch_stargazers(self, owner: str, repo: str) -> list[Stargazer]:
        """
        Fetch every stargazer of a repository, following pagination.

        Any page failure fails the whole fetch; partial results are discarded.
        """
        stargazers: list[Stargazer] = []
        page = 1
        while page:
            page_items, page = await self.fetch_stargazers_page(owner, repo, page)
            stargazers.extend(page_items)

        logger.debug(
            "Fetched stargazers",
            repository=f"{owner}/{repo}",
            count=len(stargazers),
        )
        return stargazers

    async def get_rate_limit(self) -> RateLimit:
        """Get the current core API quota."""
        endpoint = "rate_limit"
        response = await self._request(endpoint, "/rate_limit")
        try:
            rate = response.json()["rate"]
            return RateLimit(
                limit=int(rate["limit"]),
                remaining=int(rate["remaining"]),
                reset=datetime.fromtimestamp(int(rate["reset"]), tz=UTC),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteError(
                f"failed to decode response: {e}", endpoint=endpoint
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()


class RetryingGitHubClient:
    """GitHub client wrapper with bounded retry and linear backoff."""

    def __init__(
        self,
        client: GitHubClient,
        max_retries: int = 3,
        backoff: float = 2.0,
        sleep: SleepFunc | None = None,
    ) -> None:
        self.client = client
        self.max_retries = max_retries
        self.backoff = backoff
        self._sleep = sleep

    async def fetch_stargazers(self, owner: str, repo: str) -> list[Stargazer]:
        """Fetch all stargazers, retrying the whole paginated fetch on failure."""
        retrying = retry_policy(
            self.max_retries,
            self.backoff,
            operation=f"fetch_stargazers:{owner}/{repo}",
            sleep=self._sleep,
        )
        return await retrying(self.client.fetch_stargazers, owner, repo)

    async def get_rate_limit(self) -> RateLimit:
        """Get the API quota with retry."""
        retrying = retry_policy(
            self.max_retries,
            self.backoff,
            operation="get_rate_limit",
            sleep=self._sleep,
        )
        return await retrying(self.client.get_rate_limit)

    async def aclose(self) -> None:
        await self.client.aclose()
