"""
State storage for GitHub Stars Notify.

Each monitored repository has one snapshot holding the stargazers seen on the
last check and, one level deep, the stargazers seen on the check before it.
The file backend writes one JSON document per repository and replaces it
atomically so a crash never leaves a torn file behind.
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

import structlog

from ..config import StorageConfig
from ..exceptions import StorageError
from ..github_client import Stargazer

logger = structlog.get_logger(__name__)


@dataclass
class EntitySnapshot:
    """Persisted stargazer state for one repository."""

    owner: str
    repo: str
    last_check: datetime | None = None
    stargazers: list[Stargazer] = field(default_factory=list)
    previous: "EntitySnapshot | None" = None

    @property
    def stargazer_ids(self) -> set[int]:
        return {s.id for s in self.stargazers}

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner": self.owner,
            "repo": self.repo,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "stargazers": [s.to_dict() for s in self.stargazers],
            "previous_data": self.previous.to_dict() if self.previous else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EntitySnapshot":
        previous = data.get("previous_data")
        last_check = data.get("last_check")
        return cls(
            owner=data["owner"],
            repo=data["repo"],
            last_check=datetime.fromisoformat(last_check) if last_check else None,
            stargazers=[Stargazer.from_dict(s) for s in data.get("stargazers") or []],
            previous=cls.from_dict(previous) if previous else None,
        )


class StateStore(ABC):
    """Abstract base class for stargazer state storage."""

    async def initialize(self) -> None:
        """Prepare the backend for use."""

    @abstractmethod
    async def load(self, owner: str, repo: str) -> EntitySnapshot:
        """
        Load the snapshot for a repository.

        Args:
            owner: Repository owner
            repo: Repository name

        Returns:
            Stored snapshot, or an empty one if nothing was stored yet

        Raises:
            StorageError: If stored data exists but cannot be read
        """
        pass

    @abstractmethod
    async def save(self, owner: str, repo: str, stargazers: list[Stargazer]) -> None:
        """
        Store the observed stargazers as the new current snapshot.

        The previous current set becomes the prior snapshot when it was
        non-empty.

        Args:
            owner: Repository owner
            repo: Repository name
            stargazers: Stargazers observed on this check
        """
        pass

    async def get_new_stargazers(
        self, owner: str, repo: str, observed: list[Stargazer]
    ) -> list[Stargazer]:
        """
        Get stargazers that are not in the stored current set.

        On first sight (nothing stored, or an empty stored set) every observed
        stargazer is new. This is a pure read and never modifies state.

        Args:
            owner: Repository owner
            repo: Repository name
            observed: Stargazers observed on this check

        Returns:
            New stargazers in observed order
        """
        snapshot = await self.load(owner, repo)
        if not snapshot.stargazers:
            return list(observed)

        known = snapshot.stargazer_ids
        return [s for s in observed if s.id not in known]

    async def get_last_check_time(self, owner: str, repo: str) -> datetime | None:
        snapshot = await self.load(owner, repo)
        return snapshot.last_check

    async def close(self) -> None:
        """Release backend resources."""


class FileStateStore(StateStore):
    """JSON file per repository, replaced atomically on every save."""

    def __init__(self, base_path: str | Path) -> None:
        self.base_path = Path(base_path)
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"failed to create storage directory: {e}",
                operation="initialize",
                path=str(self.base_path),
            ) from e
        logger.info("File state store initialized", path=str(self.base_path))

    def path_for(self, owner: str, repo: str) -> Path:
        """Get the state file path for a repository."""
        key = quote(f"{owner}/{repo}", safe="")
        return self.base_path / f"{key}.json"

    async def load(self, owner: str, repo: str) -> EntitySnapshot:
        async with self._lock:
            return await asyncio.to_thread(self._read, owner, repo)

    def _read(self, owner: str, repo: str) -> EntitySnapshot:
        path = self.path_for(owner, repo)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return EntitySnapshot(owner=owner, repo=repo)
        except OSError as e:
            raise StorageError(
                f"failed to read file: {e}", operation="load", path=str(path)
            ) from e

        try:
            return EntitySnapshot.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(
                f"failed to unmarshal data: {e}", operation="load", path=str(path)
            ) from e

    async def save(self, owner: str, repo: str, stargazers: list[Stargazer]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, owner, repo, stargazers)

    def _write(self, owner: str, repo: str, stargazers: list[Stargazer]) -> None:
        current = self._read(owner, repo)
        previous = None
        if current.stargazers:
            previous = EntitySnapshot(
                owner=current.owner,
                repo=current.repo,
                last_check=current.last_check,
                stargazers=current.stargazers,
            )

        snapshot = EntitySnapshot(
            owner=owner,
            repo=repo,
            last_check=datetime.now(UTC),
            # dict keys keep the first occurrence of each stargazer id
            stargazers=list(dict.fromkeys(stargazers)),
            previous=previous,
        )

        path = self.path_for(owner, repo)
        tmp_path = path.with_name(path.name + ".tmp")
        data = json.dumps(snapshot.to_dict(), indent=2)

        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(
                f"failed to write temp file: {e}", operation="save", path=str(path)
            ) from e

        try:
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(
                f"failed to rename temp file: {e}", operation="save", path=str(path)
            ) from e

        logger.debug(
            "Saved repository state",
            repository=f"{owner}/{repo}",
            stargazers=len(snapshot.stargazers),
        )


class StateStoreFactory:
    """Factory for creating the configured state store backend."""

    @staticmethod
    def create_state_store(config: StorageConfig) -> StateStore:
        """
        Create a state store for the storage configuration.

        Raises:
            StorageError: If the storage type is not supported
        """
        if config.type == "file":
            logger.info("Creating file state store", path=config.path)
            return FileStateStore(config.path)
        raise StorageError(
            f"unsupported storage type: {config.type}", operation="create"
        )

    @staticmethod
    def get_supported_types() -> list[str]:
        return ["file"]


def create_state_store(config: StorageConfig) -> StateStore:
    return StateStoreFactory.create_state_store(config)
