"""
Configuration hot reload for GitHub Stars Notify.

The reloader watches the configuration file with watchdog, collapses bursts
of file system events into a single reload, validates the new file, runs the
registered callbacks in order and only then swaps the live snapshot.
"""

import asyncio
import threading
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import Config, detect_changes, load_config
from .exceptions import ConfigurationError
from .metrics import StarsMetrics

logger = structlog.get_logger(__name__)

ReloadCallback = Callable[[Config, Config], Awaitable[None]]

DEFAULT_DEBOUNCE_SECONDS = 0.2


class ReadWriteLock:
    """Many concurrent readers or one exclusive writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class _ConfigFileHandler(FileSystemEventHandler):
    """Forwards write events on the config file to the reloader."""

    def __init__(self, config_path: Path, on_change: Callable[[], None]) -> None:
        super().__init__()
        self._config_path = config_path.resolve()
        self._on_change = on_change

    def _matches(self, raw: Any) -> bool:
        if not raw:
            return False
        if isinstance(raw, bytes):
            raw = raw.decode()
        return Path(raw).resolve() == self._config_path

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        # editors often save via create+move instead of in-place writes
        if event.event_type not in {"modified", "created", "moved"}:
            return
        if self._matches(event.src_path) or self._matches(
            getattr(event, "dest_path", None)
        ):
            self._on_change()


class ConfigReloader:
    """
    Owns the live configuration snapshot and reloads it on file changes.

    Readers call ``get_config()`` and always see a complete snapshot. A new
    snapshot becomes visible only after every registered callback accepted
    it; the first failing callback aborts the reload and the old snapshot
    stays live. Effects of callbacks that already ran are not rolled back.
    """

    def __init__(
        self,
        config_path: str | Path,
        config: Config | None = None,
        metrics: StarsMetrics | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        """
        Initialize the reloader.

        Args:
            config_path: Path of the YAML configuration file
            config: Initial snapshot; loaded from ``config_path`` when omitted
            metrics: Optional metrics sink
            debounce_seconds: Quiet window before a change is reloaded
        """
        self.config_path = Path(config_path)
        self.metrics = metrics
        self.debounce_seconds = debounce_seconds
        self._config = config if config is not None else load_config(config_path)
        self._lock = ReadWriteLock()
        self._callbacks: list[ReloadCallback] = []
        self._reload_lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._changed: asyncio.Event | None = None
        self._observer: Any = None
        self._task: asyncio.Task[None] | None = None
        self.running = False

    def get_config(self) -> Config:
        """Get the current configuration snapshot."""
        with self._lock.read():
            return self._config

    def add_callback(self, callback: ReloadCallback) -> None:
        """Register a callback invoked as ``callback(old, new)`` on reload."""
        self._callbacks.append(callback)

    async def start(self) -> None:
        """Start watching the configuration file."""
        if self.running:
            return

        self._loop = asyncio.get_running_loop()
        self._changed = asyncio.Event()

        handler = _ConfigFileHandler(self.config_path, self.notify_change)
        observer = Observer()
        observer.schedule(
            handler, str(self.config_path.resolve().parent), recursive=False
        )
        observer.daemon = True
        observer.start()
        self._observer = observer

        self._task = asyncio.create_task(self._watch(), name="config-reloader")
        self.running = True
        logger.info("Config reloader started", path=str(self.config_path))

    def notify_change(self) -> None:
        """Signal that the configuration file changed. Safe from any thread."""
        loop, changed = self._loop, self._changed
        if loop is None or changed is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(changed.set)

    async def _watch(self) -> None:
        assert self._changed is not None
        changed = self._changed
        while True:
            await changed.wait()
            while True:
                changed.clear()
                try:
                    await asyncio.wait_for(changed.wait(), self.debounce_seconds)
                except TimeoutError:
                    break
            await self.reload()

    async def reload(self) -> bool:
        """
        Attempt one reload of the configuration file.

        Returns:
            True if a new snapshot was swapped in
        """
        async with self._reload_lock:
            logger.info("Config file changed, reloading", path=str(self.config_path))

            try:
                new_config = await asyncio.to_thread(load_config, self.config_path)
            except ConfigurationError as e:
                logger.error("Failed to reload config, keeping old", error=str(e))
                self._record("invalid")
                return False

            old_config = self.get_config()
            changes = detect_changes(old_config, new_config)
            if not changes:
                logger.debug("Config unchanged, skipping reload")
                self._record("unchanged")
                return False

            logger.info("Config changes detected", changes=list(changes))

            for callback in self._callbacks:
                try:
                    await callback(old_config, new_config)
                except Exception as e:
                    logger.error(
                        "Config reload callback failed, keeping old config",
                        callback=getattr(callback, "__qualname__", repr(callback)),
                        error=str(e),
                    )
                    self._record("failed")
                    return False

            with self._lock.write():
                self._config = new_config

            self._record("success")
            logger.info("Config reloaded successfully")
            return True

    def _record(self, status: str) -> None:
        if self.metrics:
            self.metrics.record_config_reload(status)

    async def stop(self) -> None:
        """Stop watching. Calling it more than once is harmless."""
        if not self.running:
            return
        self.running = False

        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join)
            self._observer = None

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._loop = None
        self._changed = None
        logger.info("Config reloader stopped")
