#!/usr/bin/env python3
"""
Application entry point for GitHub Stars Notify.

This module wires the configuration reloader, polling orchestrator and HTTP
server together and runs them until the process is asked to shut down.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

import structlog

from .config import load_config
from .config_reloader import ConfigReloader
from .logging_config import setup_logging
from .main import OperationalServer, create_app
from .metrics import StarsMetrics, get_metrics
from .polling import PollingOrchestrator

logger = structlog.get_logger(__name__)


class StandaloneApp:
    """Main application class."""

    def __init__(self, config_path: str | Path, metrics: StarsMetrics | None = None):
        """
        Initialize the application.

        Args:
            config_path: Path of the YAML configuration file
            metrics: Optional metrics sink, defaults to the global metrics
        """
        self.config_path = Path(config_path)
        self.metrics = metrics or get_metrics()
        self.reloader: ConfigReloader | None = None
        self.polling_orchestrator: PollingOrchestrator | None = None
        self.server: OperationalServer | None = None

    async def initialize(self) -> None:
        """Initialize all application components."""
        config = load_config(self.config_path)
        setup_logging(config.logging.level, config.logging.format)

        logger.info(
            "Initializing GitHub Stars Notify",
            config=str(self.config_path),
            repositories=len(config.repositories),
        )

        self.reloader = ConfigReloader(self.config_path, config, metrics=self.metrics)
        self.polling_orchestrator = PollingOrchestrator(
            self.reloader, metrics=self.metrics
        )
        self.reloader.add_callback(self.polling_orchestrator.handle_config_reload)
        self.server = OperationalServer(
            create_app(self.polling_orchestrator, self.metrics), config.server
        )

        logger.info("Initialization complete")

    async def start(self) -> None:
        """Start the application and run until the polling loop ends."""
        if not (self.reloader and self.polling_orchestrator and self.server):
            raise RuntimeError("Application not initialized")

        await self.reloader.start()
        await self.server.start()
        await self.polling_orchestrator.start_polling()

    async def stop(self) -> None:
        """Stop the application. Safe to call after a partial start."""
        logger.info("Stopping GitHub Stars Notify")

        if self.reloader:
            await self.reloader.stop()

        if self.polling_orchestrator:
            orchestrator = self.polling_orchestrator
            await orchestrator.stop_polling()
            await orchestrator.github_client.aclose()
            for notifier in orchestrator.notifiers.values():
                await notifier.aclose()
            await orchestrator.state_store.close()

        if self.server:
            await self.server.stop()

        logger.info("GitHub Stars Notify stopped")

    def setup_signal_handlers(self, task: "asyncio.Task[None]") -> None:
        """Cancel the main task on SIGINT or SIGTERM."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self._handle_signal, signum, task)

    @staticmethod
    def _handle_signal(signum: int, task: "asyncio.Task[None]") -> None:
        logger.info("Received signal, initiating shutdown", signal=signum)
        task.cancel()


async def run(config_path: str | Path) -> None:
    """Run the service until a shutdown signal arrives."""
    app = StandaloneApp(config_path)
    current = asyncio.current_task()
    assert current is not None

    try:
        await app.initialize()
        app.setup_signal_handlers(current)
        await app.start()
    except asyncio.CancelledError:
        logger.info("Shutdown requested")
    finally:
        await app.stop()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="stars-notify",
        description="Notify Discord and Slack about new GitHub stargazers",
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="path to the YAML configuration file (default: config.yaml)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    try:
        asyncio.run(run(args.config))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.error("Application failed", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
