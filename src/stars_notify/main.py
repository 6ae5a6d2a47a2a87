"""
Operational HTTP surface for GitHub Stars Notify.

This module builds the FastAPI application serving health, Prometheus
metrics and service status, and runs it with uvicorn on a socket bound
up front so that an unavailable port fails startup immediately.
"""

import asyncio
import socket
from typing import TYPE_CHECKING, Any

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Response

from . import __version__
from .config import ServerConfig
from .exceptions import ServiceError
from .metrics import StarsMetrics, get_metrics

if TYPE_CHECKING:
    from .polling import PollingOrchestrator

logger = structlog.get_logger(__name__)


def create_app(
    orchestrator: "PollingOrchestrator | None" = None,
    metrics: StarsMetrics | None = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        orchestrator: Orchestrator reported on ``/status``
        metrics: Metrics exported on ``/metrics``

    Returns:
        Configured application
    """
    app = FastAPI(
        title="GitHub Stars Notify",
        description="Notifies Discord and Slack about new GitHub stargazers",
        version=__version__,
    )
    app.state.orchestrator = orchestrator
    app.state.metrics = metrics or get_metrics()

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        """Prometheus scrape endpoint."""
        sink: StarsMetrics = app.state.metrics
        return Response(content=sink.render(), media_type=sink.content_type)

    @app.get("/status")
    async def status() -> dict[str, Any]:
        """Service status endpoint."""
        if app.state.orchestrator is None:
            raise HTTPException(status_code=503, detail="service not initialized")
        return app.state.orchestrator.get_status()

    return app


class OperationalServer:
    """Runs the FastAPI application with uvicorn inside the current loop."""

    def __init__(self, app: FastAPI, config: ServerConfig) -> None:
        self.app = app
        self.config = config
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def port(self) -> int:
        """Get the bound port, which differs from the configured one for 0."""
        if self._socket is None:
            return self.config.port
        return int(self._socket.getsockname()[1])

    def bind(self) -> socket.socket:
        """
        Bind the listening socket.

        Raises:
            ServiceError: If the address cannot be bound
        """
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        try:
            sock = socket.create_server(
                (self.config.host, self.config.port), family=family
            )
        except OSError as e:
            raise ServiceError(
                f"failed to bind {self.config.host}:{self.config.port}: {e}",
                component="server",
            ) from e
        self._socket = sock
        return sock

    async def start(self) -> None:
        """Bind the socket and start serving in a background task."""
        sock = self.bind()
        uv_config = uvicorn.Config(
            self.app,
            log_config=None,
            lifespan="off",
            timeout_keep_alive=self.config.read_timeout_seconds,
            timeout_graceful_shutdown=self.config.write_timeout_seconds,
        )
        self._server = uvicorn.Server(uv_config)
        self._task = asyncio.create_task(
            self._server.serve(sockets=[sock]), name="http-server"
        )
        logger.info(
            "HTTP server started",
            host=self.config.host,
            port=self.port,
        )

    async def stop(self) -> None:
        """Stop serving and release the socket."""
        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        logger.info("HTTP server stopped")
