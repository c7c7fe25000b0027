"""
Health check HTTP server for container orchestration.

Provides /health endpoint for Docker healthchecks and monitoring.
"""
from typing import Any, Callable, Dict, Optional

from aiohttp import web
import structlog

logger = structlog.get_logger()

StatusProvider = Callable[[], Dict[str, Any]]


class HealthCheckServer:
    """Simple HTTP server for health checks."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8080,
        status_provider: Optional[StatusProvider] = None,
    ):
        """
        Initialize health check server.

        Args:
            host: Host to bind to (default: 0.0.0.0)
            port: Port to bind to (default: 8080)
            status_provider: Callable returning extra status fields
        """
        self.host = host
        self.port = port
        self.status_provider = status_provider
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Configure HTTP routes."""
        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/", self.root_handler)

    async def health_handler(self, request: web.Request) -> web.Response:
        """
        Health check endpoint.

        Returns:
            200 OK with status info, 503 once shutdown has begun
        """
        payload: Dict[str, Any] = {
            "status": "healthy",
            "service": "hydration-bot",
        }
        if self.status_provider is not None:
            payload.update(self.status_provider())

        status = 503 if payload.get("shutting_down") else 200
        if status == 503:
            payload["status"] = "shutting_down"
        return web.json_response(payload, status=status)

    async def root_handler(self, request: web.Request) -> web.Response:
        """
        Root endpoint.

        Returns:
            200 OK with service info
        """
        return web.json_response({
            "service": "hydration-bot",
            "endpoints": {
                "health": "/health"
            }
        })

    async def start(self) -> None:
        """Start the health check server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(
            self.runner,
            self.host,
            self.port
        )
        await self.site.start()

        logger.info(
            "health_server_started",
            host=self.host,
            port=self.port
        )

    async def stop(self) -> None:
        """Stop the health check server."""
        if self.site is not None:
            await self.site.stop()

        if self.runner is not None:
            await self.runner.cleanup()

        logger.info("health_server_stopped")
