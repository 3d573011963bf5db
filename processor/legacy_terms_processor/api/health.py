"""
Health endpoint for the legacy terms processor.

Exposes GET /health for orchestrator liveness probes. The response is 200
while the event stream is connected, the store pool is open and the
applier loop is consuming, 503 otherwise. The body carries the individual
checks and applier statistics.

Invariants:
    - The endpoint never touches the store; it only reads component state
    - A failing check turns the status to 503, never to 500
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

logger = logging.getLogger(__name__)

HealthCheck = Callable[[], Awaitable[dict[str, Any]]]


def create_health_app(check: HealthCheck) -> web.Application:
    """Create the aiohttp application serving /health.

    Args:
        check: Coroutine function returning a dict with a boolean "healthy"
    """
    app = web.Application()
    app.router.add_get("/health", lambda r: handle_health(r, check))
    return app


async def handle_health(request: web.Request, check: HealthCheck) -> web.Response:
    """Handle GET /health."""
    try:
        result = await check()
    except Exception as e:
        logger.error(f"Health check error: {e}", exc_info=True)
        result = {"healthy": False, "error": str(e)}

    status = 200 if result.get("healthy") else 503
    return web.json_response(result, status=status)


class HealthServer:
    """Runs the health application on its own TCP site.

    Example:
        >>> server = HealthServer(processor.health, port=3000)
        >>> await server.start()
        >>> await server.stop()
    """

    def __init__(self, check: HealthCheck, host: str = "0.0.0.0", port: int = 3000) -> None:
        self.check = check
        self.host = host
        self.port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        self._runner = web.AppRunner(create_health_app(self.check))
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"Health endpoint running on http://{self.host}:{self.port}/health")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Health endpoint stopped")
