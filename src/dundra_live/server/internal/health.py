"""HTTP side of the server.

This module provides:
- health_handler: Health check endpoint handler
- start_http_server: Serve /health and the /ws room socket route
"""

import time
from typing import TYPE_CHECKING

from aiohttp import web

from ...core.config import setup_logging

if TYPE_CHECKING:
    from ..core import CompanionServer

logger = setup_logging(__name__)


async def health_handler(server: "CompanionServer", request: web.Request) -> web.Response:
    """HTTP health check endpoint for service monitoring.

    Args:
        server: The CompanionServer instance
        request: The HTTP request

    Returns:
        JSON response with health status

    """
    return web.json_response(
        {
            "status": "healthy",
            "service": "dundra-live",
            "connected_clients": len(server.connected_clients),
            "active_sessions": server.sessions.get_active_session_count(),
            "contexts": len(server.store),
            "rooms": server.rooms.room_count(),
            "recognizer": {"name": server.recognizer.name, "ready": server.recognizer.is_ready},
            "analyzer": {"name": server.analyzer.name, "ready": server.analyzer.is_ready},
            "timestamp": time.time(),
        }
    )


def create_app(server: "CompanionServer") -> web.Application:
    app = web.Application()
    # Closures pass the server to the handlers
    app.router.add_get("/health", lambda req: health_handler(server, req))
    app.router.add_get("/ws", server.handle_room_socket)
    return app


async def start_http_server(server: "CompanionServer", host: str, port: int) -> web.AppRunner:
    """Start the HTTP server.

    Args:
        server: The CompanionServer instance
        host: Host to bind to
        port: Port to bind to

    Returns:
        The aiohttp AppRunner instance

    """
    runner = web.AppRunner(create_app(server))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"HTTP health endpoint available at http://{host}:{port}/health")
    logger.info(f"Room socket available at ws://{host}:{port}/ws")
    return runner
