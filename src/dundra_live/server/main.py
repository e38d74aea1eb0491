"""Main entry point and server startup.

This module provides:
- start_server: Async method to start the WebSocket and HTTP servers
- main: Main entry point function
"""

import asyncio
import sys
import traceback
from typing import TYPE_CHECKING, Optional

import websockets

from ..core.config import get_config, setup_logging
from ..core.errors import DundraLiveError
from .internal.health import start_http_server

if TYPE_CHECKING:
    from .core import CompanionServer

logger = setup_logging(__name__)


async def start_server(
    server: "CompanionServer",
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> None:
    """Start the WebSocket server.

    Args:
        server: The CompanionServer instance
        host: Host to bind to (optional, uses server default)
        port: Port to bind to (optional, uses server default)
    """
    config = server.config
    server_host = host or server.host
    server_port = port or server.port

    http_port = config.http_port
    try:
        server._health_runner = await start_http_server(server, server_host, http_port)
    except OSError as e:
        logger.warning(f"HTTP server disabled, could not bind port {http_port}: {e}")

    server.store.start_sweeper(config.cleanup_interval_seconds, config.context_max_age_hours)

    logger.info(f"Starting WebSocket server on ws://{server_host}:{server_port}")
    logger.info(f"Recognizer: {server.recognizer.name}, Analyzer: {server.analyzer.name}")
    logger.info(
        f"Batch size: {server.scheduler.batch_size}, idle flush: {server.scheduler.idle_flush_seconds}s"
    )

    server_kwargs = {
        "ping_interval": config.get("server.ping_interval", 30),
        "ping_timeout": config.get("server.ping_timeout", 10),
        "max_size": config.max_message_bytes,
    }

    try:
        async with websockets.serve(server.handle_client, server_host, server_port, **server_kwargs):
            logger.info("Dundra live server is ready for connections!")

            # Keep server running
            await asyncio.Future()
    finally:
        await server.shutdown()


def main() -> None:
    """Main function to start the server."""
    from .core import CompanionServer

    try:
        server = CompanionServer(get_config())
    except (ValueError, DundraLiveError) as e:
        logger.error(f"Failed to initialize server: {e}")
        sys.exit(1)

    try:
        asyncio.run(server.start_server())
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.exception(f"Server error: {e}")
        logger.exception(traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
