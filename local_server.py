# local_server.py
"""Run the Allowance Tracker API locally (no Lambda or Functions host needed).

Serves the children routes from an in-memory store using the same handlers and
authorization gate as the cloud deployments. Requires config.yaml or
JWT_SECRET_KEY in the environment.
"""

import asyncio
import logging

from aiohttp import web

from handlers.children import build_route_table
from handlers.memory import InMemoryChildrenService
from server.adapters.local_aiohttp import create_local_app
from server.http_handler import create_http_handler

logger = logging.getLogger(__name__)

HOST = "localhost"
PORT = 8000


async def start_server() -> None:
    """Start the local HTTP server and block until interrupted."""
    http_handler = create_http_handler()
    route_table = build_route_table(InMemoryChildrenService())
    app = create_local_app(http_handler, route_table)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, HOST, PORT)
    await site.start()

    logger.info(
        "Local server running",
        extra={"url": f"http://{HOST}:{PORT}{route_table.prefix}", "routes": len(route_table)},
    )

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


if __name__ == "__main__":
    try:
        asyncio.run(start_server())
    except KeyboardInterrupt:
        pass
