"""
Web Server - Gallery Downloader Bot

Small aiohttp application for liveness checks, optionally serving the
public downloads directory.
"""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web

from . import config

logger = logging.getLogger(__name__)

SERVICE_NAME = 'Telegram Gallery Bot'
SERVICE_VERSION = '1.0.0'

STARTED_AT_KEY = web.AppKey('started_at', float)


async def handle_health(request: web.Request) -> web.Response:
    """GET /health"""
    started_at = request.app[STARTED_AT_KEY]
    return web.json_response({
        'status': 'ok',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'uptime': round(time.time() - started_at, 3)
    })


async def handle_root(request: web.Request) -> web.Response:
    """GET /"""
    return web.json_response({
        'service': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'status': 'running'
    })


def create_web_app(downloads_dir: Optional[str] = None, started_at: float = None) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        downloads_dir: Serve this directory under /downloads when given
        started_at: Unix time used for the uptime figure
    """
    app = web.Application()
    app[STARTED_AT_KEY] = started_at or time.time()
    app.router.add_get('/health', handle_health)
    app.router.add_get('/', handle_root)

    if downloads_dir:
        os.makedirs(downloads_dir, exist_ok=True)
        app.router.add_static('/downloads', downloads_dir, show_index=False)
        logger.info(f"Serving {downloads_dir} under /downloads")

    return app


async def start_web_server(port: int = None, downloads_dir: Optional[str] = None,
                           started_at: float = None) -> Optional[web.AppRunner]:
    """
    Start the server in the running event loop.

    Returns:
        The AppRunner (pass to stop_web_server), or None when port is 0
    """
    port = config.HEALTH_PORT if port is None else port
    if not port:
        logger.info("Health server disabled")
        return None

    runner = web.AppRunner(create_web_app(downloads_dir, started_at))
    await runner.setup()
    site = web.TCPSite(runner, '0.0.0.0', port)
    await site.start()
    logger.info(f"Health check server running on port {port}")
    return runner


async def stop_web_server(runner: Optional[web.AppRunner]):
    if runner is None:
        return
    await runner.cleanup()
    logger.info("Health check server stopped")
