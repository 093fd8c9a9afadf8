"""
Status web server.

Serves a plain keep-alive endpoint plus JSON metrics and recent logs for
an external dashboard. Runs on the bot's event loop.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
import aiosqlite
from aiohttp import web

from .telemetry import BotMetrics, LogRingBuffer

logger = logging.getLogger(__name__)

KEEP_ALIVE_TEXT = "LineDevs Keep-Alive OK"

METRICS_KEY = web.AppKey("metrics", BotMetrics)
LOG_BUFFER_KEY = web.AppKey("log_buffer", LogRingBuffer)
EXTRA_METRICS_KEY = web.AppKey("extra_metrics")
LOG_TAIL_KEY = web.AppKey("log_tail", int)


async def handle_root(request: web.Request) -> web.Response:
    return web.Response(text=KEEP_ALIVE_TEXT)


async def handle_metrics(request: web.Request) -> web.Response:
    app = request.app
    extra: Dict[str, Any] = {}
    provider = app[EXTRA_METRICS_KEY]
    if provider is not None:
        try:
            extra = await provider()
        except aiosqlite.Error as e:
            logger.warning(f"Could not collect storage metrics: {e}")
    return web.json_response(app[METRICS_KEY].snapshot(**extra))


async def handle_logs(request: web.Request) -> web.Response:
    app = request.app
    limit_param = request.query.get("limit")
    try:
        limit = int(limit_param) if limit_param else app[LOG_TAIL_KEY]
    except ValueError:
        raise web.HTTPBadRequest(text="limit must be an integer")
    buffer = app[LOG_BUFFER_KEY]
    limit = max(0, min(limit, buffer.capacity))
    return web.json_response(buffer.tail(limit))


def create_status_app(
    metrics: BotMetrics,
    log_buffer: LogRingBuffer,
    extra_metrics: Optional[Callable[[], Awaitable[Dict[str, Any]]]] = None,
    log_tail: int = 200,
) -> web.Application:
    """Build the aiohttp application."""
    app = web.Application()
    app[METRICS_KEY] = metrics
    app[LOG_BUFFER_KEY] = log_buffer
    app[EXTRA_METRICS_KEY] = extra_metrics
    app[LOG_TAIL_KEY] = log_tail

    app.router.add_get("/", handle_root)
    app.router.add_get("/api/metrics", handle_metrics)
    app.router.add_get("/api/logs", handle_logs)
    return app


async def start_status_server(app: web.Application, port: int, host: str = "0.0.0.0") -> web.AppRunner:
    """Start serving app. The caller cleans up the returned runner."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Status server listening on port {port}")
    return runner


async def ping_self(session: aiohttp.ClientSession, url: str) -> Optional[int]:
    """One keep-alive ping. Returns the HTTP status, or None on failure."""
    try:
        async with session.get(url) as response:
            logger.debug(f"Keep-alive ping to {url} -> {response.status}")
            return response.status
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"Keep-alive ping failed: {e}")
        return None
