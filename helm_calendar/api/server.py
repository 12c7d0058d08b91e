"""aiohttp server for the calendar engine.

Runs the HTTP API, an initial aggregation pass and the notification
scheduler until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any, Optional

from aiohttp import web

from ..core.config_manager import DEFAULT_SERVER_BIND, DEFAULT_SERVER_PORT, get_config_value
from ..core.dependencies import AppDependencies, DependencyContainer
from ..domain.exceptions import HelmCalendarError
from .routes import error_status, register_api_routes

logger = logging.getLogger(__name__)

DEPS_KEY: web.AppKey[AppDependencies] = web.AppKey("deps", AppDependencies)


@web.middleware
async def error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Translate engine errors escaping a handler into JSON error responses."""
    try:
        return await handler(request)
    except HelmCalendarError as e:
        status = error_status(e)
        logger.warning("%s %s failed with %d: %s", request.method, request.path, status, e)
        return web.json_response({"error": str(e)}, status=status)


def make_app(deps: AppDependencies) -> web.Application:
    """Create the aiohttp application with all routes registered."""
    app = web.Application(middlewares=[error_middleware])
    app[DEPS_KEY] = deps
    register_api_routes(app, deps)

    async def _close_source(_app: web.Application) -> None:
        aclose = getattr(deps.source, "aclose", None)
        if callable(aclose):
            try:
                await aclose()
            except Exception as e:
                logger.warning("Error closing data source: %s", e)

    app.on_cleanup.append(_close_source)
    return app


async def _serve(deps: AppDependencies, external_stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the server and background tasks until signalled to stop.

    Args:
        deps: Application dependencies (scheduler optional)
        external_stop_event: Event owned by the caller; when given, signal
            handlers are not registered
    """
    stop_event = external_stop_event or asyncio.Event()
    config = deps.config

    app = make_app(deps)
    runner = web.AppRunner(app)
    await runner.setup()

    host = get_config_value(config, "server_bind", DEFAULT_SERVER_BIND)
    port = int(get_config_value(config, "server_port", DEFAULT_SERVER_PORT))
    site = web.TCPSite(runner, host=host, port=port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", host, port)
        await runner.cleanup()
        raise
    logger.info("Server started on http://%s:%d", host, port)

    try:
        await deps.service.refresh()
    except Exception:
        logger.exception("Initial calendar refresh failed")

    if deps.scheduler is not None:
        deps.scheduler.start()

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    if deps.scheduler is not None:
        await deps.scheduler.stop()
    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: Any) -> None:
    """Build dependencies from ``config`` and serve until interrupted."""
    deps = DependencyContainer.build_dependencies(config, with_scheduler=True)
    try:
        asyncio.run(_serve(deps))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
