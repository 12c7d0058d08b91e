"""Calendar, notification and materialization API routes."""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from ..domain.dates import to_date_key
from ..domain.exceptions import (
    DataSourceError,
    InstanceExistsError,
    ItemNotFoundError,
    NotRecurringError,
    OccurrenceNotScheduledError,
)
from ..domain.models import ItemType
from ..domain.notification_feed import DEFAULT_UPCOMING_DAYS

logger = logging.getLogger(__name__)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def error_status(exc: Exception) -> int:
    """HTTP status for an engine exception."""
    if isinstance(exc, ItemNotFoundError):
        return 404
    if isinstance(exc, InstanceExistsError):
        return 409
    if isinstance(exc, (NotRecurringError, OccurrenceNotScheduledError)):
        return 422
    if isinstance(exc, DataSourceError):
        return 502
    if isinstance(exc, ValueError):
        return 400
    return 500


def _int_query(request: web.Request, name: str, default: int) -> int:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return default
    value = int(raw)
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def register_api_routes(app: web.Application, deps: Any) -> None:
    """Register API routes.

    Args:
        app: aiohttp web application
        deps: AppDependencies with service, health_tracker and time_provider
    """
    service = deps.service
    health_tracker = deps.health_tracker
    time_provider = deps.time_provider

    async def get_calendar(request: web.Request) -> web.Response:
        """Whole calendar index; refreshes first when never built or ``refresh=1``."""
        try:
            days = request.query.get("days")
            wants_refresh = request.query.get("refresh", "").lower() in ("1", "true", "yes")
            if days is not None or wants_refresh or service.index.generation == 0:
                index = await service.refresh(_int_query(request, "days", service.aggregator.lookahead_days))
            else:
                index = service.index
        except ValueError as e:
            return _error(str(e), 400)
        return web.json_response(index.to_dict())

    async def get_day(request: web.Request) -> web.Response:
        """Items for one date with exact and display counts."""
        try:
            key = to_date_key(request.match_info["date"])
        except ValueError as e:
            return _error(str(e), 400)
        if service.index.generation == 0:
            await service.refresh()
        return web.json_response(
            {
                "date": key,
                "items": [item.to_api_dict() for item in service.aggregator.get_items_for_date(key)],
                "count": service.aggregator.get_item_count_for_date(key),
                "dot_count": service.aggregator.get_dot_count_for_date(key),
            }
        )

    async def get_upcoming(request: web.Request) -> web.Response:
        try:
            days = _int_query(request, "days", DEFAULT_UPCOMING_DAYS)
        except ValueError as e:
            return _error(str(e), 400)
        upcoming = await service.feed.get_upcoming(days)
        return web.json_response(
            {"days": days, "items": [u.model_dump(mode="json") for u in upcoming]}
        )

    async def get_due_today(_request: web.Request) -> web.Response:
        due = await service.feed.get_due_today()
        return web.json_response(
            {
                "date": time_provider.today_local().isoformat(),
                "items": [d.model_dump(mode="json") for d in due],
            }
        )

    async def post_notify_now(_request: web.Request) -> web.Response:
        """Manual trigger for the scheduled notification pass."""
        sent = await service.feed.notify_now()
        health_tracker.record_notification_check()
        return web.json_response(
            {"sent": len(sent), "notifications": [n.model_dump(mode="json") for n in sent]}
        )

    async def post_materialize(request: web.Request) -> web.Response:
        """Materialize an occurrence.

        Body: ``{"type": "task"|"todo", "parent_id": ..., "date": "YYYY-MM-DD"}``
        or ``{"type": ..., "virtual_id": "virtual-..."}``. The date defaults to
        today.
        """
        try:
            data = await request.json()
        except ValueError:
            return _error("invalid json", 400)
        if not isinstance(data, dict):
            return _error("body must be an object", 400)

        try:
            kind = ItemType(data.get("type"))
        except ValueError:
            return _error("type must be 'task' or 'todo'", 400)

        try:
            if data.get("virtual_id"):
                instance, poll = await service.materialize_virtual(kind, data["virtual_id"])
            else:
                parent_id = data.get("parent_id")
                if not parent_id or not isinstance(parent_id, str):
                    return _error("missing or invalid parent_id", 400)
                due = data.get("date") or time_provider.today_local()
                instance, poll = await service.materialize_and_refresh(kind, parent_id, due)
        except (
            ItemNotFoundError,
            NotRecurringError,
            OccurrenceNotScheduledError,
            DataSourceError,
            ValueError,
        ) as e:
            logger.info("Materialize rejected: %s", e)
            return _error(str(e), error_status(e))

        return web.json_response(
            {
                "instance": instance.to_store_dict(),
                "visible_in_calendar": poll.succeeded,
            },
            status=200,
        )

    async def health_check(_request: web.Request) -> web.Response:
        """Health check endpoint for monitoring system status."""
        now_iso = time_provider.now_local().isoformat()
        health_data = health_tracker.to_dict(now_iso)
        health_data["fetch_stats"] = service.aggregator.orchestrator.get_health_stats()
        http_status = 200 if health_data["status"] == "ok" else 503
        return web.json_response(health_data, status=http_status)

    app.router.add_get("/api/health", health_check)
    app.router.add_get("/api/calendar", get_calendar)
    app.router.add_get("/api/calendar/{date}", get_day)
    app.router.add_get("/api/notifications/upcoming", get_upcoming)
    app.router.add_get("/api/notifications/due-today", get_due_today)
    app.router.add_post("/api/notifications/notify-now", post_notify_now)
    app.router.add_post("/api/materialize", post_materialize)
