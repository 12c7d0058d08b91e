"""Command-line entry for helm_calendar.

Each subcommand builds the engine against the configured data source, runs
one operation and prints JSON to stdout. ``serve`` runs the HTTP API and
notification scheduler until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, NoReturn, Optional

from . import _init_logging, load_config, run_server

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the helm_calendar CLI."""
    parser = argparse.ArgumentParser(
        prog="helm-calendar",
        description="Recurring task/todo calendar engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  helm-calendar calendar --lookahead-days 14
  helm-calendar day 2025-03-05
  helm-calendar materialize todo 6f1c... 2025-03-05
  helm-calendar serve --port 8765
        """,
    )
    parser.add_argument("--store", metavar="PATH", help="JSON item store (default: HELM_STORE_PATH)")
    parser.add_argument("--backend-url", metavar="URL", help="Use an HTTP backend instead of the JSON store")
    parser.add_argument("--lookahead-days", type=int, metavar="N", help="Virtual occurrence horizon")
    parser.add_argument("--log-level", metavar="LEVEL", help="Log level (default: WARNING for commands)")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("calendar", help="Print the aggregated calendar index")

    day = sub.add_parser("day", help="Print items and counts for one date")
    day.add_argument("date", help="YYYY-MM-DD")

    upcoming = sub.add_parser("upcoming", help="Projected dates per recurring parent")
    upcoming.add_argument("--days", type=int, default=7, help="Look-ahead in days (default: 7)")

    sub.add_parser("due-today", help="Items due today")
    sub.add_parser("notify-now", help="Run the notification pass once")

    materialize = sub.add_parser("materialize", help="Materialize a recurring occurrence")
    materialize.add_argument("kind", choices=["task", "todo"])
    materialize.add_argument("parent_id")
    materialize.add_argument("date", nargs="?", help="YYYY-MM-DD (default: today)")

    add = sub.add_parser("add", help="Add a task or todo to the JSON store")
    add.add_argument("kind", choices=["task", "todo"])
    add.add_argument("title")
    add.add_argument("--due", help="Due date YYYY-MM-DD")
    add.add_argument("--pattern", choices=["daily", "weekly", "monthly", "yearly"])
    add.add_argument("--config", help='Recurrence config JSON, e.g. \'{"weekDays": [1, 3]}\'')
    add.add_argument("--end", help="Recurrence end date YYYY-MM-DD")
    add.add_argument("--reminder", help="Reminder time HH:MM")

    serve = sub.add_parser("serve", help="Run the HTTP API and notification scheduler")
    serve.add_argument("--port", type=int, metavar="PORT", help="Port (default: 8765)")
    serve.add_argument("--bind", metavar="HOST", help="Bind address (default: 127.0.0.1)")

    return parser


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=False))


async def _run_command(args: argparse.Namespace, cfg: dict) -> Any:
    from helm_calendar.core.dependencies import DependencyContainer
    from helm_calendar.domain.dates import to_date_key
    from helm_calendar.domain.models import ItemType

    if args.command == "add":
        from helm_calendar.store.json_store import JsonItemStore

        store = JsonItemStore(cfg["store_path"])
        fields: dict[str, Any] = {}
        if args.due:
            fields["due_date"] = args.due
        if args.pattern:
            fields["recurrence_pattern"] = args.pattern
        if args.config:
            fields["recurrence_config"] = args.config
        if args.end:
            fields["recurrence_end_date"] = args.end
        if args.reminder:
            fields["reminder_time"] = args.reminder
        return store.add_item(ItemType(args.kind), args.title, **fields).to_store_dict()

    deps = DependencyContainer.build_dependencies(cfg)
    service = deps.service
    try:
        if args.command == "calendar":
            return (await service.refresh()).to_dict()
        if args.command == "day":
            key = to_date_key(args.date)
            await service.refresh()
            aggregator = service.aggregator
            return {
                "date": key,
                "items": [i.to_api_dict() for i in aggregator.get_items_for_date(key)],
                "count": aggregator.get_item_count_for_date(key),
                "dot_count": aggregator.get_dot_count_for_date(key),
            }
        if args.command == "upcoming":
            return [u.model_dump(mode="json") for u in await service.feed.get_upcoming(args.days)]
        if args.command == "due-today":
            return [d.model_dump(mode="json") for d in await service.feed.get_due_today()]
        if args.command == "notify-now":
            return [n.model_dump(mode="json") for n in await service.feed.notify_now()]
        if args.command == "materialize":
            kind = ItemType(args.kind)
            if args.date:
                instance = await service.materializer.materialize(kind, args.parent_id, args.date)
            else:
                instance = await service.materializer.materialize_today(kind, args.parent_id)
            return instance.to_store_dict()
        raise ValueError(f"Unknown command {args.command!r}")
    finally:
        aclose = getattr(deps.source, "aclose", None)
        if callable(aclose):
            await aclose()


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the helm_calendar CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        run_server(args)
        sys.exit(0)

    _init_logging(args.log_level or os.environ.get("HELM_LOG_LEVEL") or "WARNING")
    cfg = load_config(args)

    from helm_calendar.domain.exceptions import HelmCalendarError

    try:
        result = asyncio.run(_run_command(args, cfg))
    except (HelmCalendarError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    _print_json(result)
    sys.exit(0)


if __name__ == "__main__":
    main()
