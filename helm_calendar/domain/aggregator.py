"""Calendar aggregation: plain items, instances and virtual occurrences by date.

The aggregator owns the published date-keyed index. Readers (calendar widget,
day view, API) only ever see immutable snapshots; the index changes solely
through :meth:`CalendarAggregator.refresh`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from types import MappingProxyType
from typing import Any, Optional

from ..core.async_utils import AsyncOrchestrator
from ..core.config_manager import DEFAULT_LOOKAHEAD_DAYS, MAX_DISPLAY_DOTS
from ..core.health_tracker import HealthTracker
from ..core.time_provider import today_local
from .dates import DateLike, to_date_key
from .models import CalendarItem, ItemRow, ItemType
from .projector import OccurrenceProjector
from .protocols import ItemDataSource, TodayProvider
from .reconciler import RecurrenceReconciler

logger = logging.getLogger(__name__)

SOURCE_TASKS = "tasks"
SOURCE_TODOS = "todos"
SOURCE_RECURRING_TASKS = "recurring_tasks"
SOURCE_RECURRING_TODOS = "recurring_todos"

_PARENT_SOURCE_FOR = {
    SOURCE_TASKS: SOURCE_RECURRING_TASKS,
    SOURCE_TODOS: SOURCE_RECURRING_TODOS,
}

# (type, series id, date key): one slot per recurring series per day
_SlotKey = tuple[ItemType, str, str]


@dataclass(frozen=True)
class CalendarIndex:
    """Immutable snapshot of the date-keyed calendar index."""

    items_by_date: Mapping[str, tuple[CalendarItem, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    generation: int = 0
    built_for: Optional[date] = None
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS
    failed_sources: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_lists(
        cls,
        items_by_date: Mapping[str, list[CalendarItem]],
        generation: int = 0,
        built_for: Optional[date] = None,
        lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
        failed_sources: Optional[Mapping[str, str]] = None,
    ) -> "CalendarIndex":
        frozen = {key: tuple(items) for key, items in sorted(items_by_date.items()) if items}
        return cls(
            items_by_date=MappingProxyType(frozen),
            generation=generation,
            built_for=built_for,
            lookahead_days=lookahead_days,
            failed_sources=MappingProxyType(dict(failed_sources or {})),
        )

    def items_for(self, day: DateLike) -> list[CalendarItem]:
        return list(self.items_by_date.get(to_date_key(day), ()))

    def count_for(self, day: DateLike) -> int:
        """Exact number of incomplete items on a date."""
        return sum(1 for item in self.items_by_date.get(to_date_key(day), ()) if not item.completed)

    def dot_count_for(self, day: DateLike, cap: int = MAX_DISPLAY_DOTS) -> int:
        """Incomplete count capped for the month widget's dot indicator."""
        return min(self.count_for(day), cap)

    def dates(self) -> list[str]:
        return list(self.items_by_date.keys())

    @property
    def item_count(self) -> int:
        return sum(len(items) for items in self.items_by_date.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "built_for": self.built_for.isoformat() if self.built_for else None,
            "lookahead_days": self.lookahead_days,
            "failed_sources": dict(self.failed_sources),
            "items_by_date": {
                key: [item.to_api_dict() for item in items]
                for key, items in self.items_by_date.items()
            },
            "counts": {key: self.count_for(key) for key in self.items_by_date},
        }


def _dedupe_rows(rows: Iterable[ItemRow]) -> list[ItemRow]:
    seen: set[tuple[ItemType, str]] = set()
    unique: list[ItemRow] = []
    for row in rows:
        key = (row.type, row.id)
        if key in seen:
            continue
        seen.add(key)
        unique.append(row)
    return unique


def assemble_index(
    due_rows: Iterable[ItemRow],
    parent_rows: Iterable[ItemRow],
    today: date,
    lookahead_days: int,
    projector: Optional[OccurrenceProjector] = None,
    reconciler: Optional[RecurrenceReconciler] = None,
) -> dict[str, list[CalendarItem]]:
    """Build the date-keyed index from already-fetched rows.

    Args:
        due_rows: Every due-dated task and todo row (plain, parent, instance).
            Must be the complete set: virtual occurrences are suppressed only
            for slots these rows occupy.
        parent_rows: Recurring parents, which may lack a due date
        today: Local date the look-ahead window starts on
        lookahead_days: Window length; the window is [today, today + N]
        projector: OccurrenceProjector to use
        reconciler: RecurrenceReconciler to use

    Returns:
        Mapping of YYYY-MM-DD to CalendarItems, at most one per series per date
    """
    projector = projector or OccurrenceProjector()
    reconciler = reconciler or RecurrenceReconciler()

    items_by_date: dict[str, list[CalendarItem]] = {}
    occupied: set[_SlotKey] = set()
    instances_by_parent: dict[tuple[ItemType, str], list[ItemRow]] = {}
    parents: dict[tuple[ItemType, str], ItemRow] = {}

    def place(item: CalendarItem) -> None:
        items_by_date.setdefault(item.due_date, []).append(item)
        occupied.add((item.type, item.series_id, item.due_date))

    # Concrete rows first, instances ahead of plain and parent rows so an
    # instance wins its slot
    rows = _dedupe_rows(due_rows)
    for row in [r for r in rows if r.is_instance] + [r for r in rows if not r.is_instance]:
        if not row.is_instance and row.rule() is not None:
            parents[(row.type, row.id)] = row
        if row.date_key is None:
            logger.debug("Skipping row %s with unusable due date %r", row.id, row.due_date)
            continue
        item = CalendarItem.from_row(row)
        if (item.type, item.series_id, item.due_date) in occupied:
            logger.warning(
                "Duplicate %s row %s for series %s on %s; keeping the first",
                row.type.value,
                row.id,
                item.series_id,
                item.due_date,
            )
            continue
        place(item)

        if row.is_instance:
            instances_by_parent.setdefault((row.type, row.recurring_parent_id), []).append(row)

    for row in parent_rows:
        if not row.is_instance:
            parents.setdefault((row.type, row.id), row)

    window_end = today + timedelta(days=max(0, lookahead_days))
    virtual_count = 0

    for (kind, parent_id), parent in parents.items():
        rule = parent.rule()
        if rule is None:
            continue
        try:
            projected = projector.project(rule, parent.anchor_date, today, window_end)
        except Exception:
            logger.exception("Projection failed for %s %s; skipping its occurrences", kind.value, parent_id)
            continue

        instances = instances_by_parent.get((kind, parent_id), [])
        for entry in reconciler.reconcile(parent, projected, instances):
            slot = (kind, parent_id, entry.due_date)
            if slot in occupied:
                continue
            if entry.virtual is not None:
                place(entry.virtual.to_calendar_item())
                virtual_count += 1
            elif entry.instance is not None:
                # Concrete row known to the reconciler but missing from due_rows
                place(CalendarItem.from_row(entry.instance))

    logger.debug(
        "Assembled index: %d dates, %d parents, %d virtual occurrences",
        len(items_by_date),
        len(parents),
        virtual_count,
    )
    return items_by_date


class CalendarAggregator:
    """Fetches due items, merges recurring projections and publishes the index."""

    def __init__(
        self,
        source: ItemDataSource,
        projector: Optional[OccurrenceProjector] = None,
        reconciler: Optional[RecurrenceReconciler] = None,
        lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
        today_provider: TodayProvider = today_local,
        orchestrator: Optional[AsyncOrchestrator] = None,
        health_tracker: Optional[HealthTracker] = None,
        fetch_timeout: float = 30.0,
    ):
        """Initialize the aggregator.

        Args:
            source: Persistence collaborator
            projector: Occurrence projector (default settings if omitted)
            reconciler: Recurrence reconciler
            lookahead_days: Default virtual-occurrence horizon in days
            today_provider: Callable returning the local date
            orchestrator: Async helper used for per-source timeouts
            health_tracker: Optional health tracker updated on publish
            fetch_timeout: Per-source fetch timeout in seconds
        """
        self.source = source
        self.projector = projector or OccurrenceProjector()
        self.reconciler = reconciler or RecurrenceReconciler()
        self.lookahead_days = lookahead_days
        self._today = today_provider
        self.orchestrator = orchestrator or AsyncOrchestrator(default_timeout=fetch_timeout)
        self.health_tracker = health_tracker
        self.fetch_timeout = fetch_timeout

        self._index = CalendarIndex()
        self._generation = 0
        self._listeners: list[Callable[[CalendarIndex], None]] = []

    @property
    def index(self) -> CalendarIndex:
        """The latest published snapshot."""
        return self._index

    def subscribe(self, listener: Callable[[CalendarIndex], None]) -> Callable[[], None]:
        """Register a listener called with each newly published snapshot.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _fetch(self, name: str, call: Callable[[], Any]) -> list[ItemRow]:
        rows = await self.orchestrator.run_with_timeout(call(), timeout=self.fetch_timeout)
        logger.debug("Source %s returned %d rows", name, len(rows))
        return list(rows)

    async def build_index(self, lookahead_days: Optional[int] = None) -> CalendarIndex:
        """Fetch every source and assemble an index without publishing it.

        A failing source is logged and omitted; the rest still populate the
        index. When a due-row source fails, the matching recurring parents
        are skipped too, since their instances cannot be seen. All fetches
        are awaited before any reconciliation runs.
        """
        days = self.lookahead_days if lookahead_days is None else lookahead_days
        today = self._today()

        fetches = {
            SOURCE_TASKS: self.source.get_all_due_dated_tasks,
            SOURCE_TODOS: self.source.get_all_due_dated_todos,
            SOURCE_RECURRING_TASKS: lambda: self.source.get_recurring_parents(ItemType.TASK),
            SOURCE_RECURRING_TODOS: lambda: self.source.get_recurring_parents(ItemType.TODO),
        }
        results = await self.orchestrator.gather_with_timeout(
            *(self._fetch(name, call) for name, call in fetches.items()),
            timeout=self.fetch_timeout * 2,
            return_exceptions=True,
        )

        rows_by_source: dict[str, list[ItemRow]] = {}
        failed: dict[str, str] = {}
        for name, result in zip(fetches, results):
            if isinstance(result, BaseException):
                logger.warning("Source %s failed, omitting it this pass: %s", name, result)
                failed[name] = str(result) or type(result).__name__
                continue
            rows_by_source[name] = result

        # A kind's parents are only projected alongside that kind's due rows
        for due_source, parent_source in _PARENT_SOURCE_FOR.items():
            if due_source in failed and parent_source in rows_by_source:
                logger.warning(
                    "Skipping %s this pass because %s failed", parent_source, due_source
                )
                del rows_by_source[parent_source]
                failed[parent_source] = f"skipped: {due_source} source failed"

        due_rows = rows_by_source.get(SOURCE_TASKS, []) + rows_by_source.get(SOURCE_TODOS, [])
        parent_rows = rows_by_source.get(SOURCE_RECURRING_TASKS, []) + rows_by_source.get(
            SOURCE_RECURRING_TODOS, []
        )

        items_by_date = assemble_index(
            due_rows, parent_rows, today, days, self.projector, self.reconciler
        )
        return CalendarIndex.from_lists(
            items_by_date, built_for=today, lookahead_days=days, failed_sources=failed
        )

    async def refresh(self, lookahead_days: Optional[int] = None) -> CalendarIndex:
        """Run a full aggregation pass and publish its index.

        If a newer pass starts before this one finishes, this pass's result is
        returned to its caller but never published.
        """
        self._generation += 1
        generation = self._generation
        if self.health_tracker is not None:
            self.health_tracker.record_refresh_attempt()

        built = await self.build_index(lookahead_days)
        index = CalendarIndex(
            items_by_date=built.items_by_date,
            generation=generation,
            built_for=built.built_for,
            lookahead_days=built.lookahead_days,
            failed_sources=built.failed_sources,
        )

        if generation != self._generation:
            logger.debug(
                "Discarding stale aggregation pass %d (latest is %d)", generation, self._generation
            )
            return index

        self._index = index
        if self.health_tracker is not None:
            self.health_tracker.record_refresh_success(
                index.item_count, len(index.items_by_date), dict(index.failed_sources)
            )
        logger.info(
            "Calendar refreshed: %d items across %d dates%s",
            index.item_count,
            len(index.items_by_date),
            f" (failed sources: {', '.join(index.failed_sources)})" if index.failed_sources else "",
        )

        for listener in list(self._listeners):
            try:
                listener(index)
            except Exception:
                logger.exception("Calendar index listener failed")
        return index

    async def fetch_items(self) -> CalendarIndex:
        """Trigger a full aggregation pass and publish the result."""
        return await self.refresh()

    def get_items_for_date(self, day: DateLike) -> list[CalendarItem]:
        return self._index.items_for(day)

    def get_item_count_for_date(self, day: DateLike) -> int:
        """Incomplete-only item count for a date (exact, uncapped)."""
        return self._index.count_for(day)

    def get_dot_count_for_date(self, day: DateLike) -> int:
        """Incomplete-only item count capped at the widget's dot limit."""
        return self._index.dot_count_for(day)
