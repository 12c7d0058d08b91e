"""Due-today and look-ahead feeds for recurring items, plus notification checks.

The scheduled path and the manual ``notify_now`` trigger both go through
:meth:`NotificationFeed.run_checks`, so "due today" is computed by the same
projector everywhere.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from ..core.time_provider import now_local, today_local
from .models import DueItem, FeedNotification, ItemRow, ItemType, UpcomingRecurring
from .projector import OccurrenceProjector, describe_rule
from .protocols import ItemDataSource, NotificationSink, NowProvider, TodayProvider

logger = logging.getLogger(__name__)

DEFAULT_UPCOMING_DAYS = 7


def parse_reminder_time(value: Optional[str]) -> Optional[time]:
    """Parse an ``HH:MM`` reminder time, returning None when malformed."""
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
        return time(hours, minutes)
    except ValueError:
        logger.warning("Ignoring malformed reminder time %r", value)
        return None


def format_time_12h(value: time) -> str:
    """Format a time as ``9:05 AM``."""
    period = "PM" if value.hour >= 12 else "AM"
    hours = value.hour % 12 or 12
    return f"{hours}:{value.minute:02d} {period}"


class LoggingNotificationSink:
    """Notification sink that only logs; delivery transports plug in here."""

    def send(self, notification: FeedNotification) -> None:
        logger.info(
            "Notification [%s] %s: %s (%s)",
            notification.kind,
            notification.title,
            notification.message,
            notification.id,
        )


class NotificationFeed:
    """Look-ahead summaries, due-today lists and de-duplicated notifications."""

    def __init__(
        self,
        source: ItemDataSource,
        projector: Optional[OccurrenceProjector] = None,
        today_provider: TodayProvider = today_local,
        now_provider: NowProvider = now_local,
        sink: Optional[NotificationSink] = None,
    ):
        """Initialize the feed.

        Args:
            source: Persistence collaborator
            projector: Occurrence projector shared with the aggregator
            today_provider: Callable returning the local date
            now_provider: Callable returning local wall-clock time (reminders)
            sink: Notification delivery; logs only when omitted
        """
        self.source = source
        self.projector = projector or OccurrenceProjector()
        self._today = today_provider
        self._now = now_provider
        self.sink: NotificationSink = sink or LoggingNotificationSink()

        # Keys of notifications already delivered on _sent_for
        self._sent: set[str] = set()
        self._sent_for: Optional[date] = None

    async def _recurring_parents(self) -> list[ItemRow]:
        """Fetch recurring parents of both kinds; a failing kind is omitted."""
        kinds = (ItemType.TASK, ItemType.TODO)
        results = await asyncio.gather(
            *(self.source.get_recurring_parents(kind) for kind in kinds),
            return_exceptions=True,
        )
        parents: list[ItemRow] = []
        for kind, result in zip(kinds, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to fetch recurring %ss: %s", kind.value, result)
                continue
            parents.extend(row for row in result if not row.is_instance)
        return parents

    async def get_upcoming(self, days: int = DEFAULT_UPCOMING_DAYS) -> list[UpcomingRecurring]:
        """Projected dates per recurring parent over ``[today, today + days]``.

        Parents with no occurrence in the window are left out. These are
        summaries; instance reconciliation is the aggregator's job.
        """
        if days < 0:
            raise ValueError("days must not be negative")
        today = self._today()
        window_end = today + timedelta(days=days)

        upcoming: list[UpcomingRecurring] = []
        for parent in await self._recurring_parents():
            rule = parent.rule()
            if rule is None:
                continue
            dates = self.projector.project(rule, parent.anchor_date, today, window_end)
            if not dates:
                continue
            upcoming.append(
                UpcomingRecurring(
                    type=parent.type,
                    parent_id=parent.id,
                    title=parent.title,
                    dates=[d.isoformat() for d in dates],
                    description=describe_rule(rule),
                    todo_list=parent.todo_list,
                )
            )
        return upcoming

    async def get_due_today(self) -> list[DueItem]:
        """Concrete rows due today plus recurring parents occurring today.

        A parent already represented today (by its own row or an Instance)
        is listed once, through that row.
        """
        today = self._today()
        key = today.isoformat()

        results = await asyncio.gather(
            self.source.get_all_due_dated_tasks(),
            self.source.get_all_due_dated_todos(),
            return_exceptions=True,
        )
        rows: list[ItemRow] = []
        for name, result in zip(("tasks", "todos"), results):
            if isinstance(result, BaseException):
                logger.warning("Failed to fetch due-dated %s: %s", name, result)
                continue
            rows.extend(result)

        due: list[DueItem] = []
        represented: set[tuple[ItemType, str]] = set()
        for row in rows:
            if row.date_key != key:
                continue
            item = DueItem(
                type=row.type,
                id=row.id,
                title=row.title,
                due_date=key,
                completed=row.completed,
                is_recurring_parent=not row.is_instance and row.rule() is not None,
                recurring_parent_id=row.recurring_parent_id,
                reminder_time=row.reminder_time,
                todo_list=row.todo_list,
            )
            if (item.type, item.series_id) in represented:
                continue
            represented.add((item.type, item.series_id))
            due.append(item)

        for parent in await self._recurring_parents():
            if (parent.type, parent.id) in represented:
                continue
            if not self.projector.occurs_on(parent.rule(), parent.anchor_date, today):
                continue
            try:
                if await self.source.has_instance_on_date(parent.id, key):
                    continue
            except Exception as e:
                logger.warning("Instance check failed for %s on %s: %s", parent.id, key, e)
            represented.add((parent.type, parent.id))
            due.append(
                DueItem(
                    type=parent.type,
                    id=parent.id,
                    title=parent.title,
                    due_date=key,
                    is_recurring_parent=True,
                    reminder_time=parent.reminder_time,
                    todo_list=parent.todo_list,
                )
            )
        return due

    def _roll_day(self, today: date) -> None:
        if self._sent_for != today:
            if self._sent:
                logger.debug("New day %s: clearing %d sent notification keys", today, len(self._sent))
            self._sent.clear()
            self._sent_for = today

    def _deliver(self, notification: FeedNotification) -> bool:
        if notification.id in self._sent:
            return False
        try:
            self.sink.send(notification)
        except Exception:
            logger.exception("Notification sink failed for %s", notification.id)
            return False
        self._sent.add(notification.id)
        return True

    async def check_due_items(self) -> list[FeedNotification]:
        """Notify recurring parents due today without an Instance, once per day."""
        today = self._today()
        self._roll_day(today)

        sent: list[FeedNotification] = []
        for item in await self.get_due_today():
            if item.completed or not item.is_recurring_parent:
                continue
            notification = FeedNotification(
                id=f"{item.type.value}-{item.series_id}-{item.due_date}",
                type=item.type,
                title=item.title,
                message=f"This recurring {item.type.value} is due today",
                due_date=item.due_date,
                parent_id=item.series_id,
                kind="due",
            )
            if self._deliver(notification):
                sent.append(notification)
        return sent

    async def check_reminders(self, now: Optional[datetime] = None) -> list[FeedNotification]:
        """Fire reminders whose ``HH:MM`` has passed today, once per day each."""
        now = now or self._now()
        today = now.date()
        self._roll_day(today)

        sent: list[FeedNotification] = []
        for parent in await self._recurring_parents():
            reminder = parse_reminder_time(parent.reminder_time)
            if reminder is None or now.time() < reminder:
                continue
            if not self.projector.occurs_on(parent.rule(), parent.anchor_date, today):
                continue
            hhmm = reminder.strftime("%H:%M")
            notification = FeedNotification(
                id=f"{parent.type.value}-{parent.id}-{today.isoformat()}-{hhmm}",
                type=parent.type,
                title=parent.title,
                message=f"Reminder scheduled for {format_time_12h(reminder)}",
                due_date=today.isoformat(),
                parent_id=parent.id,
                kind="reminder",
            )
            if self._deliver(notification):
                sent.append(notification)
        return sent

    async def run_checks(self) -> list[FeedNotification]:
        """One notification pass: due items, then reminders."""
        sent = await self.check_due_items()
        sent.extend(await self.check_reminders())
        if sent:
            logger.info("Delivered %d notifications", len(sent))
        return sent

    async def notify_now(self) -> list[FeedNotification]:
        """Manually run the scheduled notification pass."""
        logger.info("Manual notification check requested")
        return await self.run_checks()
