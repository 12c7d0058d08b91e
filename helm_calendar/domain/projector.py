"""Occurrence projection for recurring tasks and todos.

Turns a RecurrenceRule plus the parent's anchor (due) date into the calendar
dates the rule yields inside a window. Expansion is delegated to
dateutil.rrule with every BY* part passed explicitly, so the iteration can
start at the window instead of walking forward from an old anchor.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Optional

from dateutil.rrule import DAILY, MONTHLY, WEEKLY, YEARLY, rrule

from .models import RecurrenceConfig, RecurrencePattern, RecurrenceRule

logger = logging.getLogger(__name__)

# Config weekdays are 0=Sunday .. 6=Saturday; dateutil uses 0=Monday .. 6=Sunday
_WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def _to_rrule_weekday(config_day: int) -> int:
    return (config_day + 6) % 7


def _month_day_exists(month: int, day: int) -> bool:
    """True if (month, day) exists in at least some years (29 Feb counts)."""
    return 1 <= month <= 12 and 1 <= day <= calendar.monthrange(2000, month)[1]


@dataclass
class ProjectorConfig:
    """Configuration for occurrence projection."""

    max_occurrences_per_rule: int = 1000

    @classmethod
    def from_settings(cls, settings: Any) -> "ProjectorConfig":
        """Extract projector configuration from a settings object or dict."""
        if isinstance(settings, dict):
            value = settings.get("max_occurrences_per_rule", 1000)
        else:
            value = getattr(settings, "max_occurrences_per_rule", 1000)
        try:
            limit = max(1, int(value))
        except (TypeError, ValueError):
            logger.warning("Invalid max_occurrences_per_rule=%r; using 1000", value)
            limit = 1000
        return cls(max_occurrences_per_rule=limit)


class OccurrenceProjector:
    """Computes the dates a recurrence rule yields within a window.

    Malformed configuration never raises: each pattern falls back to the
    anchor's weekday, day-of-month or month/day.
    """

    def __init__(self, settings: Any = None):
        self.config = ProjectorConfig.from_settings(settings) if settings is not None else ProjectorConfig()

    def project(
        self,
        rule: Optional[RecurrenceRule],
        anchor: Optional[date],
        window_start: date,
        window_end: date,
    ) -> list[date]:
        """Project a rule's occurrences into ``[window_start, window_end]``.

        Args:
            rule: Recurrence rule, None for non-recurring items
            anchor: Parent's own due date; itself an occurrence when in range.
                A parent without a due date is anchored at ``window_start``.
            window_start: First date of the window (inclusive)
            window_end: Last date of the window (inclusive)

        Returns:
            Ascending, de-duplicated dates, none after the rule's end date

        Raises:
            ValueError: If window_start is after window_end
        """
        if window_start > window_end:
            raise ValueError(f"window_start {window_start} is after window_end {window_end}")
        if rule is None:
            return []

        anchor = anchor or window_start
        effective_end = min(window_end, rule.end_date) if rule.end_date else window_end
        effective_start = max(anchor, window_start)
        if effective_start > effective_end:
            return []

        recurrence = self._build_rrule(rule, anchor, effective_start, effective_end)

        occurrences: set[date] = set()
        for i, occurrence in enumerate(recurrence):
            if i >= self.config.max_occurrences_per_rule:
                logger.warning(
                    "Projection limited to %d occurrences for %s rule anchored %s",
                    self.config.max_occurrences_per_rule,
                    rule.pattern.value,
                    anchor,
                )
                break
            occurrences.add(occurrence.date())

        if effective_start <= anchor <= effective_end:
            occurrences.add(anchor)

        return sorted(occurrences)

    def occurs_on(self, rule: Optional[RecurrenceRule], anchor: Optional[date], day: date) -> bool:
        """Check whether the rule yields an occurrence on ``day``."""
        return day in self.project(rule, anchor, day, day)

    def _build_rrule(
        self,
        rule: RecurrenceRule,
        anchor: date,
        start: date,
        end: date,
    ) -> rrule:
        dtstart = datetime.combine(start, time.min)
        until = datetime.combine(end, time.min)
        config = rule.config

        if rule.pattern is RecurrencePattern.DAILY:
            return rrule(DAILY, dtstart=dtstart, until=until)

        if rule.pattern is RecurrencePattern.WEEKLY:
            # An empty weekday list counts as "not configured"
            if config.week_days:
                weekdays = [_to_rrule_weekday(d) for d in config.week_days]
            else:
                weekdays = [anchor.weekday()]
            return rrule(WEEKLY, dtstart=dtstart, until=until, byweekday=weekdays)

        if rule.pattern is RecurrencePattern.MONTHLY:
            month_day = config.month_day or anchor.day
            return rrule(MONTHLY, dtstart=dtstart, until=until, bymonthday=month_day)

        month, day = self._yearly_month_day(config, anchor)
        return rrule(YEARLY, dtstart=dtstart, until=until, bymonth=month, bymonthday=day)

    @staticmethod
    def _yearly_month_day(config: RecurrenceConfig, anchor: date) -> tuple[int, int]:
        month = config.year_month or anchor.month
        day = config.year_day or anchor.day
        if not _month_day_exists(month, day):
            logger.warning(
                "Yearly config month=%d day=%d never occurs; using anchor %s", month, day, anchor
            )
            return anchor.month, anchor.day
        return month, day


def describe_rule(rule: Optional[RecurrenceRule]) -> str:
    """Return a human-readable description of a recurrence rule."""
    if rule is None:
        return "Does not repeat"

    config = rule.config
    if rule.pattern is RecurrencePattern.DAILY:
        text = "Every day"
    elif rule.pattern is RecurrencePattern.WEEKLY:
        if config.week_days:
            text = "Every week on " + ", ".join(_WEEKDAY_NAMES[d] for d in config.week_days)
        else:
            text = "Every week"
    elif rule.pattern is RecurrencePattern.MONTHLY:
        text = f"Every month on day {config.month_day}" if config.month_day else "Every month"
    elif config.year_month and config.year_day:
        text = f"Every year on {calendar.month_abbr[config.year_month]} {config.year_day}"
    else:
        text = "Every year"

    if rule.end_date:
        text += f" until {rule.end_date.isoformat()}"
    return text
