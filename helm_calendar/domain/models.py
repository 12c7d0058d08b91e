"""Data models for recurring items, instances and calendar display."""

from __future__ import annotations

import json
import logging
from datetime import date
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .dates import parse_optional_date, to_date_key
from .virtual_ids import make_virtual_id

logger = logging.getLogger(__name__)


class ItemType(str, Enum):
    """Kinds of rows the persistence collaborator serves."""

    TASK = "task"
    TODO = "todo"


class RecurrencePattern(str, Enum):
    """Supported recurrence patterns."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def _int_in_range(value: Any, low: int, high: int) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return None
        value = int(value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        return None
    return value if low <= value <= high else None


class RecurrenceConfig(BaseModel):
    """Pattern-specific recurrence configuration.

    Every field is optional and malformed values collapse to None so the
    projector falls back to the anchor-derived default instead of failing.
    Weekdays use 0=Sunday .. 6=Saturday.
    """

    week_days: Optional[list[int]] = Field(default=None, alias="weekDays")
    month_day: Optional[int] = Field(default=None, alias="monthDay")
    year_month: Optional[int] = Field(default=None, alias="yearMonth")
    year_day: Optional[int] = Field(default=None, alias="yearDay")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @field_validator("week_days", mode="before")
    @classmethod
    def _lenient_week_days(cls, value: Any) -> Optional[list[int]]:
        if value is None:
            return None
        if not isinstance(value, (list, tuple, set)):
            logger.warning("Ignoring malformed weekDays config %r", value)
            return None
        days = {_int_in_range(v, 0, 6) for v in value}
        days.discard(None)
        return sorted(days)  # type: ignore[arg-type]

    @field_validator("month_day", "year_day", mode="before")
    @classmethod
    def _lenient_day(cls, value: Any) -> Optional[int]:
        return None if value is None else _int_in_range(value, 1, 31)

    @field_validator("year_month", mode="before")
    @classmethod
    def _lenient_month(cls, value: Any) -> Optional[int]:
        return None if value is None else _int_in_range(value, 1, 12)

    @classmethod
    def parse_lenient(cls, raw: Any) -> "RecurrenceConfig":
        """Build a config from a JSON string, a mapping, or nothing.

        Anything unparseable yields an empty config.
        """
        if isinstance(raw, RecurrenceConfig):
            return raw
        if raw is None or raw == "":
            return cls()
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring unparseable recurrence config %r", raw)
                return cls()
        if not isinstance(raw, dict):
            logger.warning("Ignoring non-object recurrence config %r", raw)
            return cls()
        return cls.model_validate(raw)


class RecurrenceRule(BaseModel):
    """A recurrence pattern plus its configuration and optional end date."""

    pattern: RecurrencePattern
    config: RecurrenceConfig = Field(default_factory=RecurrenceConfig)
    end_date: Optional[date] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_fields(
        cls,
        pattern: Optional[str],
        config: Any = None,
        end_date: Any = None,
    ) -> Optional["RecurrenceRule"]:
        """Build a rule from raw row fields.

        Returns:
            The rule, or None when the pattern is missing or not recognized
            (the item is then treated as non-recurring).
        """
        if not pattern:
            return None
        try:
            recognized = RecurrencePattern(str(pattern).strip().lower())
        except ValueError:
            logger.debug("Unknown recurrence pattern %r treated as non-recurring", pattern)
            return None
        return cls(
            pattern=recognized,
            config=RecurrenceConfig.parse_lenient(config),
            end_date=parse_optional_date(end_date),
        )


class ItemRow(BaseModel):
    """A task or todo row as served by the persistence collaborator.

    Plain items, recurring parents and materialized instances share this
    shape. Task rows from the store carry ``status`` instead of ``completed``;
    when present, ``status`` decides completion.
    """

    id: str = Field(..., description="Row id")
    title: str = Field(..., description="Display title")
    type: ItemType = Field(..., description="task or todo")
    due_date: Optional[str] = Field(default=None, description="Due date, may include a time")
    completed: bool = Field(default=False, description="Completion state")

    # Recurrence
    recurrence_pattern: Optional[str] = Field(default=None, description="Raw pattern value")
    recurrence_config: Optional[Any] = Field(default=None, description="JSON string or mapping")
    recurrence_end_date: Optional[str] = Field(default=None, description="Last allowed date")
    recurring_parent_id: Optional[str] = Field(
        default=None, description="Parent id when this row is an Instance"
    )
    reminder_time: Optional[str] = Field(default=None, description="HH:MM reminder time")

    # Display extras
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    todo_list: Optional[str] = Field(default=None, alias="list")
    priority: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _completed_from_status(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("status") is not None:
            data = dict(data)
            data["completed"] = data.get("status") == "done"
        return data

    @property
    def date_key(self) -> Optional[str]:
        """Normalized ``YYYY-MM-DD`` due date, or None if missing or malformed."""
        anchor = parse_optional_date(self.due_date)
        return anchor.isoformat() if anchor else None

    @property
    def anchor_date(self) -> Optional[date]:
        return parse_optional_date(self.due_date)

    @property
    def is_instance(self) -> bool:
        return bool(self.recurring_parent_id)

    def rule(self) -> Optional[RecurrenceRule]:
        """Return the recurrence rule, or None for ordinary items."""
        return RecurrenceRule.from_fields(
            self.recurrence_pattern, self.recurrence_config, self.recurrence_end_date
        )

    def to_store_dict(self) -> dict[str, Any]:
        """Serialize for persistence using the collaborator's field names."""
        return self.model_dump(by_alias=True, mode="json")


class CalendarItem(BaseModel):
    """Unified display entity for the calendar widget and day view."""

    id: str
    title: str
    type: ItemType
    due_date: str = Field(..., description="YYYY-MM-DD")
    completed: bool = False
    is_recurring: bool = False
    is_virtual_occurrence: bool = False
    recurring_parent_id: Optional[str] = None

    project_id: Optional[str] = None
    project_name: Optional[str] = None
    todo_list: Optional[str] = None
    priority: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_row(cls, row: ItemRow) -> "CalendarItem":
        """Build a display item from a concrete row with a due date."""
        if row.date_key is None:
            raise ValueError(f"Row {row.id} has no usable due date")
        return cls(
            id=row.id,
            title=row.title,
            type=row.type,
            due_date=row.date_key,
            completed=row.completed,
            is_recurring=row.rule() is not None,
            recurring_parent_id=row.recurring_parent_id,
            project_id=row.project_id,
            project_name=row.project_name,
            todo_list=row.todo_list,
            priority=row.priority,
        )

    @property
    def series_id(self) -> str:
        """Id of the recurring series this item belongs to (itself for parents)."""
        return self.recurring_parent_id or self.id

    def to_api_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class VirtualOccurrence(BaseModel):
    """A projected, never-persisted occurrence of a recurring parent."""

    parent_id: str
    title: str
    due_date: str
    type: ItemType
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    todo_list: Optional[str] = None
    priority: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> str:
        return make_virtual_id(self.parent_id, self.due_date)

    @classmethod
    def for_parent(cls, parent: ItemRow, due: date | str) -> "VirtualOccurrence":
        return cls(
            parent_id=parent.id,
            title=parent.title,
            due_date=to_date_key(due),
            type=parent.type,
            project_id=parent.project_id,
            project_name=parent.project_name,
            todo_list=parent.todo_list,
            priority=parent.priority,
        )

    def to_calendar_item(self) -> CalendarItem:
        return CalendarItem(
            id=self.id,
            title=self.title,
            type=self.type,
            due_date=self.due_date,
            completed=False,
            is_recurring=True,
            is_virtual_occurrence=True,
            recurring_parent_id=self.parent_id,
            project_id=self.project_id,
            project_name=self.project_name,
            todo_list=self.todo_list,
            priority=self.priority,
        )


class ReconciledOccurrence(BaseModel):
    """One reconciled slot: a concrete row id or a virtual occurrence."""

    due_date: str
    instance_id: Optional[str] = None
    instance: Optional[ItemRow] = None
    virtual: Optional[VirtualOccurrence] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_virtual(self) -> bool:
        return self.instance_id is None

    @property
    def item_id(self) -> str:
        if self.instance_id is not None:
            return self.instance_id
        assert self.virtual is not None
        return self.virtual.id


class UpcomingRecurring(BaseModel):
    """Caller-facing look-ahead summary for one recurring parent."""

    type: ItemType
    parent_id: str
    title: str
    dates: list[str] = Field(default_factory=list)
    description: str = Field(default="", description="Readable recurrence rule")
    todo_list: Optional[str] = None


class DueItem(BaseModel):
    """An item due today, either a concrete row or a recurring parent."""

    type: ItemType
    id: str
    title: str
    due_date: str
    completed: bool = False
    is_recurring_parent: bool = False
    recurring_parent_id: Optional[str] = None
    reminder_time: Optional[str] = None
    todo_list: Optional[str] = None

    @property
    def series_id(self) -> str:
        return self.recurring_parent_id or self.id


class FeedNotification(BaseModel):
    """A notification handed to the delivery sink."""

    id: str
    type: ItemType
    title: str
    message: str
    due_date: str
    parent_id: str
    kind: str = "due"
