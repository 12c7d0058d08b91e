"""Shared fixtures for helm_calendar tests."""

from __future__ import annotations

from collections.abc import Generator
from datetime import date
from typing import Any, Callable, Optional

import pytest

from helm_calendar.domain.dates import to_date_key
from helm_calendar.domain.exceptions import DataSourceError, InstanceExistsError
from helm_calendar.domain.models import ItemRow, ItemType

# Monday
TODAY = date(2025, 3, 3)


class FakeItemSource:
    """In-memory ItemDataSource with failure injection.

    ``fail`` maps a call name (``tasks``, ``todos``, ``recurring_task``,
    ``recurring_todo``, ``get_item``, ``find_instance``, ``has_instance``,
    ``create``) to the exception that call should raise.
    """

    def __init__(self, rows: Optional[list[ItemRow]] = None) -> None:
        self.rows: list[ItemRow] = list(rows or [])
        self.fail: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.created: list[ItemRow] = []
        # When set, create_instance first stores a competing instance then conflicts
        self.race_on_create = False
        self._next_id = 0

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    def _new_id(self) -> str:
        self._next_id += 1
        return f"inst-{self._next_id}"

    def _instance(self, kind: ItemType, parent_id: str, key: str) -> Optional[ItemRow]:
        for row in self.rows:
            if row.type is kind and row.recurring_parent_id == parent_id and row.date_key == key:
                return row
        return None

    async def get_all_due_dated_tasks(self) -> list[ItemRow]:
        self._enter("tasks")
        return [r for r in self.rows if r.type is ItemType.TASK and r.due_date]

    async def get_all_due_dated_todos(self) -> list[ItemRow]:
        self._enter("todos")
        return [r for r in self.rows if r.type is ItemType.TODO and r.due_date]

    async def get_recurring_parents(self, kind: ItemType) -> list[ItemRow]:
        self._enter(f"recurring_{ItemType(kind).value}")
        return [
            r
            for r in self.rows
            if r.type is ItemType(kind) and r.recurrence_pattern and not r.is_instance
        ]

    async def get_item(self, kind: ItemType, item_id: str) -> Optional[ItemRow]:
        self._enter("get_item")
        return next((r for r in self.rows if r.type is ItemType(kind) and r.id == item_id), None)

    async def has_instance_on_date(self, parent_id: str, due_date: str) -> bool:
        self._enter("has_instance")
        key = to_date_key(due_date)
        return any(self._instance(kind, parent_id, key) for kind in ItemType)

    async def find_instance(self, kind: ItemType, parent_id: str, due_date: str) -> Optional[ItemRow]:
        self._enter("find_instance")
        return self._instance(ItemType(kind), parent_id, to_date_key(due_date))

    async def create_instance(self, parent: ItemRow, due_date: str) -> ItemRow:
        self._enter("create")
        key = to_date_key(due_date)
        if self.race_on_create:
            self.race_on_create = False
            winner = self._build_instance(parent, key)
            self.rows.append(winner)
            raise InstanceExistsError(parent.id, key, existing_id=winner.id)
        existing = self._instance(parent.type, parent.id, key)
        if existing is not None:
            raise InstanceExistsError(parent.id, key, existing_id=existing.id)
        instance = self._build_instance(parent, key)
        self.rows.append(instance)
        self.created.append(instance)
        return instance

    def _build_instance(self, parent: ItemRow, key: str) -> ItemRow:
        return ItemRow(
            id=self._new_id(),
            title=parent.title,
            type=parent.type,
            due_date=key,
            recurring_parent_id=parent.id,
            todo_list=parent.todo_list,
            priority=parent.priority,
        )


class RecordingSink:
    """NotificationSink that keeps everything it is sent."""

    def __init__(self) -> None:
        self.sent: list[Any] = []

    def send(self, notification: Any) -> None:
        self.sent.append(notification)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear HELM_* overrides so host settings never leak into tests."""
    for name in ("HELM_TEST_TIME", "HELM_DEBUG", "HELM_LOG_LEVEL", "HELM_TIMEZONE"):
        monkeypatch.delenv(name, raising=False)
    yield
    monkeypatch.delenv("HELM_TEST_TIME", raising=False)


@pytest.fixture
def today() -> date:
    """Fixed 'today' (a Monday) used by the fake clocks."""
    return TODAY


@pytest.fixture
def make_row() -> Callable[..., ItemRow]:
    """Factory for ItemRow with sensible defaults.

    ``make_row("p1", pattern="weekly", due="2025-03-05", config={...})``
    """
    counter = {"n": 0}

    def _make(
        item_id: Optional[str] = None,
        title: Optional[str] = None,
        kind: str = "todo",
        due: Optional[str] = None,
        pattern: Optional[str] = None,
        config: Any = None,
        end: Optional[str] = None,
        parent: Optional[str] = None,
        completed: bool = False,
        **extra: Any,
    ) -> ItemRow:
        counter["n"] += 1
        item_id = item_id or f"row-{counter['n']}"
        return ItemRow.model_validate(
            {
                "id": item_id,
                "title": title or f"Item {item_id}",
                "type": kind,
                "due_date": due,
                "completed": completed,
                "recurrence_pattern": pattern,
                "recurrence_config": config,
                "recurrence_end_date": end,
                "recurring_parent_id": parent,
                **extra,
            }
        )

    return _make


@pytest.fixture
def fake_source() -> FakeItemSource:
    return FakeItemSource()


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def source_error() -> DataSourceError:
    return DataSourceError("backend unavailable")
