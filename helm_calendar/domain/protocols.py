"""Protocol definitions for the engine's external collaborators.

The persistence collaborator is consumed through an asynchronous
request/response interface; any object implementing :class:`ItemDataSource`
can back the aggregator, feed and materializer.
"""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from .models import FeedNotification, ItemRow, ItemType


class ItemDataSource(Protocol):
    """Protocol for the task/todo persistence collaborator."""

    async def get_all_due_dated_tasks(self) -> list[ItemRow]:
        """Return plain, parent and instance task rows that carry a due date."""
        ...

    async def get_all_due_dated_todos(self) -> list[ItemRow]:
        """Return plain, parent and instance todo rows that carry a due date."""
        ...

    async def get_recurring_parents(self, kind: ItemType) -> list[ItemRow]:
        """Return all rows of ``kind`` with a non-null recurrence pattern."""
        ...

    async def get_item(self, kind: ItemType, item_id: str) -> Optional[ItemRow]:
        """Return one row, or None if it does not exist."""
        ...

    async def has_instance_on_date(self, parent_id: str, due_date: str) -> bool:
        """Check whether an Instance exists for (parent_id, due_date)."""
        ...

    async def find_instance(
        self, kind: ItemType, parent_id: str, due_date: str
    ) -> Optional[ItemRow]:
        """Return the Instance for (parent_id, due_date), if any."""
        ...

    async def create_instance(self, parent: ItemRow, due_date: str) -> ItemRow:
        """Create an Instance of ``parent`` due on ``due_date``.

        Raises:
            InstanceExistsError: If one already exists for that date
        """
        ...


class TodayProvider(Protocol):
    """Protocol for callables returning the viewer's local calendar date."""

    def __call__(self) -> datetime.date:
        ...


class NowProvider(Protocol):
    """Protocol for callables returning the viewer's local wall-clock time."""

    def __call__(self) -> datetime.datetime:
        ...


class NotificationSink(Protocol):
    """Protocol for notification delivery (transport is out of scope)."""

    def send(self, notification: FeedNotification) -> None:
        """Deliver one notification."""
        ...
