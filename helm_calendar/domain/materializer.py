"""Materialization of virtual occurrences into persisted instances."""

from __future__ import annotations

import logging
from typing import Optional

from ..core.time_provider import today_local
from .dates import DateLike, to_date, to_date_key
from .exceptions import (
    InstanceExistsError,
    ItemNotFoundError,
    NotRecurringError,
    OccurrenceNotScheduledError,
)
from .models import ItemRow, ItemType
from .projector import OccurrenceProjector
from .protocols import ItemDataSource, TodayProvider

logger = logging.getLogger(__name__)


class Materializer:
    """Turns a (parent, date) occurrence into a concrete Instance at most once.

    There is no lock: the existence re-check and the store's uniqueness
    conflict together make concurrent calls for the same slot converge on a
    single Instance.
    """

    def __init__(
        self,
        source: ItemDataSource,
        projector: Optional[OccurrenceProjector] = None,
        today_provider: TodayProvider = today_local,
    ):
        self.source = source
        self.projector = projector or OccurrenceProjector()
        self._today = today_provider

    async def materialize(self, kind: ItemType, parent_id: str, due: DateLike) -> ItemRow:
        """Return the Instance for (parent_id, due), creating it if needed.

        The parent's own due date is occupied by the parent row, which is
        returned as-is.

        Raises:
            ItemNotFoundError: If the parent does not exist
            NotRecurringError: If the row has no recognized recurrence pattern
            OccurrenceNotScheduledError: If the rule yields no occurrence on ``due``
        """
        kind = ItemType(kind)
        day = to_date(due)
        key = day.isoformat()

        parent = await self.source.get_item(kind, parent_id)
        if parent is None:
            raise ItemNotFoundError(f"{kind.value} {parent_id} not found")
        if parent.is_instance:
            raise NotRecurringError(
                f"{kind.value} {parent_id} is an instance of {parent.recurring_parent_id}"
            )
        rule = parent.rule()
        if rule is None:
            raise NotRecurringError(f"{kind.value} {parent_id} does not repeat")
        if not self.projector.occurs_on(rule, parent.anchor_date, day):
            raise OccurrenceNotScheduledError(
                f"{kind.value} {parent_id} has no occurrence on {key}"
            )

        if parent.date_key == key:
            logger.debug("Occurrence %s of %s is the parent row itself", key, parent_id)
            return parent

        existing = await self.source.find_instance(kind, parent_id, key)
        if existing is not None:
            logger.debug("Instance %s already exists for %s on %s", existing.id, parent_id, key)
            return existing

        try:
            created = await self.source.create_instance(parent, key)
        except InstanceExistsError as e:
            # Lost the race to a concurrent trigger; the winner's row is the answer
            existing = await self.source.find_instance(kind, parent_id, key)
            if existing is None:
                raise
            logger.info(
                "Instance for %s on %s created concurrently (%s); reusing it",
                parent_id,
                key,
                e.existing_id or existing.id,
            )
            return existing

        logger.info("Materialized %s %s on %s as %s", kind.value, parent_id, key, created.id)
        return created

    async def materialize_today(self, kind: ItemType, parent_id: str) -> ItemRow:
        """Materialize today's occurrence of a recurring parent."""
        return await self.materialize(kind, parent_id, to_date_key(self._today()))
