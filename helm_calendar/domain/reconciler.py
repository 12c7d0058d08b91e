"""Reconciliation of projected occurrences with materialized instances.

For each projected date of a recurring parent this yields exactly one
entry: the concrete row occupying that date if there is one, otherwise a
virtual occurrence.
"""

import logging
from collections.abc import Iterable
from datetime import date
from typing import Union

from .dates import to_date_key
from .models import ItemRow, ReconciledOccurrence, VirtualOccurrence

logger = logging.getLogger(__name__)


class RecurrenceReconciler:
    """Merges a parent's projected dates with its existing instances."""

    def reconcile(
        self,
        parent: ItemRow,
        projected_dates: Iterable[Union[date, str]],
        existing_instances: Iterable[ItemRow],
    ) -> list[ReconciledOccurrence]:
        """Produce one reconciled entry per projected date.

        Args:
            parent: The recurring parent row
            projected_dates: Dates from the projector (any order, may repeat)
            existing_instances: Candidate rows; only those pointing at
                ``parent`` (and the parent row itself) are considered

        Returns:
            Entries in projection order, never two for the same date
        """
        occupied = self._index_by_date(parent, existing_instances)

        reconciled: list[ReconciledOccurrence] = []
        seen: set[str] = set()
        for projected in projected_dates:
            key = to_date_key(projected)
            if key in seen:
                continue
            seen.add(key)

            concrete = occupied.get(key)
            if concrete is not None:
                reconciled.append(
                    ReconciledOccurrence(due_date=key, instance_id=concrete.id, instance=concrete)
                )
            else:
                reconciled.append(
                    ReconciledOccurrence(
                        due_date=key, virtual=VirtualOccurrence.for_parent(parent, key)
                    )
                )

        logger.debug(
            "Reconciled parent %s: %d dates, %d concrete, %d virtual",
            parent.id,
            len(reconciled),
            sum(1 for r in reconciled if not r.is_virtual),
            sum(1 for r in reconciled if r.is_virtual),
        )
        return reconciled

    def virtual_occurrences(
        self,
        parent: ItemRow,
        projected_dates: Iterable[Union[date, str]],
        existing_instances: Iterable[ItemRow],
    ) -> list[VirtualOccurrence]:
        """Return only the virtual entries of :meth:`reconcile`."""
        return [
            entry.virtual
            for entry in self.reconcile(parent, projected_dates, existing_instances)
            if entry.virtual is not None
        ]

    def _index_by_date(
        self, parent: ItemRow, instances: Iterable[ItemRow]
    ) -> dict[str, ItemRow]:
        """Index the rows occupying the parent's dates by date key.

        The parent row occupies its own due date. If the store ever holds two
        instances for one date the first one wins.
        """
        occupied: dict[str, ItemRow] = {}
        if parent.date_key:
            occupied[parent.date_key] = parent

        for row in instances:
            if row.recurring_parent_id != parent.id:
                continue
            key = row.date_key
            if key is None:
                continue
            current = occupied.get(key)
            if current is not None and current.id != parent.id:
                logger.warning(
                    "Duplicate instances for parent %s on %s: keeping %s, ignoring %s",
                    parent.id,
                    key,
                    current.id,
                    row.id,
                )
                continue
            # A materialized instance takes the slot over from the parent row
            occupied[key] = row

        return occupied
