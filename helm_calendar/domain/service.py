"""Calendar service facade used by the API and CLI."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..core.config_manager import DEFAULT_LOOKAHEAD_DAYS, get_config_value
from ..core.health_tracker import HealthTracker
from ..core.polling import Poller, PollResult
from ..core.time_provider import now_local, today_local
from .aggregator import CalendarAggregator, CalendarIndex
from .dates import DateLike, to_date_key
from .exceptions import ItemNotFoundError
from .materializer import Materializer
from .models import ItemRow, ItemType
from .notification_feed import NotificationFeed
from .projector import OccurrenceProjector
from .protocols import ItemDataSource, NotificationSink, NowProvider, TodayProvider
from .reconciler import RecurrenceReconciler
from .virtual_ids import parse_virtual_id

logger = logging.getLogger(__name__)


class CalendarService:
    """Wires aggregator, materializer and feed around one data source.

    All three share a single projector so every component agrees on which
    dates a rule yields.
    """

    def __init__(
        self,
        source: ItemDataSource,
        config: Any = None,
        today_provider: TodayProvider = today_local,
        now_provider: NowProvider = now_local,
        sink: Optional[NotificationSink] = None,
        health_tracker: Optional[HealthTracker] = None,
    ):
        config = config or {}
        self.source = source
        self.projector = OccurrenceProjector(config)
        self.health_tracker = health_tracker or HealthTracker()
        self.aggregator = CalendarAggregator(
            source,
            projector=self.projector,
            reconciler=RecurrenceReconciler(),
            lookahead_days=int(get_config_value(config, "lookahead_days", DEFAULT_LOOKAHEAD_DAYS)),
            today_provider=today_provider,
            health_tracker=self.health_tracker,
        )
        self.materializer = Materializer(source, self.projector, today_provider)
        self.feed = NotificationFeed(
            source,
            projector=self.projector,
            today_provider=today_provider,
            now_provider=now_provider,
            sink=sink,
        )

    @property
    def index(self) -> CalendarIndex:
        return self.aggregator.index

    async def refresh(self, lookahead_days: Optional[int] = None) -> CalendarIndex:
        return await self.aggregator.refresh(lookahead_days)

    async def materialize_and_refresh(
        self,
        kind: ItemType,
        parent_id: str,
        due: DateLike,
        max_attempts: int = 3,
        interval: float = 0.2,
    ) -> tuple[ItemRow, PollResult[CalendarIndex]]:
        """Materialize an occurrence, then re-aggregate until the index shows it.

        Returns:
            The Instance and the poll outcome; a non-succeeded poll means the
            data source has not surfaced the Instance yet.
        """
        instance = await self.materializer.materialize(kind, parent_id, due)
        key = to_date_key(due)

        def shows_instance(index: CalendarIndex) -> bool:
            return any(item.id == instance.id for item in index.items_for(key))

        poller: Poller[CalendarIndex] = Poller(
            self.aggregator.refresh, shows_instance, max_attempts=max_attempts, interval=interval
        )
        result = await poller.run()
        if not result.succeeded:
            logger.warning(
                "Instance %s not visible in calendar after %d refreshes (%s)",
                instance.id,
                result.attempts,
                result.state.value,
            )
        return instance, result

    async def materialize_virtual(
        self, kind: ItemType, virtual_id: str
    ) -> tuple[ItemRow, PollResult[CalendarIndex]]:
        """Materialize the occurrence behind a ``virtual-...`` calendar item id."""
        parsed = parse_virtual_id(virtual_id)
        if parsed is None:
            raise ItemNotFoundError(f"{virtual_id!r} is not a virtual occurrence id")
        return await self.materialize_and_refresh(kind, parsed.parent_id, parsed.due_date)
