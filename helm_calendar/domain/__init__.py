"""Recurrence projection, reconciliation, aggregation and notification logic."""

from .aggregator import CalendarAggregator, CalendarIndex, assemble_index
from .materializer import Materializer
from .models import (
    CalendarItem,
    DueItem,
    FeedNotification,
    ItemRow,
    ItemType,
    RecurrenceConfig,
    RecurrencePattern,
    RecurrenceRule,
    UpcomingRecurring,
    VirtualOccurrence,
)
from .notification_feed import NotificationFeed
from .projector import OccurrenceProjector, describe_rule
from .reconciler import RecurrenceReconciler
from .virtual_ids import make_virtual_id, parse_virtual_id

__all__ = [
    "CalendarAggregator",
    "CalendarIndex",
    "CalendarItem",
    "DueItem",
    "FeedNotification",
    "ItemRow",
    "ItemType",
    "Materializer",
    "NotificationFeed",
    "OccurrenceProjector",
    "RecurrenceConfig",
    "RecurrencePattern",
    "RecurrenceReconciler",
    "RecurrenceRule",
    "UpcomingRecurring",
    "VirtualOccurrence",
    "assemble_index",
    "describe_rule",
    "make_virtual_id",
    "parse_virtual_id",
]
