"""Calendar date normalization helpers.

All dates in the engine are local wall-clock calendar dates keyed as
``YYYY-MM-DD`` strings. Stored rows may carry a time part
(``2025-01-05T09:00:00``); it never participates in occurrence matching.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Union

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str]


def to_date(value: DateLike) -> date:
    """Normalize a date, datetime or date string to a ``date``.

    Raises:
        ValueError: If the string cannot be parsed as a date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid date value: {value!r}")

    text = value.strip()
    head = text.split("T", 1)[0]
    try:
        return date.fromisoformat(head)
    except ValueError:
        pass

    try:
        return date_parser.isoparse(text).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid date value: {value!r}") from e


def to_date_key(value: DateLike) -> str:
    """Normalize to the ``YYYY-MM-DD`` key used by the calendar index."""
    return to_date(value).isoformat()


def parse_optional_date(value: Optional[DateLike]) -> Optional[date]:
    """Parse a possibly-missing date, returning None for empty or malformed input."""
    if value is None or value == "":
        return None
    try:
        return to_date(value)
    except ValueError:
        logger.warning("Ignoring malformed date value %r", value)
        return None
