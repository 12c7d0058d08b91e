"""Synthetic identifiers for virtual occurrences.

A virtual occurrence is keyed ``virtual-{parent_id}-{YYYY-MM-DD}``. Parent ids
are UUIDs and contain dashes themselves, so parsing anchors on the fixed-width
date suffix. No other module builds or splits these strings.
"""

from __future__ import annotations

from datetime import date
from typing import NamedTuple, Optional

from .dates import DateLike, to_date_key

VIRTUAL_ID_PREFIX = "virtual-"
_DATE_KEY_LENGTH = len("YYYY-MM-DD")


class VirtualKey(NamedTuple):
    """Parsed components of a virtual occurrence id."""

    parent_id: str
    due_date: str


def make_virtual_id(parent_id: str, due_date: DateLike) -> str:
    """Build the synthetic id for a parent's occurrence on a date."""
    if not parent_id:
        raise ValueError("parent_id must be a non-empty string")
    return f"{VIRTUAL_ID_PREFIX}{parent_id}-{to_date_key(due_date)}"


def is_virtual_id(item_id: str) -> bool:
    return parse_virtual_id(item_id) is not None


def parse_virtual_id(item_id: str) -> Optional[VirtualKey]:
    """Split a virtual id into (parent_id, due_date).

    Returns:
        VirtualKey, or None if ``item_id`` is not a well-formed virtual id
    """
    if not isinstance(item_id, str) or not item_id.startswith(VIRTUAL_ID_PREFIX):
        return None

    body = item_id[len(VIRTUAL_ID_PREFIX) :]
    # "<parent>-<YYYY-MM-DD>" needs at least one parent char plus the separator
    if len(body) < _DATE_KEY_LENGTH + 2 or body[-_DATE_KEY_LENGTH - 1] != "-":
        return None

    parent_id = body[: -_DATE_KEY_LENGTH - 1]
    date_key = body[-_DATE_KEY_LENGTH:]
    try:
        date.fromisoformat(date_key)
    except ValueError:
        return None
    return VirtualKey(parent_id=parent_id, due_date=date_key)
