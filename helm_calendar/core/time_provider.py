"""Local wall-clock time for helm_calendar.

Occurrence matching works on the viewer's local calendar date. "Now" can be
frozen for tests and debugging via the HELM_TEST_TIME environment variable.
"""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from typing import Optional

logger = logging.getLogger(__name__)

TEST_TIME_ENV = "HELM_TEST_TIME"
TIMEZONE_ENV = "HELM_TIMEZONE"


def resolve_timezone(tz_name: Optional[str]) -> Optional[datetime.tzinfo]:
    """Resolve an IANA timezone name, or None for the host's local zone.

    Invalid names are logged and fall back to the host's local zone.
    """
    if not tz_name:
        return None
    try:
        return zoneinfo.ZoneInfo(tz_name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid timezone %r, using host local time", tz_name)
        return None


class TimeProvider:
    """Provides the current local time with test time override support."""

    def __init__(self, tz_name: Optional[str] = None):
        """Initialize time provider.

        Args:
            tz_name: IANA timezone name; defaults to HELM_TIMEZONE, then the
                host's local zone
        """
        self.tz = resolve_timezone(tz_name or os.environ.get(TIMEZONE_ENV))

    def now_local(self) -> datetime.datetime:
        """Return the current local time (timezone-aware).

        Can be overridden for testing via HELM_TEST_TIME.
        Format: ISO 8601 (e.g. "2025-03-03T08:20:00" or "2025-03-03").
        A naive override is taken as local wall-clock time.
        """
        test_time = os.environ.get(TEST_TIME_ENV)
        if test_time:
            try:
                from dateutil import parser as date_parser

                dt = date_parser.isoparse(test_time)
                if dt.tzinfo is None:
                    return dt.replace(tzinfo=self.tz) if self.tz else dt.astimezone()
                return dt.astimezone(self.tz) if self.tz else dt
            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

        if self.tz is not None:
            return datetime.datetime.now(self.tz)
        return datetime.datetime.now().astimezone()

    def today_local(self) -> datetime.date:
        """Return the viewer's local calendar date."""
        return self.now_local().date()


_time_provider = TimeProvider()


def now_local() -> datetime.datetime:
    """Get current local time (convenience function)."""
    return _time_provider.now_local()


def today_local() -> datetime.date:
    """Get the current local calendar date (convenience function)."""
    return _time_provider.today_local()
