"""Health tracking for calendar aggregation passes."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class HealthStatus:
    """Health status information for the aggregation engine."""

    status: str  # "ok" or "degraded"
    server_time_iso: str
    uptime_seconds: int
    pid: int
    item_count: int
    date_count: int
    last_refresh_success_age_seconds: Optional[int]
    failed_sources: dict[str, str] = field(default_factory=dict)


class HealthTracker:
    """Records refresh attempts, successes and per-source failures."""

    def __init__(self) -> None:
        self._start_time: float = time.time()
        self._last_refresh_attempt: Optional[float] = None
        self._last_refresh_success: Optional[float] = None
        self._current_item_count: int = 0
        self._current_date_count: int = 0
        self._failed_sources: dict[str, str] = {}
        self._last_notification_check: Optional[float] = None

    def record_refresh_attempt(self) -> None:
        """Record that an aggregation pass started."""
        self._last_refresh_attempt = time.time()

    def record_refresh_success(
        self,
        item_count: int,
        date_count: int,
        failed_sources: Optional[dict[str, str]] = None,
    ) -> None:
        """Record a published aggregation pass.

        Args:
            item_count: Total CalendarItems in the published index
            date_count: Number of date keys in the published index
            failed_sources: Source name -> error text for sources omitted this pass
        """
        self._last_refresh_success = time.time()
        self._current_item_count = item_count
        self._current_date_count = date_count
        self._failed_sources = dict(failed_sources or {})

    def record_notification_check(self) -> None:
        """Record that the notification scheduler ran a check."""
        self._last_notification_check = time.time()

    def get_uptime_seconds(self) -> int:
        return int(time.time() - self._start_time)

    def get_last_refresh_age_seconds(self) -> Optional[int]:
        """Seconds since the last published pass, or None if never refreshed."""
        if self._last_refresh_success is None:
            return None
        return int(time.time() - self._last_refresh_success)

    def get_last_notification_check_age_seconds(self) -> Optional[int]:
        if self._last_notification_check is None:
            return None
        return int(time.time() - self._last_notification_check)

    def determine_overall_status(self) -> str:
        """Return "ok", or "degraded" when never refreshed or a source failed."""
        if self._last_refresh_success is None:
            return "degraded"
        if self._failed_sources:
            return "degraded"
        return "ok"

    def get_health_status(self, current_time_iso: str) -> HealthStatus:
        return HealthStatus(
            status=self.determine_overall_status(),
            server_time_iso=current_time_iso,
            uptime_seconds=self.get_uptime_seconds(),
            pid=os.getpid(),
            item_count=self._current_item_count,
            date_count=self._current_date_count,
            last_refresh_success_age_seconds=self.get_last_refresh_age_seconds(),
            failed_sources=dict(self._failed_sources),
        )

    def to_dict(self, current_time_iso: str) -> dict[str, Any]:
        """Health status as a JSON-ready dictionary."""
        health = self.get_health_status(current_time_iso)
        return {
            "status": health.status,
            "server_time_iso": health.server_time_iso,
            "server_status": {"uptime_s": health.uptime_seconds, "pid": health.pid},
            "data_status": {
                "item_count": health.item_count,
                "date_count": health.date_count,
                "last_refresh_success_age_s": health.last_refresh_success_age_seconds,
                "failed_sources": health.failed_sources,
            },
            "notifications": {
                "last_check_age_s": self.get_last_notification_check_age_seconds(),
            },
        }
