"""Tests for HealthTracker."""

import pytest

from helm_calendar.core.health_tracker import HealthTracker

pytestmark = pytest.mark.unit

NOW_ISO = "2025-03-03T10:00:00+00:00"


class TestHealthTracker:
    def setup_method(self):
        self.tracker = HealthTracker()

    def test_degraded_before_first_refresh(self):
        assert self.tracker.determine_overall_status() == "degraded"
        assert self.tracker.get_last_refresh_age_seconds() is None

    def test_ok_after_clean_refresh(self):
        self.tracker.record_refresh_attempt()
        self.tracker.record_refresh_success(item_count=12, date_count=5)

        status = self.tracker.get_health_status(NOW_ISO)

        assert status.status == "ok"
        assert status.item_count == 12
        assert status.date_count == 5
        assert status.last_refresh_success_age_seconds == 0

    def test_failed_source_degrades_until_next_clean_pass(self):
        self.tracker.record_refresh_success(3, 2, {"tasks": "timeout"})
        assert self.tracker.determine_overall_status() == "degraded"

        self.tracker.record_refresh_success(4, 2)
        assert self.tracker.determine_overall_status() == "ok"

    def test_to_dict_shape(self):
        self.tracker.record_refresh_success(1, 1, {"todos": "HTTP 500"})
        self.tracker.record_notification_check()

        data = self.tracker.to_dict(NOW_ISO)

        assert data["status"] == "degraded"
        assert data["server_time_iso"] == NOW_ISO
        assert data["data_status"]["failed_sources"] == {"todos": "HTTP 500"}
        assert data["notifications"]["last_check_age_s"] == 0
        assert set(data["server_status"]) == {"uptime_s", "pid"}
