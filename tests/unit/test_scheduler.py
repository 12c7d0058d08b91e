"""Tests for the background notification scheduler."""

import asyncio

import pytest

from helm_calendar.core.health_tracker import HealthTracker
from helm_calendar.domain.scheduler import NotificationScheduler

pytestmark = pytest.mark.unit


class CountingFeed:
    """Feed double counting run_checks calls, optionally failing."""

    def __init__(self, fail_first: bool = False):
        self.calls = 0
        self.fail_first = fail_first

    async def run_checks(self):
        self.calls += 1
        if self.fail_first and self.calls == 1:
            raise RuntimeError("store offline")
        return []


class TestNotificationScheduler:
    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            NotificationScheduler(CountingFeed(), interval_seconds=0)

    async def test_tick_records_health(self):
        health = HealthTracker()
        scheduler = NotificationScheduler(CountingFeed(), health_tracker=health)

        await scheduler.tick()

        assert scheduler.tick_count == 1
        assert health.get_last_notification_check_age_seconds() == 0

    async def test_tick_swallows_feed_errors(self, caplog):
        feed = CountingFeed(fail_first=True)
        scheduler = NotificationScheduler(feed)

        await scheduler.tick()
        await scheduler.tick()

        assert feed.calls == 2
        assert "Notification check failed" in caplog.text

    async def test_checks_immediately_then_per_interval(self):
        feed = CountingFeed()
        scheduler = NotificationScheduler(feed, interval_seconds=0.02)

        scheduler.start()
        await asyncio.sleep(0)
        assert feed.calls >= 1
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert feed.calls >= 3
        assert scheduler.running is False

    async def test_loop_survives_failing_check(self):
        feed = CountingFeed(fail_first=True)
        scheduler = NotificationScheduler(feed, interval_seconds=0.01)

        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert feed.calls >= 2

    async def test_double_start_rejected(self):
        scheduler = NotificationScheduler(CountingFeed(), interval_seconds=60)

        scheduler.start()
        try:
            assert scheduler.running is True
            with pytest.raises(RuntimeError):
                scheduler.start()
        finally:
            await scheduler.stop()

    async def test_stop_without_start_is_noop(self):
        scheduler = NotificationScheduler(CountingFeed())

        await scheduler.stop()

        assert scheduler.running is False
