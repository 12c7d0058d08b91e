"""Tests for the due-today / upcoming feed and notification checks."""

from datetime import date, datetime, time

import pytest

from helm_calendar.domain.notification_feed import (
    LoggingNotificationSink,
    NotificationFeed,
    format_time_12h,
    parse_reminder_time,
)

pytestmark = pytest.mark.unit


class Clock:
    """Mutable local clock shared by the today/now providers."""

    def __init__(self, now: datetime):
        self.now = now

    def today(self) -> date:
        return self.now.date()

    def current(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(datetime(2025, 3, 3, 10, 0))


@pytest.fixture
def populated_source(fake_source, make_row):
    fake_source.rows = [
        make_row("p_daily", title="Stretch", pattern="daily", due="2025-03-01", reminder_time="09:00"),
        make_row("p_weekly", title="Bins", pattern="weekly", due="2025-02-26", reminder_time="09:00"),
        make_row("p_inst", kind="task", title="Standup notes", pattern="daily", due="2025-03-01"),
        make_row("i1", kind="task", title="Standup notes", due="2025-03-03", parent="p_inst"),
        make_row("p_own", title="Review goals", pattern="weekly", due="2025-03-03"),
        make_row("p_ended", title="Old habit", pattern="daily", due="2025-01-01", end="2025-02-01"),
        make_row("plain", kind="task", title="File taxes", due="2025-03-03"),
        make_row("later", title="Someday", due="2025-03-20"),
    ]
    return fake_source


@pytest.fixture
def feed(populated_source, clock, recording_sink):
    return NotificationFeed(
        populated_source,
        today_provider=clock.today,
        now_provider=clock.current,
        sink=recording_sink,
    )


class TestGetUpcoming:
    async def test_dates_per_parent(self, feed):
        upcoming = {u.parent_id: u for u in await feed.get_upcoming(7)}

        assert set(upcoming) == {"p_daily", "p_weekly", "p_inst", "p_own"}
        assert upcoming["p_weekly"].dates == ["2025-03-05"]
        assert upcoming["p_own"].dates == ["2025-03-03", "2025-03-10"]
        assert len(upcoming["p_daily"].dates) == 8
        assert upcoming["p_inst"].type.value == "task"

    async def test_rule_description(self, feed):
        upcoming = {u.parent_id: u for u in await feed.get_upcoming(7)}

        assert upcoming["p_daily"].description == "Every day"
        assert upcoming["p_weekly"].description == "Every week"

    async def test_negative_days_rejected(self, feed):
        with pytest.raises(ValueError):
            await feed.get_upcoming(-1)

    async def test_failing_kind_is_omitted(self, feed, populated_source, source_error):
        populated_source.fail["recurring_task"] = source_error

        upcoming = await feed.get_upcoming(7)

        assert "p_inst" not in {u.parent_id for u in upcoming}
        assert "p_daily" in {u.parent_id for u in upcoming}


class TestGetDueToday:
    async def test_union_of_plain_and_recurring(self, feed):
        due = {d.id: d for d in await feed.get_due_today()}

        assert set(due) == {"p_daily", "i1", "p_own", "plain"}
        assert due["p_daily"].is_recurring_parent is True
        assert due["p_own"].is_recurring_parent is True
        assert due["i1"].is_recurring_parent is False
        assert due["i1"].recurring_parent_id == "p_inst"
        assert due["plain"].is_recurring_parent is False

    async def test_parent_with_instance_listed_once(self, feed):
        due = await feed.get_due_today()

        assert [d.series_id for d in due].count("p_inst") == 1

    async def test_instance_check_failure_still_lists_parent(self, feed, populated_source, source_error):
        populated_source.fail["has_instance"] = source_error

        due = {d.id for d in await feed.get_due_today()}

        assert "p_daily" in due


class TestNotifications:
    async def test_due_notifications_once_per_day(self, feed, recording_sink):
        first = await feed.check_due_items()
        second = await feed.check_due_items()

        assert {n.id for n in first} == {"todo-p_daily-2025-03-03", "todo-p_own-2025-03-03"}
        assert second == []
        assert len(recording_sink.sent) == 2
        assert first[0].message == "This recurring todo is due today"

    async def test_sent_set_resets_on_new_day(self, feed, clock):
        await feed.check_due_items()
        clock.now = datetime(2025, 3, 4, 8, 0)

        sent = await feed.check_due_items()

        assert "todo-p_daily-2025-03-04" in {n.id for n in sent}

    async def test_completed_parent_row_not_notified(self, feed, populated_source, make_row):
        populated_source.rows = [make_row("p_done", pattern="daily", due="2025-03-03", completed=True)]

        assert await feed.check_due_items() == []

    async def test_sink_failure_retried_next_check(self, feed, recording_sink):
        calls = {"n": 0}
        original = recording_sink.send

        def flaky(notification):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("transport down")
            original(notification)

        recording_sink.send = flaky

        first = await feed.check_due_items()
        second = await feed.check_due_items()

        assert len(first) == 1
        assert len(second) == 1
        assert {n.id for n in first + second} == {"todo-p_daily-2025-03-03", "todo-p_own-2025-03-03"}

    async def test_reminder_fires_after_time_once(self, feed, clock):
        sent = await feed.check_reminders()
        again = await feed.check_reminders()

        assert [n.id for n in sent] == ["todo-p_daily-2025-03-03-09:00"]
        assert sent[0].kind == "reminder"
        assert sent[0].message == "Reminder scheduled for 9:00 AM"
        assert again == []

    async def test_reminder_not_before_time(self, feed, clock):
        assert await feed.check_reminders(datetime(2025, 3, 3, 8, 59)) == []

    async def test_notify_now_uses_scheduled_path(self, feed):
        sent = await feed.notify_now()

        assert {n.kind for n in sent} == {"due", "reminder"}
        assert await feed.run_checks() == []


class TestHelpers:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("09:00", time(9, 0)), ("23:59", time(23, 59)), ("7:5", time(7, 5)), ("25:00", None), ("noon", None), (None, None)],
    )
    def test_parse_reminder_time(self, raw, expected):
        assert parse_reminder_time(raw) == expected

    def test_format_time_12h(self):
        assert format_time_12h(time(0, 5)) == "12:05 AM"
        assert format_time_12h(time(13, 30)) == "1:30 PM"

    def test_logging_sink_accepts_notifications(self, caplog):
        from helm_calendar.domain.models import FeedNotification, ItemType

        notification = FeedNotification(
            id="todo-p1-2025-03-03", type=ItemType.TODO, title="T", message="m", due_date="2025-03-03", parent_id="p1"
        )
        with caplog.at_level("INFO"):
            LoggingNotificationSink().send(notification)

        assert "todo-p1-2025-03-03" in caplog.text
