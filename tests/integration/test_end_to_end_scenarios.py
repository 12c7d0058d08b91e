"""End-to-end scenarios: JSON store -> aggregate -> materialize -> re-aggregate."""

import asyncio
from collections import Counter
from datetime import date

import pytest

from helm_calendar.domain.models import ItemType
from helm_calendar.domain.service import CalendarService
from helm_calendar.store.json_store import JsonItemStore

pytestmark = pytest.mark.integration

TODAY = date(2025, 3, 3)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "items.json"


@pytest.fixture
def store(store_path):
    return JsonItemStore(store_path)


def make_service(source, lookahead_days=30, sink=None):
    return CalendarService(source, {"lookahead_days": lookahead_days}, today_provider=lambda: TODAY, sink=sink)


def series_slots(index):
    return Counter(
        (item.type, item.series_id, key) for key in index.dates() for item in index.items_for(key)
    )


class TestScenarios:
    async def test_mixed_rules_never_duplicate(self, store):
        weekly = store.add_item(
            ItemType.TODO, "Gym", due_date="2025-03-03", recurrence_pattern="weekly", recurrence_config={"weekDays": [1, 3, 5]}
        )
        monthly = store.add_item(
            ItemType.TASK, "Pay rent", due_date="2025-01-31", recurrence_pattern="monthly", recurrence_config={"monthDay": 31}
        )
        store.add_item(ItemType.TASK, "Renew passport", due_date="2025-03-20")
        service = make_service(store, lookahead_days=60)

        await service.materializer.materialize(ItemType.TODO, weekly.id, "2025-03-05")
        await service.materializer.materialize(ItemType.TASK, monthly.id, "2025-03-31")
        index = await service.refresh()

        assert max(series_slots(index).values()) == 1
        rent_dates = sorted(key for key in index.dates() if any(i.series_id == monthly.id for i in index.items_for(key)))
        # April has no 31st
        assert rent_dates == ["2025-01-31", "2025-03-31"]
        gym_march = [key for key in index.dates() if key.startswith("2025-03") and any(i.series_id == weekly.id for i in index.items_for(key))]
        assert gym_march[:4] == ["2025-03-03", "2025-03-05", "2025-03-07", "2025-03-10"]

    async def test_instances_survive_restart(self, store, store_path):
        parent = store.add_item(ItemType.TODO, "Bins", due_date="2025-02-26", recurrence_pattern="weekly")
        instance = await make_service(store).materializer.materialize(ItemType.TODO, parent.id, "2025-03-12")

        reopened = make_service(JsonItemStore(store_path), lookahead_days=14)
        index = await reopened.refresh()

        assert [i.id for i in index.items_for("2025-03-12")] == [instance.id]
        assert [i.id for i in index.items_for("2025-03-05")] == [f"virtual-{parent.id}-2025-03-05"]

        again = await reopened.materializer.materialize(ItemType.TODO, parent.id, "2025-03-12")
        assert again.id == instance.id

    async def test_concurrent_materialize_creates_one_instance(self, store):
        parent = store.add_item(ItemType.TASK, "Standup", due_date="2025-03-01", recurrence_pattern="daily")
        service = make_service(store)

        results = await asyncio.gather(
            *(service.materializer.materialize(ItemType.TASK, parent.id, "2025-03-04") for _ in range(4))
        )

        assert len({r.id for r in results}) == 1
        tasks = await store.get_all_due_dated_tasks()
        assert sum(1 for t in tasks if t.recurring_parent_id == parent.id) == 1

    async def test_completed_instance_counts(self, store):
        parent = store.add_item(ItemType.TODO, "Stretch", due_date="2025-03-01", recurrence_pattern="daily")
        service = make_service(store, lookahead_days=7)
        instance = await service.materializer.materialize(ItemType.TODO, parent.id, "2025-03-04")
        store.update_item(ItemType.TODO, instance.id, completed=True)

        index = await service.refresh()

        assert [i.completed for i in index.items_for("2025-03-04")] == [True]
        assert index.count_for("2025-03-04") == 0
        assert index.count_for("2025-03-05") == 1

    async def test_end_date_stops_projection(self, store):
        store.add_item(
            ItemType.TODO, "Course", due_date="2025-03-03", recurrence_pattern="daily", recurrence_end_date="2025-03-06"
        )

        index = await make_service(store).refresh()

        assert index.dates() == ["2025-03-03", "2025-03-04", "2025-03-05", "2025-03-06"]

    async def test_notifications_follow_materialization(self, store, recording_sink):
        parent = store.add_item(ItemType.TODO, "Stretch", due_date="2025-03-01", recurrence_pattern="daily")
        service = make_service(store, sink=recording_sink)

        due_before = await service.feed.get_due_today()
        await service.materializer.materialize_today(ItemType.TODO, parent.id)
        due_after = await service.feed.get_due_today()
        sent = await service.feed.check_due_items()

        assert [d.is_recurring_parent for d in due_before] == [True]
        assert [d.recurring_parent_id for d in due_after] == [parent.id]
        assert sent == []

    async def test_finished_task_is_not_counted(self, store):
        task = store.add_item(ItemType.TASK, "File taxes", due_date="2025-03-04", status="todo")
        service = make_service(store, lookahead_days=7)
        assert (await service.refresh()).count_for("2025-03-04") == 1

        store.update_item(ItemType.TASK, task.id, status="done")
        index = await service.refresh()

        assert [i.completed for i in index.items_for("2025-03-04")] == [True]
        assert index.count_for("2025-03-04") == 0
