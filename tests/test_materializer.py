import asyncio
from datetime import datetime

import pytest

from easytask import planner
from easytask.materializer import materialize, materialize_all
from easytask.models import TaskColor, TaskPriority
from easytask.recurrence import Frequency, RecurrenceRule

pytestmark = pytest.mark.asyncio


async def _template(store, **overrides):
    fields = {
        'title': 'Standup',
        'notes': 'daily sync',
        'duration_minutes': 15,
        'priority': int(TaskPriority.HIGH),
        'color': TaskColor.GREEN.value,
        'scheduled_time': datetime(2024, 1, 1, 10, 0),
    }
    fields.update(overrides.pop('fields', {}))
    rule = overrides.pop('rule', RecurrenceRule(Frequency.DAILY, datetime(2024, 1, 1)))
    async with store.writer() as sess:
        return await store.create_template(sess, rule, fields)


async def test_materialize_creates_instances_inheriting_template_fields(store):
    template_id = await _template(store)
    created = await materialize(store, template_id, datetime(2024, 1, 1), window_days=6)
    assert created == 7

    instances = await planner.instances_of(store, template_id)
    assert [t.scheduled_date for t in instances] == [datetime(2024, 1, d) for d in range(1, 8)]
    for t in instances:
        assert t.parent_id == template_id
        assert t.title == 'Standup'
        assert t.notes == 'daily sync'
        assert t.duration_minutes == 15
        assert t.priority == int(TaskPriority.HIGH)
        assert t.color == 'green'
        assert not t.is_recurring
        assert not t.is_floating
        # template time of day, on the instance's own day
        assert t.scheduled_time == t.scheduled_date.replace(hour=10, minute=0)


async def test_materialize_twice_creates_nothing_new(store):
    template_id = await _template(store)
    first = await materialize(store, template_id, datetime(2024, 1, 1), window_days=30)
    second = await materialize(store, template_id, datetime(2024, 1, 1), window_days=30)
    assert first == 31
    assert second == 0
    assert len(await planner.instances_of(store, template_id)) == 31


async def test_materialize_extends_an_existing_window(store):
    template_id = await _template(store)
    await materialize(store, template_id, datetime(2024, 1, 1), window_days=9)
    created = await materialize(store, template_id, datetime(2024, 1, 5), window_days=9)
    # Jan 5..Jan 10 already exist, Jan 11..Jan 14 are new
    assert created == 4
    assert len(await planner.instances_of(store, template_id)) == 14


async def test_concurrent_materialize_does_not_duplicate(store):
    template_id = await _template(store)
    results = await asyncio.gather(*[
        materialize(store, template_id, datetime(2024, 1, 1), window_days=13) for _ in range(5)
    ])
    assert sum(results) == 14
    instances = await planner.instances_of(store, template_id)
    assert len({t.scheduled_date.date() for t in instances}) == len(instances) == 14


async def test_existing_instance_on_same_day_counts_even_at_other_time(store):
    template_id = await _template(store)
    async with store.writer() as sess:
        await store.create_instance(sess, template_id, {'title': 'moved'}, datetime(2024, 1, 2, 16, 0))
    created = await materialize(store, template_id, datetime(2024, 1, 1), window_days=2)
    assert created == 2


async def test_non_recurring_task_materializes_nothing(store):
    task = await planner.create_task(store, 'One-off')
    assert await materialize(store, task.id, datetime(2024, 1, 1)) == 0


async def test_template_without_rule_materializes_nothing(store):
    async with store.writer() as sess:
        task_id = await store.create_task(sess, {'title': 'Broken', 'is_recurring': True})
    assert await materialize(store, task_id, datetime(2024, 1, 1)) == 0


async def test_materialize_all_rolls_every_template(store):
    daily = await _template(store)
    weekly = await _template(store, rule=RecurrenceRule(
        Frequency.WEEKLY, datetime(2024, 1, 1), days_of_week=frozenset({2}),
    ))
    total = await materialize_all(store, datetime(2024, 1, 1), window_days=13)
    assert total == 14 + 2
    assert len(await planner.instances_of(store, daily)) == 14
    assert len(await planner.instances_of(store, weekly)) == 2
    assert await materialize_all(store, datetime(2024, 1, 1), window_days=13) == 0
