"""Task operations: creation (plain, recurring, from a parsed draft), queries
and the mutations behind the API.

Every function takes the ``TaskStore`` explicitly. Reads use
``store.reader()``; anything that writes goes through ``store.writer()``.
Operations on a missing id raise ``TaskNotFound``.
"""
from datetime import datetime, timedelta
import logging

from . import dates
from .config import PlannerSettings
from .materializer import materialize
from .models import Task, TaskColor, TaskPriority
from .parser import ParsedDraft
from .recurrence import RecurrenceRule
from .store import TaskStore

logger = logging.getLogger(__name__)


def _task_fields(title, notes, duration_minutes, priority, color) -> dict:
    return {
        'title': title,
        'notes': notes or '',
        'duration_minutes': int(duration_minutes),
        'priority': int(priority),
        'color': TaskColor(color).value,
    }


async def create_task(
    store: TaskStore,
    title: str,
    *,
    notes: str = '',
    scheduled_date: datetime | None = None,
    scheduled_time: datetime | None = None,
    duration_minutes: int = 30,
    priority: TaskPriority | int = TaskPriority.MEDIUM,
    color: TaskColor | str = TaskColor.BLUE,
) -> Task:
    fields = _task_fields(title, notes, duration_minutes, priority, color)
    fields.update(
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        is_floating=scheduled_date is None and scheduled_time is None,
    )
    async with store.writer() as sess:
        task_id = await store.create_task(sess, fields)
        task = await store.get_task(sess, task_id)
    logger.info('created task id=%s title=%r', task.id, task.title)
    return task


async def create_recurring_task(
    store: TaskStore,
    title: str,
    rule: RecurrenceRule,
    *,
    notes: str = '',
    scheduled_time: datetime | None = None,
    duration_minutes: int = 30,
    priority: TaskPriority | int = TaskPriority.MEDIUM,
    color: TaskColor | str = TaskColor.BLUE,
    window_days: int = 30,
) -> Task:
    """Create a template owning ``rule`` and materialize its first window.

    The template itself carries no scheduled date; only its instances show up
    on days.
    """
    fields = _task_fields(title, notes, duration_minutes, priority, color)
    fields['scheduled_time'] = scheduled_time
    async with store.writer() as sess:
        template_id = await store.create_template(sess, rule, fields)
        template = await store.get_task(sess, template_id)
    logger.info('created recurring task id=%s title=%r rule=%s', template.id, template.title, rule.frequency)
    await materialize(store, template_id, rule.start_date, window_days)
    return template


async def create_from_draft(store: TaskStore, draft: ParsedDraft, settings: PlannerSettings, now: datetime) -> Task:
    """Turn a parsed draft into a stored task (or template plus instances)."""
    if draft.is_recurring:
        start = dates.start_of_day(draft.scheduled_date or now)
        rule = draft.to_rule(start)
        if rule is not None:
            return await create_recurring_task(
                store,
                draft.title,
                rule,
                scheduled_time=draft.scheduled_time,
                duration_minutes=settings.default_task_duration_minutes,
                window_days=settings.materialize_window_days,
            )
    return await create_task(
        store,
        draft.title,
        scheduled_date=draft.scheduled_date,
        scheduled_time=draft.scheduled_time,
        duration_minutes=settings.default_task_duration_minutes,
    )


# --- queries ---

async def get_task(store: TaskStore, task_id: int) -> Task:
    async with store.reader() as sess:
        return await store.get_task(sess, task_id)


async def all_tasks(store: TaskStore) -> list[Task]:
    async with store.reader() as sess:
        return await store.all_tasks(sess)


async def tasks_for_date(store: TaskStore, day: datetime) -> list[Task]:
    start = dates.start_of_day(day)
    async with store.reader() as sess:
        return await store.tasks_between(sess, start, dates.next_day(start))


async def tasks_in_range(store: TaskStore, start: datetime, end: datetime) -> list[Task]:
    """Tasks scheduled within ``start <= scheduled_date <= end``."""
    async with store.reader() as sess:
        return await store.tasks_between(sess, start, end + timedelta(microseconds=1))


async def floating_tasks(store: TaskStore) -> list[Task]:
    return [t for t in await all_tasks(store) if t.is_floating and not t.is_completed]


async def incomplete_tasks(store: TaskStore) -> list[Task]:
    return [t for t in await all_tasks(store) if not t.is_completed]


async def overdue_tasks(store: TaskStore, now: datetime) -> list[Task]:
    return [t for t in await all_tasks(store) if t.is_overdue(now)]


async def instances_of(store: TaskStore, template_id: int) -> list[Task]:
    async with store.reader() as sess:
        await store.get_task(sess, template_id)
        return await store.instances_of(sess, template_id)


async def rule_of(store: TaskStore, task_id: int) -> RecurrenceRule | None:
    async with store.reader() as sess:
        await store.get_task(sess, task_id)
        return await store.get_rule(sess, task_id)


# --- mutations ---

async def _update(store: TaskStore, task_id: int, **changes) -> Task:
    async with store.writer() as sess:
        task = await store.get_task(sess, task_id)
        for name, value in changes.items():
            setattr(task, name, value)
        return await store.save(sess, task)


async def complete_task(store: TaskStore, task_id: int, now: datetime) -> Task:
    return await _update(store, task_id, is_completed=True, completed_at=now)


async def uncomplete_task(store: TaskStore, task_id: int) -> Task:
    return await _update(store, task_id, is_completed=False, completed_at=None)


async def toggle_completion(store: TaskStore, task_id: int, now: datetime) -> Task:
    async with store.writer() as sess:
        task = await store.get_task(sess, task_id)
        task.is_completed = not task.is_completed
        task.completed_at = now if task.is_completed else None
        return await store.save(sess, task)


async def reschedule_task(
    store: TaskStore, task_id: int, scheduled_date: datetime, scheduled_time: datetime | None = None,
) -> Task:
    return await _update(
        store, task_id,
        scheduled_date=scheduled_date, scheduled_time=scheduled_time, is_floating=False,
    )


async def make_floating(store: TaskStore, task_id: int) -> Task:
    return await _update(store, task_id, scheduled_date=None, scheduled_time=None, is_floating=True)


async def update_duration(store: TaskStore, task_id: int, minutes: int) -> Task:
    if minutes < 0:
        raise ValueError('duration must not be negative')
    return await _update(store, task_id, duration_minutes=int(minutes))


async def delete_task(store: TaskStore, task_id: int) -> int:
    """Delete a task; deleting a template also removes its rule and instances."""
    async with store.writer() as sess:
        task = await store.get_task(sess, task_id)
        return await store.delete_task(sess, task)


async def delete_instance(store: TaskStore, task_id: int) -> None:
    """Delete one instance, leaving its template and siblings alone."""
    async with store.writer() as sess:
        task = await store.get_task(sess, task_id)
        if task.is_recurring:
            raise ValueError(f'task {task_id} is a recurring template, not an instance')
        await sess.delete(task)
    logger.info('deleted instance id=%s', task_id)


async def rollover_missed_tasks(store: TaskStore, now: datetime) -> int:
    """Move incomplete tasks scheduled before today onto today.

    The scheduled date becomes today's start of day; a scheduled time keeps
    its time-of-day on today. Returns the number of tasks moved.
    """
    today = dates.start_of_day(now)
    moved = 0
    async with store.writer() as sess:
        for task in await store.all_tasks(sess):
            if task.is_completed or task.scheduled_date is None or task.scheduled_date >= today:
                continue
            task.scheduled_date = today
            if task.scheduled_time is not None:
                task.scheduled_time = dates.with_time_of(today, task.scheduled_time)
            await store.save(sess, task)
            moved += 1
    if moved:
        logger.info('rolled over %d missed task(s) to %s', moved, today.date())
    return moved
