"""SQLite-backed task store.

All tasks (one-off tasks, recurring templates and their instances) live in a
single table; instances reference their template through ``parent_id``.
Store methods take an open session so that a caller can group several reads
and writes into one unit of work. Every mutation must go through
``TaskStore.writer()``, which serializes writers on a single lock per store.
That is what keeps two concurrent materializations of the same template from
both deciding an instance is missing and creating it twice.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator
import asyncio
import logging

from sqlalchemy import delete as sqlalchemy_delete
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from . import dates
from .db import async_session
from .models import RecurrencePattern, Task
from .recurrence import RecurrenceRule

logger = logging.getLogger(__name__)


class TaskNotFound(LookupError):
    def __init__(self, task_id: int):
        super().__init__(f'task {task_id} not found')
        self.task_id = task_id


class TaskStore:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or async_session
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as sess:
            yield sess

    @asynccontextmanager
    async def writer(self) -> AsyncIterator[AsyncSession]:
        """Open a session as the store's only writer; commit on success."""
        async with self._write_lock:
            async with self._session_factory() as sess:
                try:
                    yield sess
                    await sess.commit()
                except Exception:
                    await sess.rollback()
                    raise

    # --- creation ---

    async def create_task(self, sess: AsyncSession, fields: dict[str, Any]) -> int:
        task = Task(**fields)
        sess.add(task)
        await sess.flush()
        return int(task.id)

    async def create_template(self, sess: AsyncSession, rule: RecurrenceRule, fields: dict[str, Any]) -> int:
        values = dict(fields)
        values.update(is_recurring=True, is_floating=False, parent_id=None)
        task_id = await self.create_task(sess, values)
        sess.add(RecurrencePattern.from_rule(task_id, rule))
        await sess.flush()
        return task_id

    async def create_instance(self, sess: AsyncSession, parent_id: int, fields: dict[str, Any], on_date: datetime) -> int:
        values = dict(fields)
        values.update(parent_id=parent_id, scheduled_date=on_date, is_recurring=False, is_floating=False)
        return await self.create_task(sess, values)

    # --- queries ---

    async def get_task(self, sess: AsyncSession, task_id: int) -> Task:
        task = await sess.get(Task, task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    async def get_rule(self, sess: AsyncSession, task_id: int) -> RecurrenceRule | None:
        q = await sess.exec(select(RecurrencePattern).where(RecurrencePattern.task_id == task_id))
        pattern = q.first()
        return pattern.to_rule() if pattern else None

    async def find_instance(self, sess: AsyncSession, parent_id: int, on_date: datetime) -> Task | None:
        """The instance of ``parent_id`` scheduled on ``on_date``'s calendar day, if any."""
        day_start = dates.start_of_day(on_date)
        q = await sess.exec(
            select(Task)
            .where(Task.parent_id == parent_id)
            .where(Task.scheduled_date >= day_start)
            .where(Task.scheduled_date < dates.next_day(day_start))
        )
        return q.first()

    async def all_tasks(self, sess: AsyncSession) -> list[Task]:
        q = await sess.exec(select(Task).order_by(Task.scheduled_date, Task.created_at, Task.id))
        return list(q.all())

    async def instances_of(self, sess: AsyncSession, parent_id: int) -> list[Task]:
        q = await sess.exec(select(Task).where(Task.parent_id == parent_id).order_by(Task.scheduled_date))
        return list(q.all())

    async def templates(self, sess: AsyncSession) -> list[Task]:
        q = await sess.exec(select(Task).where(Task.is_recurring == True).order_by(Task.id))  # noqa: E712
        return list(q.all())

    async def tasks_between(self, sess: AsyncSession, start: datetime, end: datetime) -> list[Task]:
        """Tasks with ``start <= scheduled_date < end``."""
        q = await sess.exec(
            select(Task)
            .where(Task.scheduled_date >= start)
            .where(Task.scheduled_date < end)
            .order_by(Task.scheduled_date, Task.id)
        )
        return list(q.all())

    # --- mutation ---

    async def save(self, sess: AsyncSession, task: Task) -> Task:
        sess.add(task)
        await sess.flush()
        return task

    async def delete_task(self, sess: AsyncSession, task: Task) -> int:
        """Delete ``task``; a template takes its rule and instances with it.

        Returns the number of task rows removed.
        """
        removed = 0
        if task.is_recurring:
            res = await sess.execute(sqlalchemy_delete(Task).where(Task.parent_id == task.id))
            removed += res.rowcount or 0
            await sess.execute(sqlalchemy_delete(RecurrencePattern).where(RecurrencePattern.task_id == task.id))
        await sess.delete(task)
        await sess.flush()
        removed += 1
        logger.info('deleted task id=%s (%d rows)', task.id, removed)
        return removed
