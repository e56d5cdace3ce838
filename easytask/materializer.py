"""Create concrete task instances for the occurrences of recurring templates."""
from datetime import datetime, timedelta
import logging

from sqlmodel.ext.asyncio.session import AsyncSession

from . import dates
from .models import Task
from .recurrence import RecurrenceRule, occurrences
from .store import TaskStore

logger = logging.getLogger(__name__)

# Fields an instance copies from its template
INHERITED_FIELDS = ('title', 'notes', 'duration_minutes', 'priority', 'color')


def instance_fields(template: Task, occurrence: datetime) -> dict:
    fields = {name: getattr(template, name) for name in INHERITED_FIELDS}
    # the template's time-of-day lands on the occurrence's own day
    if template.scheduled_time is not None:
        fields['scheduled_time'] = dates.with_time_of(occurrence, template.scheduled_time)
    return fields


async def _materialize_in(
    store: TaskStore,
    sess: AsyncSession,
    template: Task,
    rule: RecurrenceRule,
    range_start: datetime,
    window_days: int,
) -> int:
    range_end = range_start + timedelta(days=window_days)
    created = 0
    for occ in occurrences(rule, range_start, range_end):
        if await store.find_instance(sess, template.id, occ) is not None:
            continue
        await store.create_instance(sess, template.id, instance_fields(template, occ), occ)
        created += 1
    return created


async def materialize(store: TaskStore, template_id: int, range_start: datetime, window_days: int = 30) -> int:
    """Create the missing instances of a template for ``window_days`` from ``range_start``.

    An occurrence already covered by an instance of the template on the same
    calendar day is skipped, so repeated calls over the same window create
    nothing new. Returns the number of instances created; a task that is not
    a recurring template yields 0.
    """
    async with store.writer() as sess:
        template = await store.get_task(sess, template_id)
        if not template.is_recurring:
            return 0
        rule = await store.get_rule(sess, template.id)
        if rule is None:
            logger.warning('recurring task id=%s has no recurrence pattern', template.id)
            return 0
        created = await _materialize_in(store, sess, template, rule, range_start, window_days)
    if created:
        logger.info('materialized %d instance(s) for template id=%s', created, template_id)
    return created


async def materialize_all(store: TaskStore, range_start: datetime, window_days: int = 30) -> int:
    """Roll every template's instance window forward; returns instances created."""
    total = 0
    async with store.writer() as sess:
        for template in await store.templates(sess):
            rule = await store.get_rule(sess, template.id)
            if rule is None:
                continue
            total += await _materialize_in(store, sess, template, rule, range_start, window_days)
    logger.info('materialize_all created %d instance(s)', total)
    return total
