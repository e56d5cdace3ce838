from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from dataclasses import asdict
from typing import Optional
import logging
import sys
import zoneinfo

from dateutil import parser as dateutil_parser
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import dates, planner
from .config import PlannerSettings
from .db import DATABASE_URL, init_db
from .materializer import materialize, materialize_all
from .models import Task, TaskColor, TaskPriority
from .parser import ParsedDraft, parse
from .recurrence import Frequency, RecurrenceRule, occurrences, rule_to_rrule
from .store import TaskNotFound, TaskStore
from .timeline import no_events, timeline_items, work_hours
from .utils import format_duration, now_local

logger = logging.getLogger(__name__)
# Make INFO messages from this module visible on the console when nothing
# else configured logging.
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

# longest window a single request may expand or materialize
MAX_RANGE_DAYS = 3660


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info('starting server using DATABASE_URL=%s', DATABASE_URL)
    settings: PlannerSettings = app.state.settings
    store: TaskStore = app.state.store
    now = app.state.clock()
    # keep every template's window of instances current
    await materialize_all(store, dates.start_of_day(now), settings.materialize_window_days)
    if settings.rollover_missed_tasks:
        await planner.rollover_missed_tasks(store, now)
    yield


app = FastAPI(lifespan=lifespan)
app.state.store = TaskStore()
app.state.settings = PlannerSettings.from_env()
app.state.clock = lambda: now_local(app.state.settings.timezone)
# calendar events are supplied by the host; none by default
app.state.event_source = no_events


@app.exception_handler(TaskNotFound)
async def task_not_found_handler(request: Request, exc: TaskNotFound):
    return JSONResponse(status_code=404, content={'detail': 'task not found', 'task_id': exc.task_id})


def get_store(request: Request) -> TaskStore:
    return request.app.state.store


def get_settings(request: Request) -> PlannerSettings:
    return request.app.state.settings


def get_now(request: Request) -> datetime:
    return request.app.state.clock()


def _to_local(dt: Optional[datetime], tz_name: str) -> Optional[datetime]:
    """Convert an offset-carrying datetime to naive wall-clock time in ``tz_name``."""
    if dt is None or dt.tzinfo is None:
        return dt
    try:
        tz = zoneinfo.ZoneInfo(tz_name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        tz = zoneinfo.ZoneInfo('UTC')
    try:
        return dt.astimezone(tz).replace(tzinfo=None)
    except OverflowError:
        raise HTTPException(status_code=400, detail=f'datetime out of range: {dt.isoformat()}')


def _parse_when(s: Optional[str], tz_name: str) -> Optional[datetime]:
    """Parse a date/datetime query value into a naive local datetime."""
    if not s:
        return None
    try:
        dt = dateutil_parser.isoparse(s)
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail=f'invalid datetime: {s}')
    return _to_local(dt, tz_name)


def serialize_task(task: Task, now: datetime) -> dict:
    return {
        'id': task.id,
        'title': task.title,
        'notes': task.notes,
        'scheduled_date': task.scheduled_date,
        'scheduled_time': task.scheduled_time,
        'duration_minutes': task.duration_minutes,
        'duration': format_duration(task.duration_minutes),
        'is_floating': task.is_floating,
        'is_completed': task.is_completed,
        'completed_at': task.completed_at,
        'priority': TaskPriority(task.priority).label,
        'color': task.color,
        'is_recurring': task.is_recurring,
        'parent_id': task.parent_id,
        'is_overdue': task.is_overdue(now),
    }


def serialize_draft(draft: ParsedDraft, now: datetime) -> dict:
    out = {
        'title': draft.title,
        'scheduled_date': draft.scheduled_date,
        'scheduled_time': draft.scheduled_time,
        'is_floating': draft.is_floating,
        'is_recurring': draft.is_recurring,
        'frequency': draft.frequency.value if draft.frequency else None,
        'interval': draft.interval,
        'days_of_week': list(draft.days_of_week),
        'day_of_month': draft.day_of_month,
        'rrule': None,
    }
    rule = draft.to_rule(dates.start_of_day(draft.scheduled_date or now))
    if rule is not None:
        out['rrule'] = rule_to_rrule(rule)
    return out


class ParseRequest(BaseModel):
    text: str


class RecurrenceIn(BaseModel):
    frequency: Frequency
    interval: int = 1
    days_of_week: list[int] = Field(default_factory=list)
    day_of_month: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    occurrence_count: Optional[int] = None


class CreateTaskRequest(BaseModel):
    # free text is parsed; otherwise title and the structured fields are used
    text: Optional[str] = None
    title: Optional[str] = None
    notes: str = ''
    scheduled_date: Optional[datetime] = None
    scheduled_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    color: TaskColor = TaskColor.BLUE
    recurrence: Optional[RecurrenceIn] = None


class RescheduleRequest(BaseModel):
    scheduled_date: datetime
    scheduled_time: Optional[datetime] = None


class DurationRequest(BaseModel):
    minutes: int


@app.post('/parse')
async def parse_text(payload: ParseRequest, now: datetime = Depends(get_now)):
    draft = parse(payload.text, now=now)
    return serialize_draft(draft, now)


@app.post('/tasks')
async def create_task(
    payload: CreateTaskRequest,
    store: TaskStore = Depends(get_store),
    settings: PlannerSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
):
    if payload.text and payload.text.strip():
        draft = parse(payload.text, now=now)
        task = await planner.create_from_draft(store, draft, settings, now)
        return serialize_task(task, now)

    title = (payload.title or '').strip()
    if not title:
        raise HTTPException(status_code=400, detail='text or title is required')
    duration = payload.duration_minutes if payload.duration_minutes is not None else settings.default_task_duration_minutes
    if duration < 0:
        raise HTTPException(status_code=400, detail='duration_minutes must not be negative')
    scheduled_date = _to_local(payload.scheduled_date, settings.timezone)
    scheduled_time = _to_local(payload.scheduled_time, settings.timezone)

    if payload.recurrence is not None:
        rec = payload.recurrence
        start = _to_local(rec.start_date, settings.timezone) or dates.start_of_day(scheduled_date or now)
        rule = RecurrenceRule(
            frequency=rec.frequency,
            start_date=start,
            interval=rec.interval,
            days_of_week=frozenset(rec.days_of_week),
            day_of_month=rec.day_of_month,
            end_date=_to_local(rec.end_date, settings.timezone),
            occurrence_count=rec.occurrence_count,
        )
        task = await planner.create_recurring_task(
            store, title, rule,
            notes=payload.notes,
            scheduled_time=scheduled_time,
            duration_minutes=duration,
            priority=payload.priority,
            color=payload.color,
            window_days=settings.materialize_window_days,
        )
        return serialize_task(task, now)

    task = await planner.create_task(
        store, title,
        notes=payload.notes,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        duration_minutes=duration,
        priority=payload.priority,
        color=payload.color,
    )
    return serialize_task(task, now)


@app.get('/tasks')
async def list_tasks(
    date: Optional[str] = None,
    store: TaskStore = Depends(get_store),
    settings: PlannerSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
):
    day = _parse_when(date, settings.timezone)
    if day is not None:
        tasks = await planner.tasks_for_date(store, day)
    else:
        tasks = await planner.all_tasks(store)
    return {'tasks': [serialize_task(t, now) for t in tasks]}


@app.get('/tasks/floating')
async def list_floating(store: TaskStore = Depends(get_store), now: datetime = Depends(get_now)):
    return {'tasks': [serialize_task(t, now) for t in await planner.floating_tasks(store)]}


@app.get('/tasks/overdue')
async def list_overdue(store: TaskStore = Depends(get_store), now: datetime = Depends(get_now)):
    return {'tasks': [serialize_task(t, now) for t in await planner.overdue_tasks(store, now)]}


@app.post('/tasks/rollover')
async def rollover(store: TaskStore = Depends(get_store), now: datetime = Depends(get_now)):
    moved = await planner.rollover_missed_tasks(store, now)
    return {'moved': moved}


@app.get('/tasks/{task_id}')
async def get_task(task_id: int, store: TaskStore = Depends(get_store), now: datetime = Depends(get_now)):
    task = await planner.get_task(store, task_id)
    out = serialize_task(task, now)
    if task.is_recurring:
        rule = await planner.rule_of(store, task_id)
        out['rrule'] = rule_to_rrule(rule) if rule else None
        out['instances'] = [serialize_task(t, now) for t in await planner.instances_of(store, task_id)]
    return out


@app.post('/tasks/{task_id}/complete')
async def complete_task(task_id: int, store: TaskStore = Depends(get_store), now: datetime = Depends(get_now)):
    return serialize_task(await planner.complete_task(store, task_id, now), now)


@app.post('/tasks/{task_id}/uncomplete')
async def uncomplete_task(task_id: int, store: TaskStore = Depends(get_store), now: datetime = Depends(get_now)):
    return serialize_task(await planner.uncomplete_task(store, task_id), now)


@app.post('/tasks/{task_id}/toggle')
async def toggle_task(task_id: int, store: TaskStore = Depends(get_store), now: datetime = Depends(get_now)):
    return serialize_task(await planner.toggle_completion(store, task_id, now), now)


@app.post('/tasks/{task_id}/reschedule')
async def reschedule_task(
    task_id: int,
    payload: RescheduleRequest,
    store: TaskStore = Depends(get_store),
    settings: PlannerSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
):
    task = await planner.reschedule_task(
        store, task_id,
        _to_local(payload.scheduled_date, settings.timezone),
        _to_local(payload.scheduled_time, settings.timezone),
    )
    return serialize_task(task, now)


@app.post('/tasks/{task_id}/float')
async def float_task(task_id: int, store: TaskStore = Depends(get_store), now: datetime = Depends(get_now)):
    return serialize_task(await planner.make_floating(store, task_id), now)


@app.post('/tasks/{task_id}/duration')
async def set_duration(
    task_id: int,
    payload: DurationRequest,
    store: TaskStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        task = await planner.update_duration(store, task_id, payload.minutes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return serialize_task(task, now)


@app.delete('/tasks/{task_id}')
async def delete_task(task_id: int, store: TaskStore = Depends(get_store)):
    removed = await planner.delete_task(store, task_id)
    return {'deleted': removed}


@app.post('/tasks/{task_id}/materialize')
async def materialize_task(
    task_id: int,
    days: Optional[int] = None,
    store: TaskStore = Depends(get_store),
    settings: PlannerSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
):
    window = days if days is not None else settings.materialize_window_days
    if window < 0:
        raise HTTPException(status_code=400, detail='days must not be negative')
    if window > MAX_RANGE_DAYS:
        raise HTTPException(status_code=400, detail=f'days must not exceed {MAX_RANGE_DAYS}')
    created = await materialize(store, task_id, dates.start_of_day(now), window)
    return {'created': created}


@app.get('/tasks/{task_id}/occurrences')
async def task_occurrences(
    task_id: int,
    start: Optional[str] = None,
    end: Optional[str] = None,
    store: TaskStore = Depends(get_store),
    settings: PlannerSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
):
    rule = await planner.rule_of(store, task_id)
    if rule is None:
        raise HTTPException(status_code=400, detail='task is not recurring')
    start_dt = _parse_when(start, settings.timezone) or dates.start_of_day(now)
    end_dt = _parse_when(end, settings.timezone)
    if end_dt is None:
        end_dt = start_dt + timedelta(days=min(settings.materialize_window_days, MAX_RANGE_DAYS))
    if end_dt < start_dt:
        raise HTTPException(status_code=400, detail='end must not be before start')
    if end_dt - start_dt > timedelta(days=MAX_RANGE_DAYS):
        raise HTTPException(status_code=400, detail=f'range must not exceed {MAX_RANGE_DAYS} days')
    return {
        'rrule': rule_to_rrule(rule),
        'occurrences': occurrences(rule, start_dt, end_dt),
    }


@app.get('/timeline')
async def timeline(
    request: Request,
    date: Optional[str] = None,
    store: TaskStore = Depends(get_store),
    settings: PlannerSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
):
    day = dates.start_of_day(_parse_when(date, settings.timezone) or now)
    tasks = await planner.tasks_for_date(store, day)
    events = request.app.state.event_source(day)
    work_start, work_end = work_hours(day, settings)
    return {
        'date': day.date().isoformat(),
        'work_start': work_start,
        'work_end': work_end,
        'items': [asdict(v) for v in timeline_items(day, tasks, events, settings)],
    }
