"""Day timeline: tasks and calendar events side by side.

Calendar events arrive as already-loaded ``CalendarEvent`` values; nothing here
reads a calendar. A timeline item is either a ``TaskEntry`` or an
``EventEntry`` and ``project`` gives both the same read-only shape.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Union

from . import dates
from .config import PlannerSettings
from .models import Task


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: datetime
    end: datetime
    is_all_day: bool = False
    location: str | None = None
    notes: str | None = None
    calendar_title: str = 'Calendar'
    color: str | None = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


# Supplies the events of one day; the default source has none.
EventSource = Callable[[datetime], list[CalendarEvent]]


def no_events(day: datetime) -> list[CalendarEvent]:
    return []


@dataclass(frozen=True)
class TaskEntry:
    task: Task


@dataclass(frozen=True)
class EventEntry:
    event: CalendarEvent


TimelineItem = Union[TaskEntry, EventEntry]


@dataclass(frozen=True)
class TimelineView:
    id: str
    title: str
    start: datetime | None
    end: datetime | None
    color: str
    is_all_day: bool
    kind: str


def project(item: TimelineItem) -> TimelineView:
    match item:
        case TaskEntry(task=task):
            start = task.scheduled_time or task.scheduled_date
            end = start + timedelta(minutes=task.duration_minutes or 0) if start else None
            return TimelineView(
                id=f'task-{task.id}', title=task.title, start=start, end=end,
                color=task.color, is_all_day=False, kind='task',
            )
        case EventEntry(event=event):
            return TimelineView(
                id=f'event-{event.id}', title=event.title, start=event.start, end=event.end,
                color=event.color or 'blue', is_all_day=event.is_all_day, kind='event',
            )
    raise TypeError(f'not a timeline item: {item!r}')


def _sort_key(view: TimelineView):
    # undated items last, all-day events first among those that start the same
    return (view.start is None, view.start or datetime.max, not view.is_all_day, view.id)


def timeline_items(
    day: datetime,
    tasks: Iterable[Task],
    events: Iterable[CalendarEvent],
    settings: PlannerSettings,
) -> list[TimelineView]:
    """Merge ``day``'s events and scheduled tasks into one list sorted by start."""
    day_start = dates.start_of_day(day)
    day_end = dates.next_day(day_start)
    items: list[TimelineItem] = []
    for task in tasks:
        if task.scheduled_date is None or not day_start <= task.scheduled_date < day_end:
            continue
        if task.is_completed and not settings.show_completed_tasks:
            continue
        items.append(TaskEntry(task))
    for event in events:
        # events spanning midnight still belong to the days they touch
        if event.start < day_end and event.end > day_start:
            items.append(EventEntry(event))
    return sorted((project(i) for i in items), key=_sort_key)


def work_hours(day: datetime, settings: PlannerSettings) -> tuple[datetime, datetime]:
    """Start and end of the working day on ``day``."""
    start = dates.with_time(day, settings.work_start_hour, 0)
    if settings.work_end_hour >= 24:
        return start, dates.next_day(day)
    return start, dates.with_time(day, settings.work_end_hour, 0)


def week_days(day: datetime, settings: PlannerSettings) -> list[datetime]:
    """The seven days of ``day``'s week, starting on the configured first weekday."""
    first = dates.start_of_week(day, settings.first_weekday)
    return [first + timedelta(days=i) for i in range(7)]
