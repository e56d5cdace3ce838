from dataclasses import replace
from datetime import datetime

import pytest

from easytask.models import Task
from easytask.timeline import (
    CalendarEvent,
    EventEntry,
    TaskEntry,
    project,
    timeline_items,
    week_days,
    work_hours,
)

DAY = datetime(2024, 1, 10)


def _task(id, title, **kw):
    return Task(id=id, title=title, **kw)


def test_project_task_uses_time_then_date():
    task = _task(1, 'Write', scheduled_date=DAY, scheduled_time=datetime(2024, 1, 10, 9, 0),
                 duration_minutes=45, color='red')
    view = project(TaskEntry(task))
    assert view.id == 'task-1'
    assert view.kind == 'task'
    assert view.start == datetime(2024, 1, 10, 9, 0)
    assert view.end == datetime(2024, 1, 10, 9, 45)
    assert view.color == 'red'
    assert not view.is_all_day


def test_project_event():
    event = CalendarEvent('e1', 'Offsite', DAY, datetime(2024, 1, 11), is_all_day=True, calendar_title='Work')
    view = project(EventEntry(event))
    assert view.id == 'event-e1'
    assert view.kind == 'event'
    assert view.is_all_day
    assert view.color == 'blue'
    assert event.duration.days == 1


def test_project_rejects_other_values():
    with pytest.raises(TypeError):
        project('not an item')


def test_timeline_merges_and_sorts(settings):
    tasks = [
        _task(1, 'Late task', scheduled_date=DAY, scheduled_time=datetime(2024, 1, 10, 15, 0)),
        _task(2, 'Morning task', scheduled_date=DAY, scheduled_time=datetime(2024, 1, 10, 8, 0)),
        _task(3, 'Other day', scheduled_date=datetime(2024, 1, 11)),
        _task(4, 'Floating'),
    ]
    events = [
        CalendarEvent('m', 'Meeting', datetime(2024, 1, 10, 11, 0), datetime(2024, 1, 10, 12, 0)),
        CalendarEvent('y', 'Yesterday', datetime(2024, 1, 9, 11, 0), datetime(2024, 1, 9, 12, 0)),
    ]
    items = timeline_items(DAY, tasks, events, settings)
    assert [v.title for v in items] == ['Morning task', 'Meeting', 'Late task']


def test_timeline_hides_completed_when_configured(settings):
    tasks = [
        _task(1, 'Done', scheduled_date=DAY, is_completed=True),
        _task(2, 'Open', scheduled_date=DAY),
    ]
    assert len(timeline_items(DAY, tasks, [], settings)) == 2
    hidden = replace(settings, show_completed_tasks=False)
    assert [v.title for v in timeline_items(DAY, tasks, [], hidden)] == ['Open']


def test_work_hours_and_week(settings):
    assert work_hours(DAY, settings) == (datetime(2024, 1, 10, 9, 0), datetime(2024, 1, 10, 17, 0))
    week = week_days(datetime(2024, 1, 10, 13, 0), settings)
    assert week[0] == datetime(2024, 1, 8)
    assert len(week) == 7
    sunday_first = replace(settings, week_starts_on_monday=False)
    assert week_days(DAY, sunday_first)[0] == datetime(2024, 1, 7)
