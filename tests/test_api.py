import dataclasses

import pytest

from easytask.main import app
from easytask.timeline import CalendarEvent

pytestmark = pytest.mark.asyncio


async def test_parse_preview(client):
    r = await client.post('/parse', json={'text': 'Standup every 2 weeks on Mon/Wed/Fri 10am'})
    assert r.status_code == 200
    body = r.json()
    assert body['title'] == 'Standup'
    assert body['is_recurring'] is True
    assert body['frequency'] == 'weekly'
    assert body['interval'] == 2
    assert body['days_of_week'] == [2, 4, 6]
    assert body['scheduled_time'] == '2024-01-10T10:00:00'
    assert body['rrule'] == 'FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE,FR'


async def test_parse_plain_text(client):
    r = await client.post('/parse', json={'text': 'buy milk'})
    body = r.json()
    assert body['title'] == 'Buy milk'
    assert body['is_floating'] is True
    assert body['rrule'] is None


async def test_create_from_text_and_fetch(client):
    r = await client.post('/tasks', json={'text': 'Dentist tomorrow at 3pm'})
    assert r.status_code == 200
    task = r.json()
    assert task['title'] == 'Dentist'
    assert task['scheduled_time'] == '2024-01-11T15:00:00'
    assert task['duration'] == '30m'

    r = await client.get(f"/tasks/{task['id']}")
    assert r.status_code == 200
    assert r.json()['title'] == 'Dentist'

    r = await client.get('/tasks', params={'date': '2024-01-11'})
    assert [t['id'] for t in r.json()['tasks']] == [task['id']]
    r = await client.get('/tasks', params={'date': '2024-01-10'})
    assert r.json()['tasks'] == []


async def test_create_recurring_from_text(client):
    r = await client.post('/tasks', json={'text': 'Gym Mon Wed Fri 6pm'})
    template = r.json()
    assert template['is_recurring'] is True

    r = await client.get(f"/tasks/{template['id']}")
    body = r.json()
    assert body['rrule'] == 'FREQ=WEEKLY;BYDAY=MO,WE,FR'
    assert len(body['instances']) == 14

    r = await client.get('/timeline', params={'date': '2024-01-12'})
    items = r.json()['items']
    assert [(i['title'], i['start']) for i in items] == [('Gym', '2024-01-12T18:00:00')]


async def test_create_structured_recurring(client):
    r = await client.post('/tasks', json={
        'title': 'Pay rent',
        'priority': 2,
        'color': 'red',
        'recurrence': {'frequency': 'monthly', 'day_of_month': 1, 'start_date': '2024-01-01T00:00:00'},
    })
    assert r.status_code == 200
    template = r.json()
    assert template['priority'] == 'High'
    assert template['color'] == 'red'

    r = await client.get(f"/tasks/{template['id']}/occurrences", params={
        'start': '2024-01-01', 'end': '2024-04-30',
    })
    body = r.json()
    assert body['rrule'] == 'FREQ=MONTHLY;BYMONTHDAY=1'
    assert body['occurrences'] == [
        '2024-01-01T00:00:00', '2024-02-01T00:00:00', '2024-03-01T00:00:00', '2024-04-01T00:00:00',
    ]


async def test_materialize_endpoint_is_idempotent(client):
    r = await client.post('/tasks', json={
        'title': 'Water plants',
        'recurrence': {'frequency': 'custom', 'interval': 2, 'start_date': '2024-01-10T00:00:00'},
    })
    tid = r.json()['id']
    r = await client.post(f'/tasks/{tid}/materialize', params={'days': 60})
    # days 0..30 already exist from creation; 31..60 are new
    assert r.json()['created'] == 15
    r = await client.post(f'/tasks/{tid}/materialize', params={'days': 60})
    assert r.json()['created'] == 0


async def test_create_requires_text_or_title(client):
    r = await client.post('/tasks', json={'notes': 'no title'})
    assert r.status_code == 400


async def test_missing_task_is_404(client):
    assert (await client.get('/tasks/4242')).status_code == 404
    assert (await client.post('/tasks/4242/complete')).status_code == 404
    assert (await client.delete('/tasks/4242')).status_code == 404


async def test_occurrences_of_one_off_is_400(client):
    r = await client.post('/tasks', json={'title': 'Once'})
    r = await client.get(f"/tasks/{r.json()['id']}/occurrences")
    assert r.status_code == 400


async def test_bad_date_query_is_400(client):
    r = await client.get('/tasks', params={'date': 'not-a-date'})
    assert r.status_code == 400


async def test_complete_reschedule_float_delete(client):
    tid = (await client.post('/tasks', json={'title': 'Report'})).json()['id']

    r = await client.post(f'/tasks/{tid}/complete')
    assert r.json()['is_completed'] is True
    r = await client.post(f'/tasks/{tid}/uncomplete')
    assert r.json()['is_completed'] is False
    r = await client.post(f'/tasks/{tid}/toggle')
    assert r.json()['is_completed'] is True

    r = await client.post(f'/tasks/{tid}/reschedule', json={'scheduled_date': '2024-01-20T00:00:00'})
    assert r.json()['scheduled_date'] == '2024-01-20T00:00:00'
    assert r.json()['is_floating'] is False

    r = await client.post(f'/tasks/{tid}/float')
    assert r.json()['is_floating'] is True

    r = await client.post(f'/tasks/{tid}/duration', json={'minutes': 90})
    assert r.json()['duration'] == '1h 30m'
    r = await client.post(f'/tasks/{tid}/duration', json={'minutes': -1})
    assert r.status_code == 400

    r = await client.delete(f'/tasks/{tid}')
    assert r.json() == {'deleted': 1}
    assert (await client.get(f'/tasks/{tid}')).status_code == 404


async def test_floating_overdue_and_rollover(client):
    floating = (await client.post('/tasks', json={'title': 'Someday'})).json()
    late = (await client.post('/tasks', json={
        'title': 'Late', 'scheduled_date': '2024-01-08T00:00:00',
    })).json()

    r = await client.get('/tasks/floating')
    assert [t['id'] for t in r.json()['tasks']] == [floating['id']]
    r = await client.get('/tasks/overdue')
    assert [t['id'] for t in r.json()['tasks']] == [late['id']]

    r = await client.post('/tasks/rollover')
    assert r.json() == {'moved': 1}
    r = await client.get(f"/tasks/{late['id']}")
    assert r.json()['scheduled_date'] == '2024-01-10T00:00:00'


async def test_timeline_includes_supplied_events(client):
    await client.post('/tasks', json={'text': 'Write notes today at 2pm'})
    app.state.event_source = lambda day: [
        CalendarEvent('ev', 'Standup', day.replace(hour=10), day.replace(hour=10, minute=15)),
    ]
    r = await client.get('/timeline', params={'date': '2024-01-10'})
    assert r.status_code == 200
    body = r.json()
    assert body['work_start'] == '2024-01-10T09:00:00'
    assert [(i['kind'], i['title']) for i in body['items']] == [('event', 'Standup'), ('task', 'Write notes')]


async def test_offset_datetimes_in_bodies_become_local(client):
    tid = (await client.post('/tasks', json={
        'title': 'Call Ana', 'scheduled_date': '2024-01-09T23:30:00Z',
    })).json()['id']
    r = await client.get(f'/tasks/{tid}')
    assert r.json()['scheduled_date'] == '2024-01-09T23:30:00'
    assert r.json()['is_overdue'] is True

    r = await client.post(f'/tasks/{tid}/reschedule', json={'scheduled_date': '2024-01-11T09:00:00+02:00'})
    assert r.status_code == 200
    assert r.json()['scheduled_date'] == '2024-01-11T07:00:00'
    assert r.json()['is_overdue'] is False


async def test_offset_datetimes_follow_configured_zone(client, settings):
    app.state.settings = dataclasses.replace(settings, timezone='Europe/Berlin')
    r = await client.post('/tasks', json={
        'title': 'Standup',
        'scheduled_time': '2024-01-10T09:00:00Z',
        'recurrence': {'frequency': 'daily', 'start_date': '2024-01-09T23:00:00Z', 'occurrence_count': 2},
    })
    assert r.status_code == 200
    tid = r.json()['id']
    body = (await client.get(f'/tasks/{tid}/occurrences', params={'start': '2024-01-10', 'end': '2024-01-31'})).json()
    assert body['occurrences'] == ['2024-01-10T00:00:00', '2024-01-11T00:00:00']
    instances = (await client.get(f'/tasks/{tid}')).json()['instances']
    assert [i['scheduled_date'] for i in instances] == ['2024-01-10T00:00:00', '2024-01-11T00:00:00']
    assert [i['scheduled_time'] for i in instances] == ['2024-01-10T10:00:00', '2024-01-11T10:00:00']


async def test_oversized_ranges_are_400(client):
    tid = (await client.post('/tasks', json={
        'title': 'Water plants', 'recurrence': {'frequency': 'daily', 'start_date': '2024-01-10T00:00:00'},
    })).json()['id']
    r = await client.post(f'/tasks/{tid}/materialize', params={'days': 999999999})
    assert r.status_code == 400
    r = await client.post(f'/tasks/{tid}/materialize', params={'days': -1})
    assert r.status_code == 400
    r = await client.get(f'/tasks/{tid}/occurrences', params={'start': '2024-01-01', 'end': '9999-12-31'})
    assert r.status_code == 400
