import sys
import pathlib
import warnings
import logging as _logging
from datetime import datetime

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

try:
    from sqlalchemy.exc import SAWarning
    warnings.filterwarnings('ignore', category=SAWarning)
except ImportError:
    pass

# Reduce SQLAlchemy logger verbosity during tests
for _name in ('sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool'):
    _logging.getLogger(_name).setLevel(_logging.ERROR)

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from easytask.config import PlannerSettings
from easytask.db import init_db, make_engine, make_session_factory
from easytask.main import app
from easytask.store import TaskStore
from easytask.timeline import no_events

# Wednesday; every test sees the same "now"
FIXED_NOW = datetime(2024, 1, 10, 8, 30)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def settings():
    return PlannerSettings(
        timezone='UTC',
        work_start_hour=9,
        work_end_hour=17,
        default_task_duration_minutes=30,
        materialize_window_days=30,
        rollover_missed_tasks=True,
        show_completed_tasks=True,
        week_starts_on_monday=True,
    )


@pytest_asyncio.fixture
async def store(tmp_path):
    """A TaskStore over a fresh SQLite file."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'easytask_test.db'}")
    await init_db(engine)
    try:
        yield TaskStore(make_session_factory(engine))
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def client(store, settings, now):
    saved = (app.state.store, app.state.settings, app.state.clock, app.state.event_source)
    app.state.store = store
    app.state.settings = settings
    app.state.clock = lambda: now
    app.state.event_source = no_events
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.state.store, app.state.settings, app.state.clock, app.state.event_source = saved
