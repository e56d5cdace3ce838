"""Simple runtime configuration for the EasyTask planner.

Settings are read from environment variables at import time so deployments can
tune them without code changes. Components never read these module globals
directly: build a ``PlannerSettings`` with ``PlannerSettings.from_env()`` and
pass it to whatever needs it, so tests can supply fixed values.
"""
from dataclasses import dataclass
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


# SQLite database used by the task store. Override with a full SQLAlchemy
# async URL, e.g. DATABASE_URL=sqlite+aiosqlite:///./planner.db
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite+aiosqlite:///./easytask.db')

# IANA timezone whose wall clock is used for "now". All planner datetimes are
# naive local times in this zone.
DEFAULT_TIMEZONE = os.getenv('DEFAULT_TIMEZONE', 'UTC')

# Number of days of instances created for a recurring template at creation
# time and when the window is rolled forward at start-up.
MATERIALIZE_WINDOW_DAYS = _int_env('MATERIALIZE_WINDOW_DAYS', 30)

# Work hours (24h clock), used by the timeline to bound the working day.
WORK_START_HOUR = _int_env('WORK_START_HOUR', 9)
WORK_END_HOUR = _int_env('WORK_END_HOUR', 17)

DEFAULT_TASK_DURATION_MINUTES = _int_env('DEFAULT_TASK_DURATION_MINUTES', 30)

# When true, incomplete tasks from previous days are moved onto today when
# the service starts.
ROLLOVER_MISSED_TASKS = _trueish(os.getenv('ROLLOVER_MISSED_TASKS', '1'))

# When false, completed tasks are left out of the day timeline.
SHOW_COMPLETED_TASKS = _trueish(os.getenv('SHOW_COMPLETED_TASKS', '1'))

WEEK_STARTS_ON_MONDAY = _trueish(os.getenv('WEEK_STARTS_ON_MONDAY', '1'))


@dataclass(frozen=True)
class PlannerSettings:
    """User preferences consumed by the planner, timeline and API."""
    timezone: str = 'UTC'
    work_start_hour: int = 9
    work_end_hour: int = 17
    default_task_duration_minutes: int = 30
    materialize_window_days: int = 30
    rollover_missed_tasks: bool = True
    show_completed_tasks: bool = True
    week_starts_on_monday: bool = True

    @property
    def first_weekday(self) -> int:
        # 1 = Sunday, 2 = Monday
        return 2 if self.week_starts_on_monday else 1

    @classmethod
    def from_env(cls) -> 'PlannerSettings':
        return cls(
            timezone=DEFAULT_TIMEZONE,
            work_start_hour=WORK_START_HOUR,
            work_end_hour=WORK_END_HOUR,
            default_task_duration_minutes=DEFAULT_TASK_DURATION_MINUTES,
            materialize_window_days=MATERIALIZE_WINDOW_DAYS,
            rollover_missed_tasks=ROLLOVER_MISSED_TASKS,
            show_completed_tasks=SHOW_COMPLETED_TASKS,
            week_starts_on_monday=WEEK_STARTS_ON_MONDAY,
        )


# Optional local overrides: define variables in easytask/local_config.py to
# override the defaults above without changing versioned config.
try:
    from .local_config import *  # type: ignore  # noqa: F401,F403
except ImportError:
    pass
