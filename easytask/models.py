from datetime import datetime
from enum import IntEnum, StrEnum
import json
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from .recurrence import Frequency, RecurrenceRule
from .utils import now_local


class TaskPriority(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    URGENT = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()


class TaskColor(StrEnum):
    BLUE = 'blue'
    PURPLE = 'purple'
    PINK = 'pink'
    RED = 'red'
    ORANGE = 'orange'
    YELLOW = 'yellow'
    GREEN = 'green'
    TEAL = 'teal'
    GRAY = 'gray'


class Task(SQLModel, table=True):
    """A task, a recurring template, or an instance of a template.

    Templates have is_recurring set and own exactly one RecurrencePattern.
    Instances point at their template through parent_id; the template keeps
    no list of its instances, they are found by querying parent_id.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    notes: str = Field(default='')
    # datetimes are naive local wall-clock values, stored without a zone
    created_at: datetime | None = Field(default_factory=now_local, sa_type=DateTime)
    scheduled_date: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)
    scheduled_time: Optional[datetime] = Field(default=None, sa_type=DateTime)
    duration_minutes: int = Field(default=30)
    # Task without a specific date/time
    is_floating: bool = Field(default=True, index=True)
    is_completed: bool = Field(default=False, index=True)
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    priority: int = Field(default=int(TaskPriority.MEDIUM))
    color: str = Field(default=TaskColor.BLUE.value)
    is_recurring: bool = Field(default=False, index=True)
    # Non-owning back-reference from an instance to its template
    parent_id: Optional[int] = Field(default=None, foreign_key='task.id', index=True)

    def is_overdue(self, now: datetime) -> bool:
        if self.is_completed or self.scheduled_date is None:
            return False
        return self.scheduled_date < now


class RecurrencePattern(SQLModel, table=True):
    """Persisted recurrence rule, owned by a single template task.

    days_of_week is a JSON-encoded list of weekday numbers (1 = Sunday).
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key='task.id', index=True, unique=True)
    frequency: str
    interval: int = Field(default=1)
    days_of_week: str = Field(default='[]')
    day_of_month: Optional[int] = None
    start_date: datetime = Field(sa_type=DateTime)
    end_date: Optional[datetime] = Field(default=None, sa_type=DateTime)
    occurrence_count: Optional[int] = None

    def to_rule(self) -> RecurrenceRule:
        try:
            days = frozenset(int(d) for d in json.loads(self.days_of_week or '[]'))
        except (TypeError, ValueError):
            days = frozenset()
        return RecurrenceRule(
            frequency=Frequency(self.frequency),
            start_date=self.start_date,
            interval=self.interval,
            days_of_week=days,
            day_of_month=self.day_of_month,
            end_date=self.end_date,
            occurrence_count=self.occurrence_count,
        )

    @classmethod
    def from_rule(cls, task_id: int, rule: RecurrenceRule) -> 'RecurrencePattern':
        return cls(
            task_id=task_id,
            frequency=Frequency(rule.frequency).value,
            interval=rule.step,
            days_of_week=json.dumps(sorted(rule.days_of_week or ())),
            day_of_month=rule.day_of_month,
            start_date=rule.start_date,
            end_date=rule.end_date,
            occurrence_count=rule.occurrence_count,
        )
