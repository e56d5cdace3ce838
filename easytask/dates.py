"""Calendar arithmetic used by the recurrence engine and the text parser.

All values are naive local datetimes. Weekdays are numbered 1 = Sunday through
7 = Saturday. Month and year arithmetic is delegated to
``dateutil.relativedelta``, which clamps to the last valid day of the target
month (Jan 31 + 1 month -> Feb 28/29).
"""
from datetime import datetime, timedelta
from enum import StrEnum

from dateutil.relativedelta import relativedelta


class Unit(StrEnum):
    MINUTE = 'minute'
    HOUR = 'hour'
    DAY = 'day'
    WEEK = 'week'
    MONTH = 'month'
    YEAR = 'year'


SUNDAY, MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY = range(1, 8)

WEEKDAY_CODES = {
    SUNDAY: 'SU', MONDAY: 'MO', TUESDAY: 'TU', WEDNESDAY: 'WE',
    THURSDAY: 'TH', FRIDAY: 'FR', SATURDAY: 'SA',
}


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def next_day(dt: datetime) -> datetime:
    """Midnight at the start of the day after ``dt``."""
    return start_of_day(dt) + timedelta(days=1)


def is_same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()


def add_units(dt: datetime, amount: int, unit: Unit | str) -> datetime:
    unit = Unit(unit)
    if unit is Unit.MINUTE:
        return dt + timedelta(minutes=amount)
    if unit is Unit.HOUR:
        return dt + timedelta(hours=amount)
    if unit is Unit.DAY:
        return dt + timedelta(days=amount)
    if unit is Unit.WEEK:
        return dt + timedelta(weeks=amount)
    if unit is Unit.MONTH:
        return dt + relativedelta(months=amount)
    return dt + relativedelta(years=amount)


def weekday_of(dt: datetime) -> int:
    """Weekday number of ``dt``: 1 = Sunday ... 7 = Saturday."""
    return dt.isoweekday() % 7 + 1


def start_of_week(dt: datetime, first_weekday: int = SUNDAY) -> datetime:
    offset = (weekday_of(dt) - first_weekday) % 7
    return start_of_day(dt) - timedelta(days=offset)


def date_from_components(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime | None:
    """Build a datetime, or None when the components name a day that does not exist.

    ``month`` may run past 12 (or below 1); it is normalised into the year so
    callers can step months without doing the carry themselves.
    """
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None


def with_time(day: datetime, hour: int, minute: int) -> datetime:
    """``day``'s calendar date at ``hour:minute``."""
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


def with_time_of(day: datetime, time_source: datetime) -> datetime:
    return with_time(day, time_source.hour, time_source.minute)
