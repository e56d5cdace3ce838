"""Recurrence rules and their expansion into concrete occurrence dates.

The engine is pure: ``next_occurrence`` and ``occurrences`` depend only on
their arguments and never raise for odd rules. Fields that do not apply to a
rule's frequency are ignored, and a step that cannot produce a valid date
returns None, which ends an expansion.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
import logging

from . import dates
from .dates import Unit

logger = logging.getLogger(__name__)

# Upper bound on the scan for a weekday-list rule. Weeks outside the interval
# are skipped in one step, so any valid rule matches well inside it.
MAX_WEEKDAY_SCAN_DAYS = 365


class Frequency(StrEnum):
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    YEARLY = 'yearly'
    # every N days, as entered with an explicit interval ("every 3 days")
    CUSTOM = 'custom'

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    start_date: datetime
    interval: int = 1
    # 1 = Sunday ... 7 = Saturday; only read for WEEKLY rules
    days_of_week: frozenset[int] = field(default_factory=frozenset)
    # only read for MONTHLY rules
    day_of_month: int | None = None
    end_date: datetime | None = None
    occurrence_count: int | None = None

    @property
    def step(self) -> int:
        return max(1, int(self.interval or 1))

    @property
    def weekdays(self) -> frozenset[int]:
        return frozenset(self.days_of_week or ())


def _week_index(rule: RecurrenceRule, dt: datetime) -> int:
    anchor = dates.start_of_week(rule.start_date)
    return (dates.start_of_week(dt) - anchor).days // 7


def _matches_weekday_rule(rule: RecurrenceRule, dt: datetime) -> bool:
    if dates.weekday_of(dt) not in rule.weekdays:
        return False
    return _week_index(rule, dt) % rule.step == 0


def next_occurrence(rule: RecurrenceRule, after: datetime) -> datetime | None:
    """Earliest date strictly after ``after`` consistent with ``rule``.

    Returns None once ``after`` has reached the rule's end date, when a
    weekday scan finds nothing within MAX_WEEKDAY_SCAN_DAYS steps (only
    possible when no listed weekday is in 1..7), or when a
    monthly day-of-month step lands on a day the month does not have.
    """
    if rule.end_date is not None and after >= rule.end_date:
        return None

    freq = Frequency(rule.frequency)
    step = rule.step

    if freq in (Frequency.DAILY, Frequency.CUSTOM):
        return dates.add_units(after, step, Unit.DAY)

    if freq is Frequency.WEEKLY:
        if not rule.weekdays:
            return dates.add_units(after, step, Unit.WEEK)
        candidate = dates.add_units(after, 1, Unit.DAY)
        try:
            for _ in range(MAX_WEEKDAY_SCAN_DAYS):
                skip = -_week_index(rule, candidate) % step
                if skip:
                    # jump to the first day of the next week the rule runs in
                    week_start = dates.add_units(dates.start_of_week(candidate), skip, Unit.WEEK)
                    candidate = dates.with_time_of(week_start, after)
                if dates.weekday_of(candidate) in rule.weekdays:
                    return candidate
                candidate = dates.add_units(candidate, 1, Unit.DAY)
        except OverflowError:
            return None
        logger.debug('no weekday match within %d steps for %s', MAX_WEEKDAY_SCAN_DAYS, rule)
        return None

    if freq is Frequency.MONTHLY:
        if rule.day_of_month is not None:
            # no clamping: day 31 in a 30-day month yields no occurrence
            return dates.date_from_components(
                after.year, after.month + step, rule.day_of_month, after.hour, after.minute,
            )
        return dates.add_units(after, step, Unit.MONTH)

    return dates.add_units(after, step, Unit.YEAR)


def first_occurrence(rule: RecurrenceRule) -> datetime | None:
    """First date at or after ``rule.start_date`` that the rule produces."""
    start = rule.start_date
    freq = Frequency(rule.frequency)
    if freq is Frequency.WEEKLY and rule.weekdays:
        if _matches_weekday_rule(rule, start):
            return start
        return next_occurrence(rule, start)
    if freq is Frequency.MONTHLY and rule.day_of_month is not None:
        if start.day == rule.day_of_month:
            return start
        if start.day < rule.day_of_month:
            same_month = dates.date_from_components(
                start.year, start.month, rule.day_of_month, start.hour, start.minute,
            )
            if same_month is not None:
                return same_month
        return next_occurrence(rule, start)
    return start


def _is_before_end(rule: RecurrenceRule, dt: datetime) -> bool:
    return rule.end_date is None or dt < rule.end_date


def occurrences(rule: RecurrenceRule, range_start: datetime, range_end: datetime) -> list[datetime]:
    """All occurrences ``d`` of ``rule`` with ``range_start <= d <= range_end``.

    Ascending and duplicate-free. ``occurrence_count`` limits the total
    number of occurrences counted from the rule's start date, not from
    ``range_start``.
    """
    out: list[datetime] = []
    limit = rule.occurrence_count
    if limit is not None and limit <= 0:
        return out

    current = first_occurrence(rule)
    produced = 0
    while current is not None and current <= range_end and _is_before_end(rule, current):
        produced += 1
        if current >= range_start:
            out.append(current)
        if limit is not None and produced >= limit:
            break
        current = next_occurrence(rule, current)
    return out


def rule_to_rrule(rule: RecurrenceRule) -> str:
    """Export a rule to an RFC5545 RRULE value (no leading 'RRULE:').

    CUSTOM intervals export as DAILY. Fields the engine ignores for the rule's
    frequency are left out.
    """
    freq = Frequency(rule.frequency)
    parts: list[str] = []
    parts.append('FREQ=' + ('DAILY' if freq is Frequency.CUSTOM else freq.name))
    if rule.step != 1:
        parts.append(f'INTERVAL={rule.step}')
    if freq is Frequency.MONTHLY and rule.day_of_month is not None:
        parts.append(f'BYMONTHDAY={int(rule.day_of_month)}')
    if freq is Frequency.WEEKLY and rule.weekdays:
        codes = [dates.WEEKDAY_CODES[d] for d in sorted(rule.weekdays) if d in dates.WEEKDAY_CODES]
        if codes:
            parts.append('BYDAY=' + ','.join(codes))
    if rule.occurrence_count is not None:
        parts.append(f'COUNT={int(rule.occurrence_count)}')
    if rule.end_date is not None:
        # UNTIL is inclusive in RFC5545; the rule's end date is exclusive
        until = rule.end_date - timedelta(seconds=1)
        parts.append('UNTIL=' + until.strftime('%Y%m%dT%H%M%S'))
    return ';'.join(parts)
