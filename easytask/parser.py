"""Quick-entry text parser: "Gym Mon Wed Fri 6pm" -> ParsedDraft.

Parsing runs a fixed sequence of passes. Each pass is a plain function
``(text, draft, now) -> (remaining_text, draft)`` that looks for its kind of
fragment, records what it found on a new draft and cuts the matched words out
of the text, so a later pass never sees words an earlier pass claimed:

1. recurrence  ("every Mon Wed Fri", "on the 1st of every month", "every 2 weeks", "daily")
2. time        ("in 2 hours", "6pm", "at 9", "10:30", "morning")
3. date        ("day after tomorrow", "tomorrow", "today", "next friday")
4. title cleanup (leftover filler words, whitespace, capitalisation)

Within a pass the alternatives are tried in a fixed priority order and only
the first match is used. ``parse`` never raises: text with nothing
recognisable becomes a floating one-off draft titled with the cleaned input.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
import logging
import re
from typing import Callable

from . import dates
from .recurrence import Frequency, RecurrenceRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedDraft:
    title: str
    scheduled_date: datetime | None = None
    scheduled_time: datetime | None = None
    is_recurring: bool = False
    frequency: Frequency | None = None
    interval: int = 1
    # 1 = Sunday ... 7 = Saturday, sorted
    days_of_week: tuple[int, ...] = ()
    day_of_month: int | None = None

    @property
    def is_floating(self) -> bool:
        return self.scheduled_date is None and self.scheduled_time is None

    def to_rule(self, start_date: datetime) -> RecurrenceRule | None:
        if not self.is_recurring or self.frequency is None:
            return None
        return RecurrenceRule(
            frequency=self.frequency,
            start_date=start_date,
            interval=self.interval,
            days_of_week=frozenset(self.days_of_week),
            day_of_month=self.day_of_month,
        )


Pass = Callable[[str, ParsedDraft, datetime], tuple[str, ParsedDraft]]

_FLAGS = re.IGNORECASE

# --- weekday names ---

_WEEKDAY = (
    r'(?:sun(?:day)?|mon(?:day)?|tue(?:s(?:day)?)?|wed(?:nesday)?'
    r'|thu(?:r(?:s(?:day)?)?)?|fri(?:day)?|sat(?:urday)?)'
)
_WEEKDAY_SEP = r'(?:\s*[,/&]\s*|\s+)(?:and\s+)?'
_WEEKDAY_RE = re.compile(r'\b' + _WEEKDAY + r'\b', _FLAGS)

WEEKDAY_NUMBERS = {
    'sun': dates.SUNDAY, 'mon': dates.MONDAY, 'tue': dates.TUESDAY, 'wed': dates.WEDNESDAY,
    'thu': dates.THURSDAY, 'fri': dates.FRIDAY, 'sat': dates.SATURDAY,
}

WORKDAYS = (dates.MONDAY, dates.TUESDAY, dates.WEDNESDAY, dates.THURSDAY, dates.FRIDAY)
WEEKEND = (dates.SUNDAY, dates.SATURDAY)


def _weekday_number(name: str) -> int:
    return WEEKDAY_NUMBERS[name[:3].lower()]


def _weekday_numbers(fragment: str) -> tuple[int, ...]:
    return tuple(sorted({_weekday_number(m.group(0)) for m in _WEEKDAY_RE.finditer(fragment)}))


# --- recurrence patterns, in priority order ---

# "every Mon Wed Fri", "every 2 weeks on Tue/Thu", "every other week on monday"
_EVERY_WEEKDAYS_RE = re.compile(
    r'\bevery\s+(?:(?P<n>\d+)\s*weeks?\s+(?:on\s+)?|(?P<other>other)\s+weeks?\s+(?:on\s+)?)?'
    r'(?P<days>' + _WEEKDAY + r'(?:' + _WEEKDAY_SEP + _WEEKDAY + r')*)\b',
    _FLAGS,
)
# bare run of two or more weekday names: "Gym Mon Wed Fri"
_WEEKDAY_LIST_RE = re.compile(
    r'\b(?P<days>' + _WEEKDAY + r'(?:' + _WEEKDAY_SEP + _WEEKDAY + r')+)\b',
    _FLAGS,
)
_ORDINAL = r'(?P<day>\d{1,2})(?:st|nd|rd|th)?'
_DAY_OF_MONTH_RES = (
    # "on the 1st of every month", "1st every month"
    re.compile(r'\b(?:on\s+)?(?:the\s+)?' + _ORDINAL + r'\s+(?:day\s+)?(?:of\s+)?every\s+month\b', _FLAGS),
    # "every month on the 15th", "monthly on the 3rd"
    re.compile(r'\b(?:every\s+month|monthly)\s+on\s+(?:the\s+)?' + _ORDINAL + r'\b', _FLAGS),
    # "every month the 15th", "every month 15th"
    re.compile(r'\bevery\s+month\s+(?:the\s+' + _ORDINAL + r'|(?P<day2>\d{1,2})(?:st|nd|rd|th))\b', _FLAGS),
)
_UNIT_FREQUENCY = {
    'day': Frequency.CUSTOM,
    'week': Frequency.WEEKLY,
    'month': Frequency.MONTHLY,
    'year': Frequency.YEARLY,
}
_INTERVAL_RE = re.compile(r'\bevery\s+(?P<n>\d+)\s*(?P<unit>day|week|month|year)s?\b', _FLAGS)
_EVERY_OTHER_RE = re.compile(r'\bevery\s+other\s+(?P<unit>day|week|month|year)\b', _FLAGS)

# (pattern, frequency, days_of_week)
_KEYWORD_RULES = (
    (re.compile(r'\b(?:every\s*day|daily)\b', _FLAGS), Frequency.DAILY, ()),
    (re.compile(r'\b(?:every\s*(?:week\s*day|work\s*day)s?|(?:on\s+)?weekdays)\b', _FLAGS), Frequency.WEEKLY, WORKDAYS),
    (re.compile(r'\b(?:every\s*weekends?|(?:on\s+)?weekends)\b', _FLAGS), Frequency.WEEKLY, WEEKEND),
    (re.compile(r'\b(?:every\s*week|weekly)\b', _FLAGS), Frequency.WEEKLY, ()),
    (re.compile(r'\b(?:every\s*month|monthly)\b', _FLAGS), Frequency.MONTHLY, ()),
    (re.compile(r'\b(?:every\s*year|yearly|annually)\b', _FLAGS), Frequency.YEARLY, ()),
)

# --- time patterns ---

_RELATIVE_TIME_RE = re.compile(
    r'\b(?:in|after)\s+(?P<n>\d+|an?)\s*(?P<unit>hours?|hrs?|minutes?|mins?)\b',
    _FLAGS,
)
_CLOCK_TIME_RES = (
    # 10:30, 10:30pm, at 7:05 am
    re.compile(r'\b(?:at\s+)?(?P<h>\d{1,2}):(?P<m>\d{2})\s*(?P<ampm>am|pm)?\b', _FLAGS),
    # 6pm, 11 am
    re.compile(r'\b(?:at\s+)?(?P<h>\d{1,2})\s*(?P<ampm>am|pm)\b', _FLAGS),
    # at 9
    re.compile(r'\bat\s+(?P<h>\d{1,2})\b', _FLAGS),
)
# (pattern, hour, minute), checked in this order
_NAMED_TIMES = (
    (re.compile(r'\b(?:in\s+the\s+)?morning\b', _FLAGS), 9, 0),
    (re.compile(r'\b(?:at\s+)?(?:noon|midday)\b', _FLAGS), 12, 0),
    (re.compile(r'\b(?:in\s+the\s+)?afternoon\b', _FLAGS), 14, 0),
    (re.compile(r'\b(?:in\s+the\s+)?evening\b', _FLAGS), 18, 0),
    (re.compile(r'\b(?:at\s+)?(?:to)?night\b', _FLAGS), 20, 0),
)

# --- date patterns ---

# longest phrase first so "day after tomorrow" is not read as "tomorrow"
_RELATIVE_DAYS = (
    (re.compile(r'\b(?:the\s+)?day\s+after\s+tomorrow\b', _FLAGS), 2),
    (re.compile(r'\btomorrow\b', _FLAGS), 1),
    (re.compile(r'\btoday\b', _FLAGS), 0),
)
_WEEKDAY_DATE_RE = re.compile(r'\b(?:(?:next|this|on)\s+)*(?P<day>' + _WEEKDAY + r')\b', _FLAGS)

# --- title cleanup ---

FILLER_WORDS = ('at', 'on', 'for', 'the', 'a', 'an', 'in')
_FILLER_RE = re.compile(r'\b(?:' + '|'.join(FILLER_WORDS) + r')\b', _FLAGS)


def _cut(text: str, m: re.Match) -> str:
    """Remove a match from text, leaving a space so neighbours stay apart."""
    return text[:m.start()] + ' ' + text[m.end():]


def _recurring(draft: ParsedDraft, frequency: Frequency, **changes) -> ParsedDraft:
    return replace(draft, is_recurring=True, frequency=frequency, **changes)


def _match_weekday_list(text: str) -> tuple[re.Match, int] | None:
    m = _EVERY_WEEKDAYS_RE.search(text)
    if m:
        if m.group('n'):
            interval = max(1, int(m.group('n')))
        elif m.group('other'):
            interval = 2
        else:
            interval = 1
        return m, interval
    m = _WEEKDAY_LIST_RE.search(text)
    if m:
        return m, 1
    return None


def _match_day_of_month(text: str) -> tuple[re.Match, int] | None:
    for pattern in _DAY_OF_MONTH_RES:
        for m in pattern.finditer(text):
            raw = m.groupdict().get('day') or m.groupdict().get('day2')
            day = int(raw)
            if 1 <= day <= 31:
                return m, day
    return None


def recurrence_pass(text: str, draft: ParsedDraft, now: datetime) -> tuple[str, ParsedDraft]:
    """Extract at most one recurrence rule."""
    found = _match_weekday_list(text)
    if found:
        m, interval = found
        days = _weekday_numbers(m.group('days'))
        return _cut(text, m), _recurring(draft, Frequency.WEEKLY, interval=interval, days_of_week=days)

    found = _match_day_of_month(text)
    if found:
        m, day = found
        return _cut(text, m), _recurring(draft, Frequency.MONTHLY, day_of_month=day)

    m = _INTERVAL_RE.search(text)
    if m:
        freq = _UNIT_FREQUENCY[m.group('unit').lower()]
        return _cut(text, m), _recurring(draft, freq, interval=max(1, int(m.group('n'))))
    m = _EVERY_OTHER_RE.search(text)
    if m:
        freq = _UNIT_FREQUENCY[m.group('unit').lower()]
        return _cut(text, m), _recurring(draft, freq, interval=2)

    for pattern, freq, days in _KEYWORD_RULES:
        m = pattern.search(text)
        if m:
            return _cut(text, m), _recurring(draft, freq, days_of_week=tuple(days))
    return text, draft


def _clock_time(m: re.Match) -> tuple[int, int] | None:
    hour = int(m.group('h'))
    minute = int(m.groupdict().get('m') or 0)
    ampm = (m.groupdict().get('ampm') or '').lower()
    if minute > 59:
        return None
    if ampm:
        if not 1 <= hour <= 12:
            return None
        if ampm == 'pm' and hour < 12:
            hour += 12
        elif ampm == 'am' and hour == 12:
            hour = 0
    elif hour > 23:
        return None
    return hour, minute


def _at_time(draft: ParsedDraft, now: datetime, hour: int, minute: int) -> ParsedDraft:
    base = draft.scheduled_date or now
    when = dates.with_time(base, hour, minute)
    return replace(draft, scheduled_time=when, scheduled_date=draft.scheduled_date or when)


def time_pass(text: str, draft: ParsedDraft, now: datetime) -> tuple[str, ParsedDraft]:
    """Extract at most one time of day."""
    m = _RELATIVE_TIME_RE.search(text)
    if m:
        raw = m.group('n').lower()
        amount = 1 if raw in ('a', 'an') else int(raw)
        unit = dates.Unit.HOUR if m.group('unit').lower().startswith('h') else dates.Unit.MINUTE
        when = dates.add_units(now, amount, unit).replace(second=0, microsecond=0)
        return _cut(text, m), replace(draft, scheduled_time=when, scheduled_date=when)

    for pattern in _CLOCK_TIME_RES:
        for m in pattern.finditer(text):
            hm = _clock_time(m)
            if hm is not None:
                return _cut(text, m), _at_time(draft, now, *hm)

    for pattern, hour, minute in _NAMED_TIMES:
        m = pattern.search(text)
        if m:
            return _cut(text, m), _at_time(draft, now, hour, minute)
    return text, draft


def next_weekday(today: datetime, weekday: int) -> datetime:
    """Start of the next ``weekday`` strictly after ``today`` (never today itself)."""
    ahead = (weekday - dates.weekday_of(today)) % 7 or 7
    return dates.start_of_day(today) + timedelta(days=ahead)


def _on_day(draft: ParsedDraft, day: datetime) -> ParsedDraft:
    if draft.scheduled_time is not None:
        when = dates.with_time_of(day, draft.scheduled_time)
        return replace(draft, scheduled_date=when, scheduled_time=when)
    return replace(draft, scheduled_date=dates.start_of_day(day))


def date_pass(text: str, draft: ParsedDraft, now: datetime) -> tuple[str, ParsedDraft]:
    """Extract at most one day, keeping any time already found."""
    for pattern, offset in _RELATIVE_DAYS:
        m = pattern.search(text)
        if m:
            day = dates.start_of_day(now) + timedelta(days=offset)
            return _cut(text, m), _on_day(draft, day)

    m = _WEEKDAY_DATE_RE.search(text)
    if m:
        day = next_weekday(now, _weekday_number(m.group('day')))
        return _cut(text, m), _on_day(draft, day)
    return text, draft


def _tidy(text: str) -> str:
    cleaned = ' '.join(text.split()).strip(' ,;:-')
    if cleaned:
        cleaned = cleaned[0].upper() + cleaned[1:]
    return cleaned


def clean_title(text: str) -> str:
    """Drop leftover filler words, collapse whitespace and capitalise."""
    return _tidy(_FILLER_RE.sub(' ', text))


PASSES: tuple[Pass, ...] = (recurrence_pass, time_pass, date_pass)


def parse(text: str | None, now: datetime) -> ParsedDraft:
    """Parse quick-entry text into a draft task. Never raises.

    ``now`` is the caller's local wall clock; relative phrases resolve against it.
    """
    original = (text or '').strip()
    remaining = original
    draft = ParsedDraft(title=original)
    for step in PASSES:
        try:
            remaining, draft = step(remaining, draft, now)
        except Exception:
            # keep what earlier passes produced; a broken pass must not lose the task
            logger.exception('parse pass %s failed for %r', step.__name__, original)
    title = clean_title(remaining) or _tidy(original)
    return replace(draft, title=title)
