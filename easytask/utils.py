from datetime import datetime, timezone
import logging
from typing import Callable
import zoneinfo

from . import config

logger = logging.getLogger(__name__)

# Zero-argument callable returning the current naive local datetime. Every
# time-dependent operation accepts one so tests can pin "now".
Clock = Callable[[], datetime]


def now_utc() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(timezone.utc)


def now_local(tz_name: str | None = None) -> datetime:
    """Return the current wall-clock time in ``tz_name`` as a naive datetime.

    Falls back to UTC when the timezone name is unknown.
    """
    name = tz_name or config.DEFAULT_TIMEZONE
    try:
        tz = zoneinfo.ZoneInfo(name)
    except zoneinfo.ZoneInfoNotFoundError:
        logger.warning('unknown timezone %s; using UTC', name)
        tz = timezone.utc
    return now_utc().astimezone(tz).replace(tzinfo=None)


def format_duration(minutes: int | None) -> str:
    """Format a duration in minutes as e.g. '45m', '2h' or '1h 30m'."""
    total = int(minutes or 0)
    if total >= 60:
        hours, mins = divmod(total, 60)
        if mins == 0:
            return f'{hours}h'
        return f'{hours}h {mins}m'
    return f'{total}m'
