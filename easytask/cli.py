"""Command-line previews of the parser and the recurrence engine.

Usage:
  easytask parse "Gym Mon Wed Fri 6pm"
  easytask occurrences --frequency weekly --days 2,4,6 --start 2024-01-01 --end 2024-01-31
  easytask serve --port 8000
"""
import argparse
import json
import sys

import uvicorn
from dateutil import parser as dateutil_parser

from . import dates
from .parser import parse
from .recurrence import Frequency, RecurrenceRule, occurrences, rule_to_rrule
from .utils import now_local


def _when(p: argparse.ArgumentParser, value: str | None, name: str):
    if value is None:
        return None
    try:
        return dateutil_parser.parse(value)
    except (ValueError, OverflowError):
        p.error(f'invalid {name}: {value}')


def _days(p: argparse.ArgumentParser, value: str | None) -> frozenset[int]:
    if not value:
        return frozenset()
    try:
        days = frozenset(int(d) for d in value.split(',') if d.strip())
    except ValueError:
        p.error(f'invalid --days: {value} (expected e.g. 2,4,6 with 1 = Sunday)')
    if any(d < 1 or d > 7 for d in days):
        p.error('--days values must be between 1 (Sunday) and 7 (Saturday)')
    return days


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='easytask', description='Preview task parsing and recurrence expansion')
    sub = p.add_subparsers(dest='command', required=True)

    pp = sub.add_parser('parse', help='parse quick-entry text into a draft task')
    pp.add_argument('text', nargs='+', help='text to parse')
    pp.add_argument('--now', default=None, help='reference time (default: current local time)')

    po = sub.add_parser('occurrences', help='expand a recurrence rule over a date range')
    po.add_argument('--frequency', required=True, choices=[f.value for f in Frequency])
    po.add_argument('--start', required=True, help='rule start date')
    po.add_argument('--end', required=True, help='last date of the range (inclusive)')
    po.add_argument('--from', dest='range_start', default=None, help='first date of the range (default: --start)')
    po.add_argument('--interval', type=int, default=1)
    po.add_argument('--days', default=None, help='comma separated weekday numbers, 1 = Sunday')
    po.add_argument('--day-of-month', type=int, default=None)
    po.add_argument('--until', default=None, help='exclusive end date of the rule')
    po.add_argument('--count', type=int, default=None, help='total number of occurrences')

    ps = sub.add_parser('serve', help='run the JSON API with uvicorn')
    ps.add_argument('--host', default='127.0.0.1')
    ps.add_argument('--port', type=int, default=8000)
    ps.add_argument('--log-level', default='info')
    return p


def _cmd_parse(p: argparse.ArgumentParser, args) -> int:
    now = _when(p, args.now, '--now') or now_local()
    draft = parse(' '.join(args.text), now=now)
    out = {
        'title': draft.title,
        'scheduled_date': draft.scheduled_date,
        'scheduled_time': draft.scheduled_time,
        'is_floating': draft.is_floating,
        'is_recurring': draft.is_recurring,
        'frequency': draft.frequency.value if draft.frequency else None,
        'interval': draft.interval,
        'days_of_week': list(draft.days_of_week),
        'day_of_month': draft.day_of_month,
    }
    rule = draft.to_rule(dates.start_of_day(draft.scheduled_date or now))
    if rule is not None:
        out['rrule'] = rule_to_rrule(rule)
    print(json.dumps(out, indent=2, default=lambda o: o.isoformat()))
    return 0


def _cmd_occurrences(p: argparse.ArgumentParser, args) -> int:
    start = _when(p, args.start, '--start')
    end = _when(p, args.end, '--end')
    range_start = _when(p, args.range_start, '--from') or start
    rule = RecurrenceRule(
        frequency=Frequency(args.frequency),
        start_date=start,
        interval=args.interval,
        days_of_week=_days(p, args.days),
        day_of_month=args.day_of_month,
        end_date=_when(p, args.until, '--until'),
        occurrence_count=args.count,
    )
    print(f'RRULE:{rule_to_rrule(rule)}')
    for occ in occurrences(rule, range_start, end):
        print(occ.isoformat())
    return 0


def _cmd_serve(args) -> int:
    uvicorn.run('easytask.main:app', host=args.host, port=args.port, log_level=args.log_level)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    if args.command == 'parse':
        return _cmd_parse(p, args)
    if args.command == 'serve':
        return _cmd_serve(args)
    return _cmd_occurrences(p, args)


if __name__ == '__main__':
    sys.exit(main())
