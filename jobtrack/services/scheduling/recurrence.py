"""
Recurrence arithmetic for scheduled jobs.

A rule names weekdays (0 = Sunday) and a wall-clock time, which maps onto a
five-field cron expression. Matches are found with croniter on the local wall
clock of the scheduler's timezone and returned as UTC datetimes, so a
"Sunday 18:00" job stays at 18:00 across DST changes.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Optional

import pytz
from croniter import croniter

from jobtrack.core.clock import ensure_utc
from jobtrack.models.scheduling import RecurrenceInterval

from .models import RecurrenceRule

# A DST fold can put a couple of wall-clock matches just outside the bound
_MAX_CANDIDATES = 16
_MAX_CATCH_UP_STEPS = 10_000

WEEKLY_MIN_GAP = timedelta(hours=24)


def weekday_number(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def add_months(value: datetime, months: int = 1) -> datetime:
    """Calendar month arithmetic, clamping the day to the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def cron_expression(rule: RecurrenceRule) -> str:
    """``minute hour * * days`` with cron's 0 = Sunday numbering."""
    days = ",".join(str(day) for day in sorted(rule.days_of_week))
    return f"{rule.minute} {rule.hour} * * {days}"


def _resolve_tz(tz: Optional[pytz.BaseTzInfo]) -> pytz.BaseTzInfo:
    return tz or pytz.UTC


def _wall_clock(value: datetime, tz: pytz.BaseTzInfo) -> datetime:
    return ensure_utc(value).astimezone(tz).replace(tzinfo=None)


def _to_utc(wall_clock: datetime, tz: pytz.BaseTzInfo) -> datetime:
    local = tz.normalize(tz.localize(wall_clock))
    return local.astimezone(pytz.UTC)


def first_occurrence(
    rule: RecurrenceRule,
    start: datetime,
    tz: Optional[pytz.BaseTzInfo] = None,
) -> datetime:
    """Earliest occurrence at or after ``start``."""
    tz = _resolve_tz(tz)
    start = ensure_utc(start)
    itr = croniter(cron_expression(rule), _wall_clock(start, tz) - timedelta(minutes=1))
    for _ in range(_MAX_CANDIDATES):
        candidate = _to_utc(itr.get_next(datetime), tz)
        if candidate >= start:
            return candidate
    raise ValueError(f"No occurrence found for rule {rule.describe()}")


def previous_occurrence(
    rule: RecurrenceRule,
    now: datetime,
    tz: Optional[pytz.BaseTzInfo] = None,
) -> datetime:
    """Latest match of the rule at or before ``now``, ignoring any start date."""
    tz = _resolve_tz(tz)
    now = ensure_utc(now)
    itr = croniter(cron_expression(rule), _wall_clock(now, tz) + timedelta(minutes=1))
    for _ in range(_MAX_CANDIDATES):
        candidate = _to_utc(itr.get_prev(datetime), tz)
        if candidate <= now:
            return candidate
    raise ValueError(f"No occurrence found for rule {rule.describe()}")


def next_occurrence(
    rule: RecurrenceRule,
    after: datetime,
    previous: Optional[datetime] = None,
    tz: Optional[pytz.BaseTzInfo] = None,
) -> datetime:
    """
    Earliest occurrence strictly after ``after``.

    ``previous`` is the occurrence that was just dispatched. Weekly rules
    also keep at least 24 hours between the two, so a late dispatch never
    re-fires the same day. Monthly rules land on the first matching weekday
    on or after ``previous`` plus one calendar month.
    """
    tz = _resolve_tz(tz)
    after = ensure_utc(after)
    floor = after + timedelta(microseconds=1)

    if previous is not None:
        previous = ensure_utc(previous)
        if rule.interval == RecurrenceInterval.WEEKLY:
            floor = max(floor, previous + WEEKLY_MIN_GAP)
        elif rule.interval == RecurrenceInterval.MONTHLY:
            month_later = _to_utc(add_months(_wall_clock(previous, tz)), tz)
            floor = max(floor, month_later)

    return first_occurrence(rule, floor, tz)


def latest_occurrence(
    rule: RecurrenceRule,
    start: datetime,
    now: datetime,
    tz: Optional[pytz.BaseTzInfo] = None,
) -> Optional[datetime]:
    """
    Most recent occurrence in ``[start, now]``.

    Daily and weekly rules fire on every match, so this is the last cron
    match before ``now``. Monthly rules step forward from ``start`` one month
    at a time, the same way the scheduler would have.
    """
    tz = _resolve_tz(tz)
    now = ensure_utc(now)
    occurrence = first_occurrence(rule, start, tz)
    if occurrence > now:
        return None

    if rule.interval != RecurrenceInterval.MONTHLY:
        return max(occurrence, previous_occurrence(rule, now, tz))

    for _ in range(_MAX_CATCH_UP_STEPS):
        following = next_occurrence(rule, occurrence, previous=occurrence, tz=tz)
        if following > now:
            return occurrence
        occurrence = following
    return occurrence
