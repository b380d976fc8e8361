"""
Job specs for the notification and maintenance jobs the app schedules.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytz

from jobtrack.core.clock import ensure_utc
from jobtrack.models.scheduling import JobType, RecurrenceInterval

from .models import JobSpec, RecurrenceRule

EVERY_DAY = frozenset(range(7))
SUNDAY = 0
MONDAY = 1

WEEKLY_DIGEST_RULE = RecurrenceRule(
    interval=RecurrenceInterval.WEEKLY, days_of_week={SUNDAY}, time_of_day="18:00"
)
APPLICATION_REMINDER_RULE = RecurrenceRule(
    interval=RecurrenceInterval.WEEKLY, days_of_week={MONDAY}, time_of_day="09:00"
)
CLEANUP_RULE = RecurrenceRule(
    interval=RecurrenceInterval.DAILY, days_of_week=EVERY_DAY, time_of_day="02:00"
)
SECURITY_CHECK_RULE = RecurrenceRule(
    interval=RecurrenceInterval.DAILY, days_of_week=EVERY_DAY, time_of_day="03:00"
)

INTERVIEW_REMINDER_LEAD = timedelta(hours=24)


def next_week_start(now: datetime, tz: Optional[pytz.BaseTzInfo] = None) -> datetime:
    """
    Midnight of the coming Sunday in ``tz``; a week out when ``now`` is
    already a Sunday.
    """
    tz = tz or pytz.UTC
    local = ensure_utc(now).astimezone(tz)
    days_ahead = 7 - (local.weekday() + 1) % 7
    sunday = local.date() + timedelta(days=days_ahead)
    midnight = tz.localize(datetime(sunday.year, sunday.month, sunday.day))
    return midnight.astimezone(pytz.UTC)


def weekly_digest_spec(
    user_id: str,
    email: str,
    now: datetime,
    tz: Optional[pytz.BaseTzInfo] = None,
) -> JobSpec:
    """Weekly statistics email, Sundays at 18:00 starting next week."""
    return JobSpec(
        job_type=JobType.WEEKLY_DIGEST,
        payload={"user_id": user_id, "email": email},
        scheduled_for=next_week_start(now, tz),
        recurring=WEEKLY_DIGEST_RULE,
    )


def application_reminder_spec(
    user_id: str, email: str, start: Optional[datetime] = None
) -> JobSpec:
    """Follow-up reminder for stale applications, Mondays at 09:00 from ``start``."""
    return JobSpec(
        job_type=JobType.EMAIL_REMINDER,
        payload={"user_id": user_id, "email": email, "type": "application_followup"},
        scheduled_for=start,
        recurring=APPLICATION_REMINDER_RULE,
    )


def interview_reminder_spec(
    user_id: str,
    email: str,
    interview_at: datetime,
    application: Optional[Dict[str, Any]] = None,
) -> JobSpec:
    """One-shot reminder 24 hours before an interview."""
    interview_at = ensure_utc(interview_at)
    return JobSpec(
        job_type=JobType.EMAIL_REMINDER,
        payload={
            "user_id": user_id,
            "email": email,
            "type": "interview_reminder",
            "interview_at": interview_at.isoformat(),
            "application": dict(application or {}),
        },
        scheduled_for=interview_at - INTERVIEW_REMINDER_LEAD,
    )


def maintenance_specs() -> List[JobSpec]:
    """Daily cleanup at 02:00 and security check at 03:00."""
    return [
        JobSpec(job_type=JobType.CLEANUP, recurring=CLEANUP_RULE),
        JobSpec(job_type=JobType.SECURITY_CHECK, recurring=SECURITY_CHECK_RULE),
    ]
