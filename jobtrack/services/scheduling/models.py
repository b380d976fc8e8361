"""
Scheduling data models.

Caller input (``JobSpec``, ``RecurrenceRule``) is validated with pydantic;
the scheduler's own state (``ScheduledJob``, ``DispatchOutcome``,
``SchedulerConfig``) uses plain dataclasses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional, Union

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator

from jobtrack.core.clock import ensure_utc
from jobtrack.core.config import settings
from jobtrack.models.scheduling import JobStatus, JobType, RecurrenceInterval

_TIME_OF_DAY = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


class RecurrenceRule(BaseModel):
    """
    Days of the week plus a time of day, repeated at an interval.

    ``days_of_week`` uses 0 = Sunday through 6 = Saturday.
    """

    model_config = ConfigDict(frozen=True)

    interval: RecurrenceInterval
    days_of_week: FrozenSet[int]
    time_of_day: str

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: FrozenSet[int]) -> FrozenSet[int]:
        if not v:
            raise ValueError("days_of_week must not be empty")
        bad = sorted(d for d in v if d < 0 or d > 6)
        if bad:
            raise ValueError(f"days_of_week must be within 0-6, got {bad}")
        return v

    @field_validator("time_of_day")
    @classmethod
    def validate_time_of_day(cls, v: str) -> str:
        match = _TIME_OF_DAY.match(v)
        if not match:
            raise ValueError(f"time_of_day must be a 24-hour HH:MM time, got {v!r}")
        hour, minute = match.groups()
        return f"{int(hour):02d}:{minute}"

    @property
    def hour(self) -> int:
        return int(self.time_of_day[:2])

    @property
    def minute(self) -> int:
        return int(self.time_of_day[3:])

    def describe(self) -> str:
        days = ", ".join(WEEKDAY_NAMES[d] for d in sorted(self.days_of_week))
        return f"{self.interval.value} on {days} at {self.time_of_day}"


class JobSpec(BaseModel):
    """What a caller asks the scheduler to run"""

    job_type: str = Field(..., min_length=1, max_length=64)
    payload: Dict[str, Any] = Field(default_factory=dict)
    scheduled_for: Optional[datetime] = None
    recurring: Optional[RecurrenceRule] = None
    active: bool = True

    @field_validator("job_type", mode="before")
    @classmethod
    def normalize_job_type(cls, v: Any) -> Any:
        if isinstance(v, JobType):
            return v.value
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("scheduled_for")
    @classmethod
    def normalize_scheduled_for(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None


@dataclass
class ScheduledJob:
    """A persisted job as the scheduler sees it"""

    id: str
    job_type: str
    payload: Dict[str, Any]
    scheduled_for: datetime
    recurring: Optional[RecurrenceRule] = None
    active: bool = True
    last_run_at: Optional[datetime] = None
    status: JobStatus = JobStatus.SCHEDULED
    retry_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_recurring(self) -> bool:
        return self.recurring is not None

    def already_ran_for(self, occurrence: datetime) -> bool:
        return self.last_run_at is not None and self.last_run_at >= occurrence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_type": self.job_type,
            "payload": self.payload,
            "scheduled_for": self.scheduled_for.isoformat(),
            "recurring": {
                "interval": self.recurring.interval.value,
                "days_of_week": sorted(self.recurring.days_of_week),
                "time_of_day": self.recurring.time_of_day,
            }
            if self.recurring
            else None,
            "active": self.active,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "status": self.status.value,
            "retry_count": self.retry_count,
        }


@dataclass(frozen=True)
class DispatchOutcome:
    """What happened to one due job during a tick"""

    job_id: str
    job_type: str
    occurrence: datetime
    success: bool
    status: JobStatus
    next_run_at: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class SchedulerConfig:
    """Configuration for the job scheduler"""

    poll_interval: float = 60.0  # seconds between ticks
    max_retries: int = 3  # failed attempts tolerated before deactivation
    dispatch_timeout: float = 30.0  # seconds per executor call
    max_concurrent_dispatches: int = 10
    shutdown_drain_timeout: float = 10.0  # seconds to let in-flight work finish
    timezone: str = "UTC"

    def validate(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.dispatch_timeout <= 0:
            raise ValueError("dispatch_timeout must be positive")
        if self.max_concurrent_dispatches < 1:
            raise ValueError("max_concurrent_dispatches must be at least 1")
        if self.shutdown_drain_timeout < 0:
            raise ValueError("shutdown_drain_timeout must not be negative")
        pytz.timezone(self.timezone)

    @property
    def tz(self) -> pytz.BaseTzInfo:
        return pytz.timezone(self.timezone)

    @classmethod
    def from_settings(cls) -> "SchedulerConfig":
        return cls(
            poll_interval=settings.SCHEDULER_POLL_INTERVAL_SECONDS,
            max_retries=settings.SCHEDULER_MAX_RETRIES,
            dispatch_timeout=settings.SCHEDULER_DISPATCH_TIMEOUT_SECONDS,
            max_concurrent_dispatches=settings.SCHEDULER_MAX_CONCURRENT_DISPATCHES,
            shutdown_drain_timeout=settings.SCHEDULER_SHUTDOWN_DRAIN_SECONDS,
            timezone=settings.SCHEDULER_TIMEZONE,
        )


JobSpecInput = Union[JobSpec, Dict[str, Any]]
