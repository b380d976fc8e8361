"""
Scheduling system database models.

Persistent storage for one-shot and recurring notification jobs queued at
sign-up time and dispatched by the background scheduler.
"""

import uuid
from enum import Enum
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import validates

from jobtrack.db.base_class import Base


class JobType(str, Enum):
    """Known job types; the column accepts any non-empty string"""

    WEEKLY_DIGEST = "weekly_digest"  # Weekly application statistics email
    EMAIL_REMINDER = "email_reminder"  # Follow-up or interview reminder
    CLEANUP = "cleanup"  # Prune old security events and rate-limit windows
    SECURITY_CHECK = "security_check"  # Periodic security sweep


class RecurrenceInterval(str, Enum):
    """How often a recurring job repeats"""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class JobStatus(str, Enum):
    """Lifecycle state of a scheduled job"""

    SCHEDULED = "scheduled"  # Waiting for its next occurrence
    COMPLETED = "completed"  # One-shot job dispatched successfully
    CANCELLED = "cancelled"  # Deactivated by a caller
    FAILED = "failed"  # Deactivated after exhausting retries


class ScheduledJobRecord(Base):
    """
    Stored scheduled job.

    ``recurring_days`` holds weekday numbers with 0 = Sunday.
    """

    __tablename__ = "scheduled_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(64), nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)

    # Recurrence (all null for one-shot jobs)
    recurring_interval = Column(SQLEnum(RecurrenceInterval), nullable=True)
    recurring_days = Column(JSON, nullable=True)
    recurring_time = Column(String(5), nullable=True)

    # Lifecycle
    active = Column(Boolean, nullable=False, default=True)
    status = Column(
        SQLEnum(JobStatus), nullable=False, default=JobStatus.SCHEDULED, index=True
    )
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_scheduled_jobs_active_due", "active", "scheduled_for"),
        CheckConstraint("retry_count >= 0", name="ck_retry_count_non_negative"),
        CheckConstraint(
            "(recurring_interval IS NULL AND recurring_time IS NULL) OR "
            "(recurring_interval IS NOT NULL AND recurring_time IS NOT NULL)",
            name="ck_recurrence_complete",
        ),
    )

    @validates("payload")
    def validate_payload(self, key, value):
        """Validate JSON payload field"""
        if not isinstance(value, dict):
            raise ValueError(f"{key} must be a dictionary")
        return value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "scheduled_for": self.scheduled_for.isoformat(),
            "recurring_interval": self.recurring_interval.value
            if self.recurring_interval
            else None,
            "recurring_days": self.recurring_days,
            "recurring_time": self.recurring_time,
            "active": self.active,
            "status": self.status.value,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "retry_count": self.retry_count,
        }
