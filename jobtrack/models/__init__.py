from jobtrack.models.rate_limit import RateLimitWindow
from jobtrack.models.scheduling import (
    JobStatus,
    JobType,
    RecurrenceInterval,
    ScheduledJobRecord,
)

__all__ = [
    "RateLimitWindow",
    "ScheduledJobRecord",
    "JobStatus",
    "JobType",
    "RecurrenceInterval",
]
