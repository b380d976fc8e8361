"""
Background job scheduling.

Persists one-shot and recurring jobs and dispatches them from a periodic
tick to an executor.
"""

from .engine import JobDispatchError, JobScheduler, SchedulerStatus
from .errors import InvalidJobSpecError, JobNotFoundError, SchedulingRepositoryError
from .executor import CeleryExecutor, HandlerExecutor, JobExecutor
from .models import (
    DispatchOutcome,
    JobSpec,
    RecurrenceRule,
    ScheduledJob,
    SchedulerConfig,
)
from .policies import RetryDecision, RetryPolicy
from .repository import InMemoryJobRepository, JobRepository, SqlAlchemyJobRepository

__all__ = [
    "JobScheduler",
    "SchedulerStatus",
    "JobDispatchError",
    "InvalidJobSpecError",
    "JobNotFoundError",
    "SchedulingRepositoryError",
    "JobExecutor",
    "HandlerExecutor",
    "CeleryExecutor",
    "JobSpec",
    "RecurrenceRule",
    "ScheduledJob",
    "DispatchOutcome",
    "SchedulerConfig",
    "RetryPolicy",
    "RetryDecision",
    "JobRepository",
    "InMemoryJobRepository",
    "SqlAlchemyJobRepository",
]
