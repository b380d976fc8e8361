"""
In-process handlers for the recurring maintenance jobs.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from jobtrack.core.clock import Clock, SystemClock
from jobtrack.core.config import settings
from jobtrack.models.scheduling import JobType
from jobtrack.services.rate_limiting import RateLimiter
from jobtrack.services.security import SecurityEventStore
from jobtrack.utils.logger import get_logger

from .engine import JobScheduler
from .executor import HandlerExecutor
from .models import ScheduledJob
from .presets import maintenance_specs

logger = get_logger(__name__)


def register_maintenance_handlers(
    executor: HandlerExecutor,
    event_store: SecurityEventStore,
    rate_limiter: RateLimiter,
    clock: Optional[Clock] = None,
    archive_days: Optional[int] = None,
) -> None:
    """
    Install the ``cleanup`` and ``security_check`` handlers.

    Cleanup drops security events older than ``archive_days`` or the store's
    retention window, whichever is shorter, and purges closed rate-limit
    windows.
    """
    clock = clock or SystemClock()
    archive_age = timedelta(days=archive_days or settings.SECURITY_EVENT_ARCHIVE_DAYS)

    def cleanup(payload: Dict[str, Any], job: ScheduledJob) -> bool:
        max_age = min(archive_age, event_store.retention.max_age)
        pruned = event_store.prune(clock.now() - max_age)
        purged = rate_limiter.purge_expired()
        logger.info(
            "cleanup_completed",
            job_id=job.id,
            security_events_pruned=pruned,
            rate_limit_windows_purged=purged,
        )
        return True

    def security_check(payload: Dict[str, Any], job: ScheduledJob) -> bool:
        stats = event_store.stats()
        logger.info("security_check_completed", job_id=job.id, **stats)
        return True

    executor.register_job_handler(JobType.CLEANUP, cleanup)
    executor.register_job_handler(JobType.SECURITY_CHECK, security_check)


def ensure_maintenance_jobs(scheduler: JobScheduler) -> List[ScheduledJob]:
    """Schedule the maintenance jobs that are not already active."""
    created = []
    for spec in maintenance_specs():
        if scheduler.list_jobs(active_only=True, job_type=spec.job_type):
            continue
        created.append(scheduler.schedule(spec))
    if created:
        logger.info(
            "maintenance_jobs_scheduled", job_types=[job.job_type for job in created]
        )
    return created
