"""
Background job scheduler.

Jobs are persisted through a ``JobRepository`` and dispatched to a
``JobExecutor`` by a periodic tick. Each tick selects the active jobs whose
``scheduled_for`` has passed, dispatches them concurrently under a semaphore
with a per-dispatch timeout, and then either completes, reschedules or
retries each job. Scheduling and cancelling are synchronous; only the tick
touches the executor.
"""

import asyncio
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from jobtrack.core.clock import Clock, SystemClock
from jobtrack.models.scheduling import JobStatus
from jobtrack.monitoring.metrics import JOB_DISPATCH_TOTAL, JOBS_FAILED_TOTAL, JOBS_IN_FLIGHT
from jobtrack.utils.error_handler import (
    ErrorCategory,
    ErrorReporter,
    ErrorSeverity,
    JobTrackError,
    report_error,
)
from jobtrack.utils.logger import add_job_context, get_logger

from .errors import InvalidJobSpecError
from .executor import JobExecutor
from .models import (
    DispatchOutcome,
    JobSpec,
    JobSpecInput,
    ScheduledJob,
    SchedulerConfig,
)
from .policies.retry import RetryDecision, RetryPolicy
from .recurrence import first_occurrence, latest_occurrence, next_occurrence
from .repository import InMemoryJobRepository, JobRepository

logger = get_logger(__name__)


class SchedulerStatus(str, Enum):
    """Scheduler operational status"""

    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class JobDispatchError(JobTrackError):
    """A job exhausted its retries"""

    def __init__(self, job: ScheduledJob, error: Optional[str]):
        super().__init__(
            f"Job {job.id} ({job.job_type}) failed after {job.retry_count} attempts: "
            f"{error}",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.DISPATCH,
            technical_details={
                "job_id": job.id,
                "job_type": job.job_type,
                "scheduled_for": job.scheduled_for.isoformat(),
                "retry_count": job.retry_count,
            },
        )


class JobScheduler:
    """
    Durable queue of one-shot and recurring jobs with its own tick loop.

    Construct it with an executor; repository, clock and configuration
    default to in-memory storage, the wall clock and the settings module.
    """

    def __init__(
        self,
        executor: JobExecutor,
        repository: Optional[JobRepository] = None,
        clock: Optional[Clock] = None,
        config: Optional[SchedulerConfig] = None,
        error_reporter: Optional[ErrorReporter] = None,
    ):
        self.executor = executor
        self.repository = repository or InMemoryJobRepository()
        self.clock = clock or SystemClock()
        self.config = config or SchedulerConfig.from_settings()
        self.config.validate()
        self.error_reporter = error_reporter
        self.retry_policy = RetryPolicy(max_retries=self.config.max_retries)
        self.tz = self.config.tz

        # Engine state
        self.status = SchedulerStatus.STOPPED
        self.scheduler_id = str(uuid.uuid4())
        self.started_at: Optional[datetime] = None

        # Runtime tracking
        self._loop_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_dispatches)
        self._in_flight: Set[str] = set()

        # Statistics
        self._stats: Dict[str, Any] = {
            "jobs_scheduled": 0,
            "jobs_cancelled": 0,
            "dispatches_succeeded": 0,
            "dispatches_failed": 0,
            "jobs_failed": 0,
            "ticks": 0,
            "last_tick": None,
        }

    # Job management

    def schedule(self, spec: JobSpecInput) -> ScheduledJob:
        """
        Validate and persist a job, returning it with a fresh id.

        ``scheduled_for`` may be in the past; such a job is due on the next
        tick. Recurring jobs are aligned to the first occurrence at or after
        the requested time (default now).
        """
        if not isinstance(spec, JobSpec):
            try:
                spec = JobSpec.model_validate(spec)
            except ValidationError as e:
                raise InvalidJobSpecError(
                    f"Invalid job spec: {e.error_count()} validation error(s)",
                    errors=e.errors(include_url=False),
                ) from e

        requested = spec.scheduled_for or self.clock.now()
        scheduled_for = (
            first_occurrence(spec.recurring, requested, self.tz)
            if spec.recurring
            else requested
        )

        job = ScheduledJob(
            id=str(uuid.uuid4()),
            job_type=spec.job_type,
            payload=dict(spec.payload),
            scheduled_for=scheduled_for,
            recurring=spec.recurring,
            active=spec.active,
        )
        job = self.repository.add(job)
        self._stats["jobs_scheduled"] += 1

        logger.info(
            "job_scheduled",
            scheduled_for=job.scheduled_for.isoformat(),
            recurring=job.recurring.describe() if job.recurring else None,
            **add_job_context(job.id, job.job_type),
        )
        return job

    def cancel(self, job_id: str) -> bool:
        """
        Deactivate a job. A dispatch already in flight still completes, but
        the job is never rescheduled afterwards.
        """
        job = self.repository.get(job_id)
        if job is None or not job.active:
            return False

        job.active = False
        job.status = JobStatus.CANCELLED
        self.repository.update(job)
        self._stats["jobs_cancelled"] += 1

        logger.info(
            "job_cancelled",
            in_flight=job_id in self._in_flight,
            **add_job_context(job.id, job.job_type),
        )
        return True

    def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        return self.repository.get(job_id)

    def list_jobs(
        self, active_only: bool = False, job_type: Optional[str] = None
    ) -> List[ScheduledJob]:
        return self.repository.list(
            active_only=active_only, job_type=getattr(job_type, "value", job_type)
        )

    # Tick evaluation

    async def run_due_jobs(self) -> List[DispatchOutcome]:
        """
        Run one tick: dispatch every due job once and record the results.

        Jobs already in flight, or already run for their current occurrence,
        are not dispatched again.
        """
        now = self.clock.now()
        self._stats["ticks"] += 1
        self._stats["last_tick"] = now

        try:
            due = self.repository.due(now)
        except Exception as e:
            report_error(
                self.error_reporter,
                e,
                severity=ErrorSeverity.HIGH,
                category=ErrorCategory.STORAGE,
                operation="select_due_jobs",
            )
            return []

        batch: List[Tuple[ScheduledJob, datetime]] = []
        for job in due:
            if job.id in self._in_flight:
                continue
            occurrence = self._occurrence_for(job, now)
            if job.already_ran_for(occurrence):
                logger.warning(
                    "job_already_ran_for_occurrence",
                    occurrence=occurrence.isoformat(),
                    **add_job_context(job.id, job.job_type),
                )
                self._complete_without_dispatch(job, occurrence)
                continue
            self._in_flight.add(job.id)
            batch.append((job, occurrence))

        if not batch:
            logger.debug("no_jobs_due")
            return []

        logger.info("dispatching_due_jobs", count=len(batch))
        return list(
            await asyncio.gather(
                *(self._dispatch(job, occurrence) for job, occurrence in batch)
            )
        )

    def _occurrence_for(self, job: ScheduledJob, now: datetime) -> datetime:
        """The occurrence a due job stands for; overdue recurring jobs catch up
        to their most recent missed occurrence."""
        if job.recurring is None:
            return job.scheduled_for
        latest = latest_occurrence(job.recurring, job.scheduled_for, now, self.tz)
        return latest or job.scheduled_for

    async def _dispatch(self, job: ScheduledJob, occurrence: datetime) -> DispatchOutcome:
        error: Optional[str] = None
        success = False
        try:
            async with self._semaphore:
                JOBS_IN_FLIGHT.inc()
                try:
                    success = bool(
                        await asyncio.wait_for(
                            self.executor.execute(job),
                            timeout=self.config.dispatch_timeout,
                        )
                    )
                    if not success:
                        error = "executor reported failure"
                except asyncio.TimeoutError:
                    error = f"dispatch timed out after {self.config.dispatch_timeout}s"
                except Exception as e:
                    error = f"{type(e).__name__}: {e}"
                finally:
                    JOBS_IN_FLIGHT.dec()

            JOB_DISPATCH_TOTAL.labels(
                job_type=job.job_type, outcome="success" if success else "failure"
            ).inc()

            try:
                if success:
                    return self._record_success(job, occurrence)
                return self._record_failure(job, occurrence, error)
            except Exception as e:
                report_error(
                    self.error_reporter,
                    e,
                    severity=ErrorSeverity.HIGH,
                    category=ErrorCategory.STORAGE,
                    operation="record_dispatch_result",
                    job_id=job.id,
                )
                return DispatchOutcome(
                    job_id=job.id,
                    job_type=job.job_type,
                    occurrence=occurrence,
                    success=success,
                    status=job.status,
                    error=str(e),
                )
        finally:
            self._in_flight.discard(job.id)

    def _record_success(self, job: ScheduledJob, occurrence: datetime) -> DispatchOutcome:
        self._stats["dispatches_succeeded"] += 1
        now = self.clock.now()
        current = self.repository.get(job.id) or job

        current.last_run_at = now
        current.retry_count = 0
        # A job cancelled while in flight stays cancelled
        if current.active and current.recurring is not None:
            current.scheduled_for = next_occurrence(
                current.recurring, now, previous=occurrence, tz=self.tz
            )
            current.status = JobStatus.SCHEDULED
        elif current.active:
            current.active = False
            current.status = JobStatus.COMPLETED

        current = self.repository.update(current)
        logger.info(
            "job_dispatched",
            occurrence=occurrence.isoformat(),
            status=current.status.value,
            next_run_at=current.scheduled_for.isoformat() if current.active else None,
            **add_job_context(current.id, current.job_type),
        )
        return DispatchOutcome(
            job_id=current.id,
            job_type=current.job_type,
            occurrence=occurrence,
            success=True,
            status=current.status,
            next_run_at=current.scheduled_for if current.active else None,
        )

    def _record_failure(
        self, job: ScheduledJob, occurrence: datetime, error: Optional[str]
    ) -> DispatchOutcome:
        self._stats["dispatches_failed"] += 1
        current = self.repository.get(job.id) or job
        current.retry_count += 1

        if current.active:
            decision = self.retry_policy.on_failure(current.retry_count)
            if decision == RetryDecision.GIVE_UP:
                current.active = False
                current.status = JobStatus.FAILED

        current = self.repository.update(current)

        if current.status == JobStatus.FAILED:
            self._stats["jobs_failed"] += 1
            JOBS_FAILED_TOTAL.labels(job_type=current.job_type).inc()
            logger.error(
                "job_failed_permanently",
                error=error,
                retry_count=current.retry_count,
                **add_job_context(current.id, current.job_type),
            )
            report_error(self.error_reporter, JobDispatchError(current, error))
        else:
            logger.warning(
                "job_dispatch_failed",
                error=error,
                retry_count=current.retry_count,
                retries_remaining=self.retry_policy.remaining(current.retry_count),
                **add_job_context(current.id, current.job_type),
            )

        return DispatchOutcome(
            job_id=current.id,
            job_type=current.job_type,
            occurrence=occurrence,
            success=False,
            status=current.status,
            next_run_at=current.scheduled_for if current.active else None,
            error=error,
        )

    def _complete_without_dispatch(self, job: ScheduledJob, occurrence: datetime) -> None:
        """Advance a job whose occurrence was dispatched but not yet recorded."""
        try:
            if job.recurring is not None:
                job.scheduled_for = next_occurrence(
                    job.recurring, self.clock.now(), previous=occurrence, tz=self.tz
                )
            else:
                job.active = False
                job.status = JobStatus.COMPLETED
            self.repository.update(job)
        except Exception as e:
            report_error(
                self.error_reporter,
                e,
                severity=ErrorSeverity.HIGH,
                category=ErrorCategory.STORAGE,
                operation="advance_job",
                job_id=job.id,
            )

    # Lifecycle

    async def start(self) -> None:
        """Start the background tick loop"""
        if self.status != SchedulerStatus.STOPPED:
            raise RuntimeError(f"Scheduler already running (status: {self.status})")

        self._shutdown_event = asyncio.Event()
        self.started_at = self.clock.now()
        self._loop_task = asyncio.create_task(self._scheduler_loop())
        self.status = SchedulerStatus.RUNNING

        logger.info(
            "scheduler_started",
            scheduler_id=self.scheduler_id,
            poll_interval=self.config.poll_interval,
        )

    async def stop(self) -> None:
        """
        Stop the tick loop, letting in-flight dispatches finish within the
        drain timeout and cancelling whatever is left.
        """
        if self.status == SchedulerStatus.STOPPED:
            return

        logger.info("scheduler_stopping", scheduler_id=self.scheduler_id)
        self.status = SchedulerStatus.STOPPING
        self._shutdown_event.set()

        task = self._loop_task
        if task is not None:
            _, pending = await asyncio.wait(
                {task}, timeout=self.config.shutdown_drain_timeout
            )
            if pending:
                logger.warning(
                    "scheduler_drain_timeout",
                    abandoned_dispatches=len(self._in_flight),
                )
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        self._loop_task = None
        self.status = SchedulerStatus.STOPPED
        logger.info("scheduler_stopped", scheduler_id=self.scheduler_id)

    async def wait_stopped(self) -> None:
        """Block until ``stop`` has been requested."""
        await self._shutdown_event.wait()

    async def _scheduler_loop(self) -> None:
        """Main loop: tick, then wait for the next poll or shutdown."""
        logger.info("scheduler_loop_started")

        while not self._shutdown_event.is_set():
            try:
                await self.run_due_jobs()
            except Exception as e:
                logger.error("scheduler_tick_failed", error=str(e), exc_info=True)

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self.config.poll_interval
                )
                break  # Shutdown requested
            except asyncio.TimeoutError:
                pass  # Continue polling

        logger.info("scheduler_loop_stopped")

    @property
    def is_running(self) -> bool:
        return self.status == SchedulerStatus.RUNNING

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def get_scheduler_status(self) -> Dict[str, Any]:
        """Running flag, counters and last tick time"""
        last_tick = self._stats["last_tick"]
        return {
            "scheduler_id": self.scheduler_id,
            "status": self.status.value,
            "running": self.is_running,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "poll_interval": self.config.poll_interval,
            "in_flight": self.in_flight,
            "statistics": {
                k: v for k, v in self._stats.items() if k != "last_tick"
            },
            "last_tick": last_tick.isoformat() if last_tick else None,
        }
