"""
Scheduled job storage.

``InMemoryJobRepository`` backs tests and embedded runs;
``SqlAlchemyJobRepository`` persists to the ``scheduled_jobs`` table so jobs
survive worker restarts.
"""

import copy
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from jobtrack.core.clock import ensure_utc
from jobtrack.models.scheduling import JobStatus, ScheduledJobRecord
from jobtrack.utils.logger import get_logger

from .errors import JobNotFoundError, SchedulingRepositoryError
from .models import RecurrenceRule, ScheduledJob

logger = get_logger(__name__)


class JobRepository(ABC):
    """Storage interface used by the scheduler"""

    @abstractmethod
    def add(self, job: ScheduledJob) -> ScheduledJob:
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[ScheduledJob]:
        ...

    @abstractmethod
    def update(self, job: ScheduledJob) -> ScheduledJob:
        ...

    @abstractmethod
    def list(
        self, active_only: bool = False, job_type: Optional[str] = None
    ) -> List[ScheduledJob]:
        ...

    @abstractmethod
    def due(self, now: datetime) -> List[ScheduledJob]:
        """Active jobs with ``scheduled_for <= now``, earliest first."""


class InMemoryJobRepository(JobRepository):
    """Dictionary-backed repository that hands out copies"""

    def __init__(self) -> None:
        self._jobs: Dict[str, ScheduledJob] = {}
        self._lock = threading.Lock()

    def add(self, job: ScheduledJob) -> ScheduledJob:
        with self._lock:
            if job.id in self._jobs:
                raise SchedulingRepositoryError(
                    f"Job creation failed: duplicate id {job.id}", {"job_id": job.id}
                )
            now = datetime.now(timezone.utc)
            stored = copy.deepcopy(job)
            stored.created_at = stored.created_at or now
            stored.updated_at = now
            self._jobs[job.id] = stored
            return copy.deepcopy(stored)

    def get(self, job_id: str) -> Optional[ScheduledJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def update(self, job: ScheduledJob) -> ScheduledJob:
        with self._lock:
            if job.id not in self._jobs:
                raise JobNotFoundError(job.id)
            stored = copy.deepcopy(job)
            stored.updated_at = datetime.now(timezone.utc)
            self._jobs[job.id] = stored
            return copy.deepcopy(stored)

    def list(
        self, active_only: bool = False, job_type: Optional[str] = None
    ) -> List[ScheduledJob]:
        with self._lock:
            jobs = [
                copy.deepcopy(job)
                for job in self._jobs.values()
                if (not active_only or job.active)
                and (job_type is None or job.job_type == job_type)
            ]
        return sorted(jobs, key=lambda j: j.scheduled_for)

    def due(self, now: datetime) -> List[ScheduledJob]:
        with self._lock:
            jobs = [
                copy.deepcopy(job)
                for job in self._jobs.values()
                if job.active and job.scheduled_for <= now
            ]
        return sorted(jobs, key=lambda j: j.scheduled_for)

    def __len__(self) -> int:
        return len(self._jobs)


class SqlAlchemyJobRepository(JobRepository):
    """Repository over the ``scheduled_jobs`` table"""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Context manager for database transactions"""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SchedulingRepositoryError:
            db.rollback()
            raise
        except IntegrityError as e:
            db.rollback()
            logger.error("scheduling_transaction_integrity_error", error=str(e))
            raise SchedulingRepositoryError(f"Integrity error: {e}") from e
        except Exception as e:
            db.rollback()
            logger.error("scheduling_transaction_failed", error=str(e), exc_info=True)
            raise SchedulingRepositoryError(f"Transaction failed: {e}") from e
        finally:
            db.close()

    def add(self, job: ScheduledJob) -> ScheduledJob:
        with self.transaction() as db:
            record = ScheduledJobRecord(id=job.id)
            self._apply(record, job)
            db.add(record)
            db.flush()
            db.refresh(record)
            logger.info("scheduled_job_persisted", job_id=job.id, job_type=job.job_type)
            return self._to_job(record)

    def get(self, job_id: str) -> Optional[ScheduledJob]:
        with self.transaction() as db:
            record = db.get(ScheduledJobRecord, job_id)
            return self._to_job(record) if record else None

    def update(self, job: ScheduledJob) -> ScheduledJob:
        with self.transaction() as db:
            record = db.get(ScheduledJobRecord, job.id)
            if record is None:
                raise JobNotFoundError(job.id)
            self._apply(record, job)
            db.flush()
            db.refresh(record)
            return self._to_job(record)

    def list(
        self, active_only: bool = False, job_type: Optional[str] = None
    ) -> List[ScheduledJob]:
        with self.transaction() as db:
            query = db.query(ScheduledJobRecord)
            if active_only:
                query = query.filter(ScheduledJobRecord.active.is_(True))
            if job_type is not None:
                query = query.filter(ScheduledJobRecord.type == job_type)
            records = query.order_by(ScheduledJobRecord.scheduled_for).all()
            return [self._to_job(r) for r in records]

    def due(self, now: datetime) -> List[ScheduledJob]:
        with self.transaction() as db:
            records = (
                db.query(ScheduledJobRecord)
                .filter(
                    ScheduledJobRecord.active.is_(True),
                    ScheduledJobRecord.scheduled_for <= now,
                )
                .order_by(ScheduledJobRecord.scheduled_for)
                .all()
            )
            return [self._to_job(r) for r in records]

    @staticmethod
    def _apply(record: ScheduledJobRecord, job: ScheduledJob) -> None:
        record.type = job.job_type
        record.payload = dict(job.payload)
        record.scheduled_for = job.scheduled_for
        record.active = job.active
        record.status = job.status
        record.last_run_at = job.last_run_at
        record.retry_count = job.retry_count
        if job.recurring is not None:
            record.recurring_interval = job.recurring.interval
            record.recurring_days = sorted(job.recurring.days_of_week)
            record.recurring_time = job.recurring.time_of_day
        else:
            record.recurring_interval = None
            record.recurring_days = None
            record.recurring_time = None

    @staticmethod
    def _to_job(record: ScheduledJobRecord) -> ScheduledJob:
        recurring = None
        if record.recurring_interval is not None:
            recurring = RecurrenceRule(
                interval=record.recurring_interval,
                days_of_week=frozenset(record.recurring_days or ()),
                time_of_day=record.recurring_time,
            )
        return ScheduledJob(
            id=record.id,
            job_type=record.type,
            payload=dict(record.payload or {}),
            scheduled_for=ensure_utc(record.scheduled_for),
            recurring=recurring,
            active=bool(record.active),
            last_run_at=ensure_utc(record.last_run_at) if record.last_run_at else None,
            status=JobStatus(record.status),
            retry_count=record.retry_count or 0,
            created_at=ensure_utc(record.created_at) if record.created_at else None,
            updated_at=ensure_utc(record.updated_at) if record.updated_at else None,
        )
