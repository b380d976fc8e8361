"""
Tests for scheduled job storage.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from jobtrack.models.scheduling import JobStatus, RecurrenceInterval, ScheduledJobRecord
from jobtrack.services.scheduling import (
    InMemoryJobRepository,
    JobNotFoundError,
    RecurrenceRule,
    ScheduledJob,
    SchedulingRepositoryError,
    SqlAlchemyJobRepository,
)

T0 = datetime(2024, 1, 3, 10, 0, tzinfo=timezone.utc)

RULE = RecurrenceRule(
    interval=RecurrenceInterval.WEEKLY, days_of_week=[0, 3], time_of_day="18:00"
)


def make_job(job_id="job-1", scheduled_for=T0, **kwargs):
    kwargs.setdefault("job_type", "weekly_digest")
    kwargs.setdefault("payload", {"user_id": "u1", "email": "a@example.com"})
    return ScheduledJob(id=job_id, scheduled_for=scheduled_for, **kwargs)


@pytest.fixture(params=["memory", "sql"])
def repository(request):
    if request.param == "memory":
        return InMemoryJobRepository()
    return SqlAlchemyJobRepository(request.getfixturevalue("session_factory"))


class TestJobRepository:
    """Behavior shared by every repository"""

    def test_add_and_get(self, repository):
        added = repository.add(make_job(recurring=RULE))
        loaded = repository.get("job-1")

        assert loaded.id == added.id == "job-1"
        assert loaded.payload == {"user_id": "u1", "email": "a@example.com"}
        assert loaded.scheduled_for == T0
        assert loaded.scheduled_for.tzinfo is not None
        assert loaded.recurring == RULE
        assert loaded.status == JobStatus.SCHEDULED
        assert loaded.created_at is not None

    def test_get_missing(self, repository):
        assert repository.get("missing") is None

    def test_duplicate_id_rejected(self, repository):
        repository.add(make_job())
        with pytest.raises(SchedulingRepositoryError):
            repository.add(make_job())

    def test_update(self, repository):
        repository.add(make_job(recurring=RULE))
        job = repository.get("job-1")
        job.active = False
        job.status = JobStatus.CANCELLED
        job.retry_count = 2
        job.last_run_at = T0 + timedelta(minutes=1)
        job.recurring = None

        repository.update(job)
        loaded = repository.get("job-1")

        assert loaded.active is False
        assert loaded.status == JobStatus.CANCELLED
        assert loaded.retry_count == 2
        assert loaded.last_run_at == T0 + timedelta(minutes=1)
        assert loaded.recurring is None

    def test_update_missing_raises(self, repository):
        with pytest.raises(JobNotFoundError):
            repository.update(make_job("missing"))

    def test_returned_jobs_are_copies(self, repository):
        repository.add(make_job())
        job = repository.get("job-1")
        job.payload["email"] = "changed@example.com"

        assert repository.get("job-1").payload["email"] == "a@example.com"

    def test_due_selects_active_past_jobs_in_order(self, repository):
        repository.add(make_job("later", T0 - timedelta(minutes=1)))
        repository.add(make_job("earlier", T0 - timedelta(hours=1)))
        repository.add(make_job("exact", T0))
        repository.add(make_job("future", T0 + timedelta(seconds=1)))
        repository.add(make_job("inactive", T0 - timedelta(days=1), active=False))

        assert [j.id for j in repository.due(T0)] == ["earlier", "later", "exact"]

    def test_list_filters(self, repository):
        repository.add(make_job("a", job_type="cleanup"))
        repository.add(make_job("b", job_type="weekly_digest"))
        repository.add(make_job("c", job_type="cleanup", active=False))

        assert {j.id for j in repository.list()} == {"a", "b", "c"}
        assert {j.id for j in repository.list(active_only=True)} == {"a", "b"}
        assert {j.id for j in repository.list(job_type="cleanup")} == {"a", "c"}


class TestSqlAlchemyJobRepository:
    def test_row_layout(self, session_factory, db_session):
        SqlAlchemyJobRepository(session_factory).add(make_job(recurring=RULE))

        record = db_session.get(ScheduledJobRecord, "job-1")

        assert record.type == "weekly_digest"
        assert record.recurring_interval == RecurrenceInterval.WEEKLY
        assert record.recurring_days == [0, 3]
        assert record.recurring_time == "18:00"

    def test_database_errors_are_wrapped(self):
        session = Mock()
        session.get.side_effect = OperationalError("SELECT", {}, Exception("locked"))
        repository = SqlAlchemyJobRepository(Mock(return_value=session))

        with pytest.raises(SchedulingRepositoryError):
            repository.get("job-1")

        session.rollback.assert_called_once()
        session.close.assert_called_once()
