"""
Tests for the cleanup and security check jobs.
"""

from datetime import datetime, timedelta, timezone

import pytest

from jobtrack.services.rate_limiting import RateLimitConfig, RateLimiter
from jobtrack.services.scheduling import HandlerExecutor, JobScheduler, SchedulerConfig
from jobtrack.services.scheduling.maintenance import (
    ensure_maintenance_jobs,
    register_maintenance_handlers,
)
from jobtrack.services.security import (
    RetentionPolicy,
    SecurityEventStore,
    SecurityEventType,
)


@pytest.fixture
def event_store(clock):
    return SecurityEventStore(RetentionPolicy(max_age=timedelta(hours=1)), clock=clock)


@pytest.fixture
def rate_limiter(clock):
    return RateLimiter(clock=clock)


@pytest.fixture
def scheduler(clock, event_store, rate_limiter):
    executor = HandlerExecutor()
    register_maintenance_handlers(executor, event_store, rate_limiter, clock=clock)
    return JobScheduler(executor, clock=clock, config=SchedulerConfig())


class TestMaintenanceJobs:
    def test_ensure_is_idempotent(self, scheduler):
        created = ensure_maintenance_jobs(scheduler)
        again = ensure_maintenance_jobs(scheduler)

        assert {j.job_type for j in created} == {"cleanup", "security_check"}
        assert again == []
        assert len(scheduler.list_jobs(active_only=True)) == 2

    @pytest.mark.asyncio
    async def test_cleanup_prunes_events_and_windows(
        self, scheduler, event_store, rate_limiter, clock
    ):
        """Test that the nightly cleanup drops stale state and stays scheduled"""
        event_store.record(SecurityEventType.LOGIN_FAILURE, success=False, email="a@example.com")
        rate_limiter.check("login:a@example.com", RateLimitConfig.of(minutes=15, max_requests=5))
        ensure_maintenance_jobs(scheduler)

        clock.set(datetime(2024, 1, 4, 2, 0, tzinfo=timezone.utc))
        event_store.record(SecurityEventType.LOGIN_SUCCESS, success=True, user_id="u1")
        outcomes = await scheduler.run_due_jobs()

        assert [o.success for o in outcomes] == [True]
        assert len(event_store) == 1
        assert rate_limiter.store.keys() == []
        cleanup = scheduler.list_jobs(job_type="cleanup")[0]
        assert cleanup.scheduled_for == datetime(2024, 1, 5, 2, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_security_check_runs(self, scheduler, clock):
        ensure_maintenance_jobs(scheduler)
        clock.set(datetime(2024, 1, 4, 3, 0, tzinfo=timezone.utc))

        outcomes = await scheduler.run_due_jobs()

        assert {o.job_type for o in outcomes} == {"cleanup", "security_check"}
        assert all(o.success for o in outcomes)
