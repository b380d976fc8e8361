"""
Tests for build_auth_core.

The ``clock`` fixture starts on Wednesday 2024-01-03 10:00 UTC; the daily
cleanup job first runs on Thursday at 02:00.
"""

from datetime import datetime, timedelta, timezone

import pytest

from jobtrack.services.rate_limiting import SqlAlchemyRateLimitStore
from jobtrack.services.scheduling import SchedulerConfig, SqlAlchemyJobRepository
from jobtrack.services.security import RetentionPolicy, SecurityEventType
from jobtrack.services.wiring import build_auth_core

EMAIL = "owner@example.com"


@pytest.fixture
def core(session_factory, clock):
    return build_auth_core(
        session_factory,
        clock=clock,
        retention=RetentionPolicy(max_age=timedelta(hours=1)),
        config=SchedulerConfig(),
    )


class TestBuildAuthCore:
    def test_guard_and_maintenance_share_state(self, core):
        assert core.guard.event_store is core.event_store
        assert core.guard.rate_limiter is core.rate_limiter
        assert core.guard.scheduler is core.scheduler
        assert isinstance(core.rate_limiter.store, SqlAlchemyRateLimitStore)
        assert isinstance(core.scheduler.repository, SqlAlchemyJobRepository)
        assert core.executor.job_types == ["cleanup", "security_check"]
        assert {j.job_type for j in core.scheduler.list_jobs(active_only=True)} == {
            "cleanup",
            "security_check",
        }

    @pytest.mark.asyncio
    async def test_cleanup_prunes_events_recorded_by_guard(self, core, clock):
        """Test that the nightly cleanup removes events logged through the guard"""
        core.guard.record_sign_in_failure("password", "bad password", email=EMAIL)
        for _ in range(6):
            core.guard.guard_password_sign_in(EMAIL)
        assert len(core.event_store) == 2

        clock.set(datetime(2024, 1, 4, 2, 0, tzinfo=timezone.utc))
        outcomes = await core.scheduler.run_due_jobs()

        assert [(o.job_type, o.success) for o in outcomes] == [("cleanup", True)]
        assert len(core.event_store) == 0
        assert core.rate_limiter.store.keys() == []

    @pytest.mark.asyncio
    async def test_cleanup_keeps_recent_events(self, core, clock):
        clock.set(datetime(2024, 1, 4, 1, 30, tzinfo=timezone.utc))
        core.guard.record_sign_in_failure("password", "bad password", email=EMAIL)

        clock.set(datetime(2024, 1, 4, 2, 0, tzinfo=timezone.utc))
        await core.scheduler.run_due_jobs()

        assert len(core.event_store) == 1
