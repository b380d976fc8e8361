"""
Tests for the auth guard that wraps sign-in and sign-up flows.

The ``clock`` fixture starts on Wednesday 2024-01-03 10:00 UTC.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from jobtrack.services.auth_guard import AuthGuard, security_alert
from jobtrack.services.rate_limiting import RateLimiter
from jobtrack.services.scheduling import JobExecutor, JobScheduler, SchedulerConfig
from jobtrack.services.security import (
    AnomalyDetector,
    SecurityEventStore,
    SecurityEventType,
    SuspiciousActivityResult,
)

EMAIL = "owner@example.com"


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def reporter():
    return Mock()


@pytest.fixture
def event_store(clock, reporter):
    return SecurityEventStore(clock=clock, error_reporter=reporter)


@pytest.fixture
def scheduler(clock):
    executor = Mock(spec=JobExecutor)
    executor.execute = AsyncMock(return_value=True)
    return JobScheduler(executor, clock=clock, config=SchedulerConfig())


@pytest.fixture
def guard(clock, event_store, scheduler, reporter):
    return AuthGuard(
        RateLimiter(clock=clock, error_reporter=reporter),
        event_store,
        AnomalyDetector(event_store),
        scheduler=scheduler,
        clock=clock,
        error_reporter=reporter,
    )


def events_of(store, event_type, user_id=None, email=EMAIL):
    return [e for e in store.recent_events(user_id, email) if e.type == event_type]


class TestPasswordSignIn:
    """Test suite for guard_password_sign_in"""

    def test_five_attempts_then_denied(self, guard, event_store):
        decisions = [guard.guard_password_sign_in(EMAIL) for _ in range(6)]

        assert [d.allowed for d in decisions] == [True] * 5 + [False]
        denied = decisions[-1]
        assert denied.wait_minutes == 15
        assert denied.message == "Too many login attempts. Try again in 15 minutes."

        failures = events_of(event_store, SecurityEventType.LOGIN_FAILURE)
        assert len(failures) == 1
        assert failures[0].metadata["reason"] == "rate_limited"
        assert failures[0].provider == "password"

    def test_email_is_normalized_for_the_key(self, guard):
        for _ in range(5):
            guard.guard_password_sign_in(EMAIL)

        assert guard.guard_password_sign_in("  Owner@Example.COM ").allowed is False

    def test_wait_minutes_counts_down(self, guard, clock):
        for _ in range(5):
            guard.guard_password_sign_in(EMAIL)
        clock.advance(minutes=10, seconds=30)

        assert guard.guard_password_sign_in(EMAIL).wait_minutes == 5

    def test_window_reopens(self, guard, clock):
        for _ in range(6):
            guard.guard_password_sign_in(EMAIL)
        clock.advance(minutes=15)

        assert guard.guard_password_sign_in(EMAIL).allowed is True

    def test_store_failure_allows_sign_in(self, guard, reporter):
        guard.rate_limiter.store = Mock()
        guard.rate_limiter.store.hit.side_effect = RuntimeError("database is locked")

        assert guard.guard_password_sign_in(EMAIL).allowed is True
        reporter.report.assert_called_once()


class TestSignUpAndOAuth:
    def test_three_sign_ups_per_hour(self, guard):
        decisions = [guard.guard_sign_up(EMAIL) for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert decisions[-1].message == "Too many signup attempts. Try again in 60 minutes."

    def test_oauth_keyed_by_provider_and_host(self, guard):
        for _ in range(5):
            assert guard.guard_oauth("google", "app.example.com").allowed

        assert guard.guard_oauth("google", "app.example.com").allowed is False
        assert guard.guard_oauth("github", "app.example.com").allowed is True
        assert guard.guard_oauth("google", "staging.example.com").allowed is True

    def test_sign_up_failure_is_logged(self, guard, event_store):
        guard.record_sign_up_failure(EMAIL, "email already registered")

        attempts = events_of(event_store, SecurityEventType.LOGIN_ATTEMPT)
        assert attempts[0].metadata["type"] == "signup"
        assert attempts[0].success is False


class TestSignInOutcome:
    """Test suite for record_sign_in_failure / record_sign_in_success"""

    def test_repeated_failures_flag_the_sign_in(self, guard, event_store, clock):
        for _ in range(3):
            guard.record_sign_in_failure("password", "invalid credentials", EMAIL)
            clock.advance(minutes=1)

        result = guard.record_sign_in_success("u1", EMAIL)

        assert result.suspicious is True
        assert security_alert(result).startswith("Security Alert: 3 failed sign-in attempts")
        flagged = events_of(event_store, SecurityEventType.SUSPICIOUS_ACTIVITY, user_id="u1")
        assert flagged[0].metadata["rule"] == "repeated_failures"

    def test_clean_sign_in(self, guard, event_store):
        result = guard.record_sign_in_success("u1", EMAIL, provider="google")

        assert result.suspicious is False
        assert security_alert(result) is None
        successes = events_of(event_store, SecurityEventType.LOGIN_SUCCESS, user_id="u1")
        assert successes[0].provider == "google"

    def test_detector_failure_is_not_suspicious(self, guard, reporter):
        guard.detector = Mock()
        guard.detector.check_suspicious_activity.side_effect = RuntimeError("boom")

        result = guard.record_sign_in_success("u1", EMAIL)

        assert result.suspicious is False
        reporter.report.assert_called_once()

    def test_sign_out_is_logged(self, guard, event_store):
        guard.record_sign_out("u1")

        events = event_store.recent_events("u1")
        assert events[0].type == SecurityEventType.LOGIN_ATTEMPT
        assert events[0].metadata["reason"] == "signed_out"


class TestOnboarding:
    """Test suite for first sign-in job setup"""

    def test_new_user_gets_digest_and_reminder(self, guard, scheduler, clock):
        guard.record_sign_in_success("u1", EMAIL, created_at=clock.now() - timedelta(seconds=2))

        jobs = {j.job_type: j for j in scheduler.list_jobs()}
        assert set(jobs) == {"weekly_digest", "email_reminder"}
        assert jobs["weekly_digest"].scheduled_for == utc(2024, 1, 7, 18)
        assert jobs["weekly_digest"].payload == {"user_id": "u1", "email": EMAIL}
        assert jobs["email_reminder"].scheduled_for == utc(2024, 1, 8, 9)

    def test_returning_user_gets_nothing(self, guard, scheduler, clock):
        guard.record_sign_in_success("u1", EMAIL, created_at=clock.now() - timedelta(days=30))
        assert scheduler.list_jobs() == []

    def test_explicit_new_user_flag(self, guard, scheduler):
        guard.record_sign_in_success("u1", EMAIL, new_user=True)
        assert len(scheduler.list_jobs()) == 2

    def test_scheduling_failure_does_not_block_sign_in(self, guard, reporter, clock):
        guard.scheduler.schedule = Mock(side_effect=RuntimeError("database is locked"))

        result = guard.record_sign_in_success("u1", EMAIL, new_user=True)

        assert isinstance(result, SuspiciousActivityResult)
        assert reporter.report.call_count == 2

    def test_without_scheduler(self, clock, event_store):
        guard = AuthGuard(
            RateLimiter(clock=clock), event_store, AnomalyDetector(event_store), clock=clock
        )
        assert guard.schedule_onboarding_jobs("u1", EMAIL) == []

    def test_is_new_user(self, guard, clock):
        assert guard.is_new_user(clock.now() - timedelta(seconds=4)) is True
        assert guard.is_new_user(clock.now() - timedelta(seconds=6)) is False
        assert guard.is_new_user(None) is False
