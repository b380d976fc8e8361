"""
Decision logic that sits in front of and alongside the identity provider.

The sign-in and sign-up flows call the guard before each credentialed action
and report outcomes back to it. Nothing here may turn a logging or
scheduling failure into an authentication failure: only a rate-limit denial
stops the caller.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from jobtrack.core.clock import Clock, SystemClock, ensure_utc
from jobtrack.services.rate_limiting import (
    RateLimiter,
    RateLimitPreset,
    RateLimitResult,
)
from jobtrack.services.scheduling import JobScheduler, ScheduledJob
from jobtrack.services.scheduling.presets import (
    application_reminder_spec,
    weekly_digest_spec,
)
from jobtrack.services.security import (
    AnomalyDetector,
    SecurityEventStore,
    SecurityEventType,
    SuspiciousActivityResult,
)
from jobtrack.utils.error_handler import (
    ErrorCategory,
    ErrorReporter,
    ErrorSeverity,
    report_error,
)
from jobtrack.utils.logger import get_logger, mask_email

logger = get_logger(__name__)

NEW_USER_WINDOW = timedelta(seconds=5)
FIRST_REMINDER_DELAY = timedelta(hours=24)


@dataclass(frozen=True)
class AuthDecision:
    """Whether a credentialed action may proceed, and what to tell the user"""

    allowed: bool
    result: RateLimitResult
    wait_minutes: int = 0
    message: Optional[str] = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def security_alert(result: SuspiciousActivityResult) -> Optional[str]:
    """Warning text for a flagged sign-in, or None."""
    if not result.suspicious:
        return None
    return f"Security Alert: {result.reason} {result.recommendation}".strip()


class AuthGuard:
    """Rate limiting, security event logging and onboarding job setup"""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        event_store: SecurityEventStore,
        detector: AnomalyDetector,
        scheduler: Optional[JobScheduler] = None,
        clock: Optional[Clock] = None,
        error_reporter: Optional[ErrorReporter] = None,
    ):
        self.rate_limiter = rate_limiter
        self.event_store = event_store
        self.detector = detector
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self.error_reporter = error_reporter

    # Before the action

    def guard_password_sign_in(self, email: str) -> AuthDecision:
        email = normalize_email(email)
        decision = self._decide(
            self.rate_limiter.check_preset(RateLimitPreset.LOGIN, email), "login"
        )
        if not decision.allowed:
            self.event_store.record(
                SecurityEventType.LOGIN_FAILURE,
                success=False,
                email=email,
                provider="password",
                reason="rate_limited",
            )
        return decision

    def guard_sign_up(self, email: str) -> AuthDecision:
        email = normalize_email(email)
        return self._decide(
            self.rate_limiter.check_preset(RateLimitPreset.SIGNUP, email), "signup"
        )

    def guard_oauth(self, provider: str, host: str) -> AuthDecision:
        return self._decide(
            self.rate_limiter.check_preset(RateLimitPreset.OAUTH, provider, host),
            "login",
        )

    def _decide(self, result: RateLimitResult, action: str) -> AuthDecision:
        if result.allowed:
            return AuthDecision(allowed=True, result=result)

        wait_minutes = result.retry_after_minutes(self.clock.now())
        return AuthDecision(
            allowed=False,
            result=result,
            wait_minutes=wait_minutes,
            message=f"Too many {action} attempts. Try again in {wait_minutes} minutes.",
        )

    # After the action

    def record_sign_in_failure(
        self,
        provider: str,
        error: str,
        email: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        self.event_store.record(
            SecurityEventType.LOGIN_FAILURE,
            success=False,
            email=normalize_email(email) if email else None,
            provider=provider,
            error=error,
            ip_address=ip_address,
        )

    def record_sign_up_failure(self, email: str, error: str) -> None:
        self.event_store.record(
            SecurityEventType.LOGIN_ATTEMPT,
            success=False,
            email=normalize_email(email),
            type="signup",
            error=error,
        )

    def record_sign_out(self, user_id: Optional[str] = None) -> None:
        self.event_store.record(
            SecurityEventType.LOGIN_ATTEMPT,
            success=False,
            user_id=user_id,
            reason="signed_out",
        )

    def record_sign_in_success(
        self,
        user_id: str,
        email: Optional[str] = None,
        provider: str = "password",
        created_at: Optional[datetime] = None,
        new_user: Optional[bool] = None,
        ip_address: Optional[str] = None,
    ) -> SuspiciousActivityResult:
        """
        Log the sign-in, evaluate it, and set up onboarding jobs for a
        first-time user. A user created within the last five seconds counts
        as new unless ``new_user`` says otherwise.
        """
        email = normalize_email(email) if email else None
        self.event_store.record(
            SecurityEventType.LOGIN_SUCCESS,
            success=True,
            user_id=user_id,
            email=email,
            provider=provider,
            ip_address=ip_address,
        )

        result = self._evaluate(user_id, email)
        if result.suspicious:
            self.event_store.record(
                SecurityEventType.SUSPICIOUS_ACTIVITY,
                success=False,
                user_id=user_id,
                rule=result.rule,
                reason=result.reason,
            )

        if new_user is None:
            new_user = self.is_new_user(created_at)
        if new_user and email:
            self.schedule_onboarding_jobs(user_id, email)

        return result

    def is_new_user(self, created_at: Optional[datetime]) -> bool:
        if created_at is None:
            return False
        return ensure_utc(created_at) > self.clock.now() - NEW_USER_WINDOW

    def schedule_onboarding_jobs(self, user_id: str, email: str) -> List[ScheduledJob]:
        """Weekly digest from next Sunday and Monday follow-up reminders from
        tomorrow."""
        if self.scheduler is None:
            return []

        now = self.clock.now()
        specs = [
            weekly_digest_spec(user_id, email, now, self.scheduler.tz),
            application_reminder_spec(user_id, email, now + FIRST_REMINDER_DELAY),
        ]
        jobs = []
        for spec in specs:
            try:
                jobs.append(self.scheduler.schedule(spec))
            except Exception as e:
                report_error(
                    self.error_reporter,
                    e,
                    severity=ErrorSeverity.MEDIUM,
                    category=ErrorCategory.DISPATCH,
                    operation="schedule_onboarding_job",
                    job_type=spec.job_type,
                    user_id=user_id,
                )
        logger.info(
            "onboarding_jobs_scheduled",
            user_id=user_id,
            email=mask_email(email),
            count=len(jobs),
        )
        return jobs

    def _evaluate(self, user_id: str, email: Optional[str]) -> SuspiciousActivityResult:
        try:
            return self.detector.check_suspicious_activity(user_id, email)
        except Exception as e:
            report_error(
                self.error_reporter,
                e,
                severity=ErrorSeverity.MEDIUM,
                category=ErrorCategory.SECURITY_LOG,
                operation="check_suspicious_activity",
                user_id=user_id,
            )
            return SuspiciousActivityResult(
                suspicious=False, reason="Suspicious activity check unavailable."
            )
