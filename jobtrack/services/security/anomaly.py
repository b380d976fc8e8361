"""
Rule-based suspicious sign-in detection.

Rules run in a fixed order over the user's recent event history and the
first one that matches decides the result. A rule whose inputs are missing
from the history (no provider, no IP address) is skipped, never flagged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Optional

from jobtrack.core.config import settings
from jobtrack.monitoring.metrics import SUSPICIOUS_ACTIVITY_TOTAL
from jobtrack.utils.logger import get_logger

from .events import SecurityEvent, SecurityEventType
from .store import SecurityEventStore

logger = get_logger(__name__)

NOT_SUSPICIOUS_REASON = "No suspicious activity detected."
NO_SIGN_IN_REASON = "No recent sign-in to evaluate."


@dataclass(frozen=True)
class DetectorConfig:
    failure_threshold: int = 3
    failure_window: timedelta = timedelta(minutes=15)
    daily_failure_limit: int = 10
    distinct_ip_limit: int = 5

    @classmethod
    def from_settings(cls) -> "DetectorConfig":
        return cls(
            failure_threshold=settings.SUSPICIOUS_FAILURE_THRESHOLD,
            failure_window=timedelta(
                seconds=settings.SUSPICIOUS_FAILURE_WINDOW_SECONDS
            ),
            daily_failure_limit=settings.SUSPICIOUS_DAILY_FAILURE_LIMIT,
            distinct_ip_limit=settings.SUSPICIOUS_DISTINCT_IP_LIMIT,
        )


@dataclass(frozen=True)
class SuspiciousActivityResult:
    """Shown verbatim to the user when ``suspicious`` is set."""

    suspicious: bool
    reason: str
    recommendation: str = ""
    rule: Optional[str] = None


@dataclass(frozen=True)
class _Evaluation:
    success: SecurityEvent
    recent_failures: List[SecurityEvent]
    all_failures: List[SecurityEvent]


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


def _hours(delta: timedelta) -> int:
    return int(delta.total_seconds() // 3600)


class AnomalyDetector:
    """Evaluates a successful sign-in against the recent event history."""

    def __init__(
        self,
        event_store: SecurityEventStore,
        config: Optional[DetectorConfig] = None,
    ):
        self.event_store = event_store
        self.config = config or DetectorConfig.from_settings()
        self._rules: List[Callable[[_Evaluation], Optional[SuspiciousActivityResult]]] = [
            self._repeated_failures,
            self._context_switch,
            self._daily_failures,
            self._distinct_ips,
        ]

    def check_suspicious_activity(
        self, user_id: str, email: Optional[str] = None
    ) -> SuspiciousActivityResult:
        """
        Check the user's most recent successful sign-in.

        Failures logged before authentication are keyed by email, so pass
        the email used to sign in to have them considered.
        """
        events = self.event_store.recent_events(user_id, email)

        successes = [
            e
            for e in events
            if e.type == SecurityEventType.LOGIN_SUCCESS and e.user_id == user_id
        ]
        if not successes:
            return SuspiciousActivityResult(suspicious=False, reason=NO_SIGN_IN_REASON)

        success = successes[-1]
        all_failures = [
            e
            for e in events
            if e.type == SecurityEventType.LOGIN_FAILURE
            and e.timestamp <= success.timestamp
        ]
        window_start = success.timestamp - self.config.failure_window
        evaluation = _Evaluation(
            success=success,
            recent_failures=[e for e in all_failures if e.timestamp >= window_start],
            all_failures=all_failures,
        )

        for rule in self._rules:
            result = rule(evaluation)
            if result is not None:
                SUSPICIOUS_ACTIVITY_TOTAL.labels(rule=result.rule).inc()
                logger.warning(
                    "suspicious_sign_in_detected",
                    user_id=user_id,
                    rule=result.rule,
                    failures=len(evaluation.recent_failures),
                )
                return result

        return SuspiciousActivityResult(suspicious=False, reason=NOT_SUSPICIOUS_REASON)

    def _repeated_failures(
        self, evaluation: _Evaluation
    ) -> Optional[SuspiciousActivityResult]:
        count = len(evaluation.recent_failures)
        if count < self.config.failure_threshold:
            return None
        return SuspiciousActivityResult(
            suspicious=True,
            reason=(
                f"{count} failed sign-in attempts in the "
                f"{_minutes(self.config.failure_window)} minutes before this sign-in."
            ),
            recommendation=(
                "If this wasn't you, change your password and enable "
                "two-factor authentication."
            ),
            rule="repeated_failures",
        )

    def _context_switch(
        self, evaluation: _Evaluation
    ) -> Optional[SuspiciousActivityResult]:
        provider = evaluation.success.provider
        if not provider:
            return None
        other = sorted(
            {
                e.provider
                for e in evaluation.recent_failures
                if e.provider and e.provider != provider
            }
        )
        if not other:
            return None
        return SuspiciousActivityResult(
            suspicious=True,
            reason=(
                f"Signed in with {provider} shortly after a failed "
                f"{', '.join(other)} sign-in attempt."
            ),
            recommendation=(
                "Review the sign-in methods linked to your account and "
                "remove any you don't recognize."
            ),
            rule="context_switch",
        )

    def _daily_failures(
        self, evaluation: _Evaluation
    ) -> Optional[SuspiciousActivityResult]:
        count = len(evaluation.all_failures)
        if count <= self.config.daily_failure_limit:
            return None
        return SuspiciousActivityResult(
            suspicious=True,
            reason=(
                f"{count} failed sign-in attempts in the last "
                f"{_hours(self.event_store.retention.max_age)} hours."
            ),
            recommendation="Change your password and review recent account activity.",
            rule="daily_failures",
        )

    def _distinct_ips(
        self, evaluation: _Evaluation
    ) -> Optional[SuspiciousActivityResult]:
        addresses = {e.ip_address for e in evaluation.all_failures if e.ip_address}
        if len(addresses) <= self.config.distinct_ip_limit:
            return None
        return SuspiciousActivityResult(
            suspicious=True,
            reason=(
                f"Failed sign-in attempts came from {len(addresses)} "
                "different IP addresses."
            ),
            recommendation=(
                "Change your password and enable two-factor authentication."
            ),
            rule="distinct_ips",
        )
