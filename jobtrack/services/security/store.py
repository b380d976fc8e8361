"""
Append-only, bounded history of authentication events.

Events are grouped per subject: ``user:<id>`` when the event carries a user
id, ``email:<address>`` for pre-authentication events that only know the
email, and a single global bucket otherwise. Each subject keeps events from
the last ``max_age`` and at most ``max_events_per_subject`` of them; older
entries are dropped, never archived.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Optional

from jobtrack.core.clock import Clock, SystemClock
from jobtrack.core.config import settings
from jobtrack.monitoring.metrics import (
    SECURITY_EVENT_LOG_FAILURES_TOTAL,
    SECURITY_EVENTS_TOTAL,
)
from jobtrack.utils.error_handler import (
    ErrorCategory,
    ErrorReporter,
    ErrorSeverity,
    report_error,
)
from jobtrack.utils.logger import get_logger, mask_email

from .events import Scalar, SecurityEvent, SecurityEventType

logger = get_logger(__name__)

GLOBAL_SUBJECT = "global"


@dataclass(frozen=True)
class RetentionPolicy:
    """Both bounds apply; whichever drops an event first wins."""

    max_age: timedelta = timedelta(hours=24)
    max_events_per_subject: int = 100

    def __post_init__(self) -> None:
        if self.max_age <= timedelta(0):
            raise ValueError("max_age must be positive")
        if self.max_events_per_subject <= 0:
            raise ValueError("max_events_per_subject must be positive")

    @classmethod
    def from_settings(cls) -> "RetentionPolicy":
        return cls(
            max_age=timedelta(seconds=settings.SECURITY_EVENT_RETENTION_SECONDS),
            max_events_per_subject=settings.SECURITY_EVENT_MAX_PER_SUBJECT,
        )


def subject_for(user_id: Optional[str], email: Optional[str] = None) -> str:
    if user_id:
        return f"user:{user_id}"
    if email:
        return f"email:{email.strip().lower()}"
    return GLOBAL_SUBJECT


class SecurityEventStore:
    """
    In-memory security event log.

    All operations are synchronous and guarded by one lock; none of them
    perform I/O.
    """

    def __init__(
        self,
        retention: Optional[RetentionPolicy] = None,
        clock: Optional[Clock] = None,
        error_reporter: Optional[ErrorReporter] = None,
    ):
        self.retention = retention or RetentionPolicy.from_settings()
        self.clock = clock or SystemClock()
        self.error_reporter = error_reporter
        self._lock = threading.Lock()
        self._history: Dict[str, Deque[SecurityEvent]] = {}

    def log(self, event: SecurityEvent) -> bool:
        """
        Append ``event`` to its subject's history.

        Never raises. Returns False when the event could not be recorded;
        the failure has already been reported by then.
        """
        try:
            subject = subject_for(event.user_id, event.email)
            with self._lock:
                history = self._history.get(subject)
                if history is None:
                    history = deque(maxlen=self.retention.max_events_per_subject)
                    self._history[subject] = history
                history.append(event)
                self._evict(subject, self.clock.now())

            SECURITY_EVENTS_TOTAL.labels(type=event.type.value).inc()
            logger.debug(
                "security_event_logged",
                event_type=event.type.value,
                subject=subject.split(":", 1)[0],
                success=event.success,
            )
            return True
        except Exception as e:
            SECURITY_EVENT_LOG_FAILURES_TOTAL.inc()
            report_error(
                self.error_reporter,
                e,
                severity=ErrorSeverity.MEDIUM,
                category=ErrorCategory.SECURITY_LOG,
                event_type=getattr(getattr(event, "type", None), "value", None),
            )
            return False

    def record(
        self,
        event_type: SecurityEventType,
        *,
        success: bool,
        user_id: Optional[str] = None,
        **metadata: Scalar,
    ) -> bool:
        """Build an event stamped with the store's clock and log it."""
        try:
            event = SecurityEvent(
                type=event_type,
                timestamp=self.clock.now(),
                success=success,
                user_id=user_id,
                metadata=metadata,
            )
        except Exception as e:
            SECURITY_EVENT_LOG_FAILURES_TOTAL.inc()
            report_error(
                self.error_reporter,
                e,
                severity=ErrorSeverity.MEDIUM,
                category=ErrorCategory.SECURITY_LOG,
                event_type=str(event_type),
                email=mask_email(metadata.get("email")),  # type: ignore[arg-type]
            )
            return False
        return self.log(event)

    def recent_events(
        self,
        user_id: Optional[str],
        email: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[SecurityEvent]:
        """
        Events for the user, merged with pre-authentication events logged
        against their email, oldest first.
        """
        now = self.clock.now()
        cutoff = now - self.retention.max_age
        if since is not None and since > cutoff:
            cutoff = since

        subjects = set()
        if user_id:
            subjects.add(subject_for(user_id))
        if email:
            subjects.add(subject_for(None, email))
        if not subjects:
            subjects.add(GLOBAL_SUBJECT)

        with self._lock:
            events = [
                event
                for subject in subjects
                for event in self._history.get(subject, ())
                if event.timestamp >= cutoff
            ]

        events.sort(key=lambda e: e.timestamp)
        return events

    def prune(self, older_than: datetime) -> int:
        """Drop every event older than ``older_than``; returns how many."""
        removed = 0
        with self._lock:
            for subject in list(self._history):
                history = self._history[subject]
                kept = [e for e in history if e.timestamp >= older_than]
                removed += len(history) - len(kept)
                if kept:
                    self._history[subject] = deque(kept, maxlen=history.maxlen)
                else:
                    del self._history[subject]
        if removed:
            logger.info("security_events_pruned", count=removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._history.clear()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            by_type: Dict[str, int] = {}
            for history in self._history.values():
                for event in history:
                    by_type[event.type.value] = by_type.get(event.type.value, 0) + 1
            return {
                "subjects": len(self._history),
                "events": sum(by_type.values()),
                "by_type": by_type,
            }

    def __len__(self) -> int:
        with self._lock:
            return sum(len(history) for history in self._history.values())

    def _evict(self, subject: str, now: datetime) -> None:
        history = self._history[subject]
        cutoff = now - self.retention.max_age
        if any(e.timestamp < cutoff for e in history):
            self._history[subject] = deque(
                (e for e in history if e.timestamp >= cutoff), maxlen=history.maxlen
            )
