"""
Fixed-window rate limiter for credentialed actions.

Each key owns one counter that opens on the first request and closes
``window_ms`` later. Requests straddling a boundary can see up to twice
``max_requests`` in a short burst; that is the price of O(1) state per key.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from jobtrack.core.clock import Clock, SystemClock
from jobtrack.monitoring.metrics import RATE_LIMIT_DECISIONS_TOTAL, key_prefix
from jobtrack.utils.error_handler import (
    ErrorCategory,
    ErrorReporter,
    ErrorSeverity,
    report_error,
)
from jobtrack.utils.logger import get_logger

from .presets import (
    DEFAULT_RATE_LIMIT,
    RATE_LIMIT_PRESETS,
    RateLimitConfig,
    RateLimitPreset,
    preset_key,
)
from .store import InMemoryRateLimitStore, RateLimitStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check"""

    allowed: bool
    remaining: int
    reset_at: datetime

    def retry_after_minutes(self, now: datetime) -> int:
        """Whole minutes until the window resets, rounded up."""
        seconds = (self.reset_at - now).total_seconds()
        return max(0, math.ceil(seconds / 60))


class RateLimiter:
    """
    Fixed-window request counter keyed by arbitrary strings.

    Each request is counted by one atomic ``store.hit``, so concurrent
    callers can never collectively exceed ``max_requests`` in one window,
    including limiters in other processes sharing a persisted store.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock: Optional[Clock] = None,
        error_reporter: Optional[ErrorReporter] = None,
    ):
        self.store = store or InMemoryRateLimitStore()
        self.clock = clock or SystemClock()
        self.error_reporter = error_reporter
        self._lock = threading.Lock()

    def check(
        self, key: str, config: RateLimitConfig = DEFAULT_RATE_LIMIT
    ) -> RateLimitResult:
        """
        Count one request against ``key`` and decide whether it may proceed.

        A missing record counts as zero prior requests. Store failures are
        reported and the request is allowed.
        """
        try:
            with self._lock:
                record = self.store.hit(
                    key, self.clock.now(), config.window_ms, config.max_requests
                )
        except Exception as e:
            report_error(
                self.error_reporter,
                e,
                severity=ErrorSeverity.HIGH,
                category=ErrorCategory.STORAGE,
                operation="rate_limit_check",
                key_prefix=key_prefix(key),
            )
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests,
                reset_at=self.clock.now() + config.window,
            )

        allowed = record.count <= config.max_requests
        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, config.max_requests - record.count),
            reset_at=record.window_start + config.window,
        )

        RATE_LIMIT_DECISIONS_TOTAL.labels(
            prefix=key_prefix(key), outcome="allowed" if allowed else "denied"
        ).inc()
        if not allowed:
            logger.warning(
                "rate_limit_exceeded",
                key_prefix=key_prefix(key),
                count=record.count,
                max_requests=config.max_requests,
                reset_at=result.reset_at.isoformat(),
            )
        return result

    def check_preset(self, preset: RateLimitPreset, *identifier: str) -> RateLimitResult:
        """Check ``<preset>:<identifier...>`` with the preset's configuration."""
        preset = RateLimitPreset(preset)
        return self.check(preset_key(preset, *identifier), RATE_LIMIT_PRESETS[preset])

    def peek(
        self, key: str, config: RateLimitConfig = DEFAULT_RATE_LIMIT
    ) -> RateLimitResult:
        """Report the state of ``key`` without counting a request."""
        with self._lock:
            now = self.clock.now()
            record = self.store.get(key)

        if record is None or record.is_expired(now, config.window_ms):
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests,
                reset_at=now + config.window,
            )

        return RateLimitResult(
            allowed=record.count < config.max_requests,
            remaining=max(0, config.max_requests - record.count),
            reset_at=record.window_start + config.window,
        )

    def reset(self, key: str) -> bool:
        """Forget the counter for ``key``."""
        with self._lock:
            removed = self.store.delete(key)
        if removed:
            logger.info("rate_limit_reset", key_prefix=key_prefix(key))
        return removed

    def purge_expired(self) -> int:
        """Delete records whose window has closed; returns how many."""
        purged = 0
        with self._lock:
            now = self.clock.now()
            for key in self.store.keys():
                record = self.store.get(key)
                if record is not None and record.is_expired(now):
                    self.store.delete(key)
                    purged += 1
        if purged:
            logger.info("rate_limit_windows_purged", count=purged)
        return purged
