"""
Named rate limit configurations for credentialed actions.

``DEFAULT_RATE_LIMIT`` is the explicit shared default used for OAuth
attempts and for any check that does not pass its own configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Dict

from jobtrack.core.config import settings


@dataclass(frozen=True)
class RateLimitConfig:
    """Fixed window size and the number of requests allowed inside it."""

    window_ms: int
    max_requests: int

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if self.max_requests <= 0:
            raise ValueError("max_requests must be positive")

    @property
    def window(self) -> timedelta:
        return timedelta(milliseconds=self.window_ms)

    @classmethod
    def of(cls, *, max_requests: int, **window: float) -> "RateLimitConfig":
        """Build from timedelta keywords, e.g. ``of(minutes=15, max_requests=5)``."""
        ms = int(timedelta(**window).total_seconds() * 1000)
        return cls(window_ms=ms, max_requests=max_requests)


DEFAULT_RATE_LIMIT = RateLimitConfig(
    window_ms=settings.RATE_LIMIT_DEFAULT_WINDOW_SECONDS * 1000,
    max_requests=settings.RATE_LIMIT_DEFAULT_MAX_REQUESTS,
)


class RateLimitPreset(str, Enum):
    """Call sites with a recognized configuration"""

    OAUTH = "oauth"
    LOGIN = "login"
    SIGNUP = "signup"
    PASSWORD_RESET = "password_reset"
    TWO_FACTOR_SETUP = "two_factor_setup"
    FILE_UPLOAD = "file_upload"
    APPLICATION_SUBMIT = "application_submit"


RATE_LIMIT_PRESETS: Dict[RateLimitPreset, RateLimitConfig] = {
    RateLimitPreset.OAUTH: DEFAULT_RATE_LIMIT,
    RateLimitPreset.LOGIN: RateLimitConfig.of(minutes=15, max_requests=5),
    RateLimitPreset.SIGNUP: RateLimitConfig.of(minutes=60, max_requests=3),
    RateLimitPreset.PASSWORD_RESET: RateLimitConfig.of(minutes=60, max_requests=3),
    RateLimitPreset.TWO_FACTOR_SETUP: RateLimitConfig.of(minutes=30, max_requests=3),
    RateLimitPreset.FILE_UPLOAD: RateLimitConfig.of(minutes=1, max_requests=10),
    RateLimitPreset.APPLICATION_SUBMIT: RateLimitConfig.of(minutes=5, max_requests=20),
}


def preset_key(preset: RateLimitPreset, *parts: str) -> str:
    """``login:<email>``, ``oauth:google:<host>`` and so on."""
    return ":".join([RateLimitPreset(preset).value, *parts])
