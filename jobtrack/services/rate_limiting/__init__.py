"""
Fixed-window rate limiting for sign-in, sign-up and OAuth attempts.
"""

from .limiter import RateLimiter, RateLimitResult
from .presets import (
    DEFAULT_RATE_LIMIT,
    RATE_LIMIT_PRESETS,
    RateLimitConfig,
    RateLimitPreset,
    preset_key,
)
from .store import (
    InMemoryRateLimitStore,
    RateLimitRecord,
    RateLimitStore,
    RateLimitStoreError,
    SqlAlchemyRateLimitStore,
)

__all__ = [
    "RateLimiter",
    "RateLimitResult",
    "RateLimitConfig",
    "RateLimitPreset",
    "DEFAULT_RATE_LIMIT",
    "RATE_LIMIT_PRESETS",
    "preset_key",
    "RateLimitRecord",
    "RateLimitStore",
    "RateLimitStoreError",
    "InMemoryRateLimitStore",
    "SqlAlchemyRateLimitStore",
]
