"""
Persisted fixed-window rate limit state.

One row per key. Rows are overwritten, never merged, when their window
expires.
"""

from typing import Any, Dict

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from jobtrack.db.base_class import Base


class RateLimitWindow(Base):
    __tablename__ = "rate_limits"

    key = Column(String(512), primary_key=True)
    window_start = Column(DateTime(timezone=True), nullable=False)
    count = Column(Integer, nullable=False, default=0)
    window_ms = Column(Integer, nullable=False)
    limit = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("count >= 0", name="ck_rate_limits_count_non_negative"),
        CheckConstraint("window_ms > 0", name="ck_rate_limits_window_positive"),
        CheckConstraint('"limit" > 0', name="ck_rate_limits_limit_positive"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "window_start": self.window_start.isoformat(),
            "count": self.count,
            "window_ms": self.window_ms,
            "limit": self.limit,
        }
