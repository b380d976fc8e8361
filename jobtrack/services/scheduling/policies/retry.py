"""
Retry policy for failed dispatches.

A failed dispatch leaves the job due at the same ``scheduled_for`` so the
next tick retries it. After ``max_retries`` retries have also failed the job
is deactivated and reported.
"""

from dataclasses import dataclass
from enum import Enum

from jobtrack.utils.logger import get_logger

logger = get_logger(__name__)


class RetryDecision(str, Enum):
    """What to do with a job after a failed dispatch"""

    RETRY = "retry"  # Leave due; the next tick tries again
    GIVE_UP = "give_up"  # Deactivate and mark failed


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry on the next tick.

    ``max_retries=3`` allows one initial attempt plus three retries.
    """

    max_retries: int = 3

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def on_failure(self, retry_count: int) -> RetryDecision:
        """
        Decide after a failure. ``retry_count`` already includes the failure
        being handled.
        """
        if retry_count > self.max_retries:
            logger.info(
                "max_retries_exceeded",
                retry_count=retry_count,
                max_retries=self.max_retries,
            )
            return RetryDecision.GIVE_UP
        return RetryDecision.RETRY

    def remaining(self, retry_count: int) -> int:
        return max(0, self.max_retries - retry_count)
