"""
Scheduling policies.
"""

from .retry import RetryDecision, RetryPolicy

__all__ = ["RetryPolicy", "RetryDecision"]
