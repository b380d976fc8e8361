"""
Security event history and suspicious sign-in detection.
"""

from .anomaly import AnomalyDetector, DetectorConfig, SuspiciousActivityResult
from .events import SecurityEvent, SecurityEventType
from .store import RetentionPolicy, SecurityEventStore

__all__ = [
    "AnomalyDetector",
    "DetectorConfig",
    "SuspiciousActivityResult",
    "SecurityEvent",
    "SecurityEventType",
    "RetentionPolicy",
    "SecurityEventStore",
]
