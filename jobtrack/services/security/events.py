from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

Scalar = Union[str, int, float, bool, None]


class SecurityEventType(str, Enum):
    """Authentication-related events worth remembering"""

    LOGIN_ATTEMPT = "login_attempt"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    PASSWORD_RESET = "password_reset"
    TWO_FACTOR_SETUP = "two_factor_setup"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


@dataclass(frozen=True)
class SecurityEvent:
    """
    A single immutable authentication event.

    Conventional metadata keys: ``email``, ``provider``, ``ip_address``,
    ``user_agent``, ``reason`` and ``error``. Values must be scalars.
    """

    type: SecurityEventType
    timestamp: datetime
    success: bool
    user_id: Optional[str] = None
    metadata: Mapping[str, Scalar] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", SecurityEventType(self.type))
        for key, value in self.metadata.items():
            if not isinstance(value, (str, int, float, bool, type(None))):
                raise TypeError(
                    f"Metadata value for '{key}' must be a scalar, "
                    f"got {type(value).__name__}"
                )
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def email(self) -> Optional[str]:
        email = self.metadata.get("email")
        return str(email).strip().lower() if email else None

    @property
    def provider(self) -> Optional[str]:
        provider = self.metadata.get("provider")
        return str(provider) if provider else None

    @property
    def ip_address(self) -> Optional[str]:
        ip = self.metadata.get("ip_address")
        return str(ip) if ip else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "user_id": self.user_id,
            "success": self.success,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp.isoformat(),
        }
