"""
Error handling for the auth guard core.

Provides the exception base class, error categorization, and the
observability sink used wherever a failure must be reported but never
propagated into the authentication flow.
"""

import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import sentry_sdk

from jobtrack.core.config import settings
from jobtrack.utils.logger import get_logger

logger = get_logger(__name__)


class ErrorSeverity(str, Enum):
    """Error severity levels for categorization and alerting"""

    LOW = "low"  # Minor issues, logging only
    MEDIUM = "medium"  # Important issues, monitoring alerts
    HIGH = "high"  # Critical issues, immediate attention
    CRITICAL = "critical"  # System-threatening issues, emergency response


class ErrorCategory(str, Enum):
    """Error categories for systematic handling"""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    STORAGE = "storage"
    DISPATCH = "dispatch"
    SECURITY_LOG = "security_log"
    SYSTEM = "system"


class ErrorContext:
    """Container for error context information"""

    def __init__(
        self,
        error: BaseException,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        technical_details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ):
        self.error = error
        self.severity = severity
        self.category = category
        self.technical_details = technical_details or {}
        self.timestamp = timestamp or datetime.now(timezone.utc)
        self.error_id = f"err_{int(self.timestamp.timestamp())}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error context to dictionary for logging/serialization"""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "error_type": type(self.error).__name__,
            "error_message": str(self.error),
            "severity": self.severity.value,
            "category": self.category.value,
            "technical_details": self.technical_details,
            "traceback": "".join(
                traceback.format_exception(
                    type(self.error), self.error, self.error.__traceback__
                )
            )
            if self.severity in [ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]
            else None,
        }


class JobTrackError(Exception):
    """Base exception for the auth guard core"""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        technical_details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.severity = severity
        self.category = category
        self.technical_details = technical_details or {}


class ErrorReporter(Protocol):
    """Observability sink for failures that must not propagate."""

    def report(self, context: ErrorContext) -> None:
        ...


class SentryErrorReporter:
    """
    Reports errors as structured log lines and, when a DSN is configured,
    to Sentry.
    """

    def __init__(self, dsn: Optional[str] = None) -> None:
        self.dsn = dsn if dsn is not None else settings.SENTRY_DSN

    def report(self, context: ErrorContext) -> None:
        logger.error("error_reported", **context.to_dict())
        if not self.dsn:
            return
        try:
            sentry_sdk.capture_exception(
                context.error,
                tags={
                    "category": context.category.value,
                    "severity": context.severity.value,
                },
                extras=context.technical_details,
            )
        except Exception as e:  # noqa: BLE001
            logger.error("sentry_capture_failed", error=str(e))


def report_error(
    reporter: Optional[ErrorReporter],
    error: BaseException,
    *,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    category: ErrorCategory = ErrorCategory.SYSTEM,
    **details: Any,
) -> ErrorContext:
    """
    Build an ErrorContext and hand it to ``reporter``.

    A failing reporter is logged and otherwise ignored.
    """
    if isinstance(error, JobTrackError):
        severity = error.severity
        category = error.category
        details = {**error.technical_details, **details}

    context = ErrorContext(
        error, severity=severity, category=category, technical_details=details
    )
    sink = reporter or SentryErrorReporter()
    try:
        sink.report(context)
    except Exception as e:  # noqa: BLE001
        logger.error(
            "error_reporter_failed",
            reporter=type(sink).__name__,
            error=str(e),
            original_error=str(error),
        )
    return context
