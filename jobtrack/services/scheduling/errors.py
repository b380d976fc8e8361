from typing import Any, Dict, Optional

from jobtrack.utils.error_handler import ErrorCategory, ErrorSeverity, JobTrackError


class InvalidJobSpecError(JobTrackError, ValueError):
    """Raised synchronously by ``schedule`` for a malformed job or recurrence"""

    def __init__(self, message: str, errors: Optional[Any] = None):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            technical_details={"errors": errors} if errors else None,
        )
        self.errors = errors


class SchedulingRepositoryError(JobTrackError):
    """Raised when job storage cannot be read or written"""

    def __init__(self, message: str, technical_details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            technical_details=technical_details,
        )


class JobNotFoundError(SchedulingRepositoryError, KeyError):
    def __init__(self, job_id: str):
        super().__init__(f"Scheduled job not found: {job_id}", {"job_id": job_id})
        self.job_id = job_id

    def __str__(self) -> str:
        return self.args[0]
