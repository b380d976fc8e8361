"""
Tests for the error reporting system.

This module tests:
- Error context construction and serialization
- Severity and category inheritance from JobTrackError
- Sentry reporting and reporter failure isolation
"""

from datetime import datetime, timezone
from unittest.mock import Mock, patch

from jobtrack.utils.error_handler import (
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    JobTrackError,
    SentryErrorReporter,
    report_error,
)
from jobtrack.utils.logger import add_job_context, mask_email


class TestErrorContext:
    """Test cases for ErrorContext class"""

    def test_error_context_creation(self):
        """Test basic error context creation"""
        error = ValueError("Test error")
        context = ErrorContext(
            error=error,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.VALIDATION,
            technical_details={"job_id": "job-1"},
        )

        assert context.error == error
        assert context.severity == ErrorSeverity.HIGH
        assert context.category == ErrorCategory.VALIDATION
        assert context.error_id.startswith("err_")
        assert isinstance(context.timestamp, datetime)

    def test_error_context_serialization(self):
        """Test error context serialization to dict"""
        context = ErrorContext(
            error=ValueError("Test error"),
            severity=ErrorSeverity.LOW,
            timestamp=datetime(2024, 1, 3, tzinfo=timezone.utc),
        )

        data = context.to_dict()

        assert data["error_type"] == "ValueError"
        assert data["error_message"] == "Test error"
        assert data["severity"] == "low"
        assert data["category"] == "system"
        assert data["timestamp"] == "2024-01-03T00:00:00+00:00"
        assert data["traceback"] is None

    def test_traceback_included_for_high_severity(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            context = ErrorContext(error=e, severity=ErrorSeverity.HIGH)

        assert "RuntimeError: boom" in context.to_dict()["traceback"]


class TestReportError:
    """Test cases for report_error"""

    def test_plain_exception_uses_given_classification(self):
        reporter = Mock()

        context = report_error(
            reporter,
            ValueError("bad"),
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            operation="select_due_jobs",
        )

        reporter.report.assert_called_once_with(context)
        assert context.category == ErrorCategory.STORAGE
        assert context.technical_details == {"operation": "select_due_jobs"}

    def test_jobtrack_error_carries_its_classification(self):
        error = JobTrackError(
            "dispatch failed",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.DISPATCH,
            technical_details={"job_id": "job-1"},
        )

        context = report_error(Mock(), error, operation="retry")

        assert context.severity == ErrorSeverity.HIGH
        assert context.category == ErrorCategory.DISPATCH
        assert context.technical_details == {"job_id": "job-1", "operation": "retry"}

    def test_reporter_failure_is_swallowed(self):
        reporter = Mock()
        reporter.report.side_effect = RuntimeError("sink down")

        context = report_error(reporter, ValueError("original"))

        assert str(context.error) == "original"


class TestSentryErrorReporter:
    @patch("jobtrack.utils.error_handler.sentry_sdk")
    def test_without_dsn_only_logs(self, mock_sentry):
        SentryErrorReporter(dsn="").report(ErrorContext(ValueError("x")))
        mock_sentry.capture_exception.assert_not_called()

    @patch("jobtrack.utils.error_handler.sentry_sdk")
    def test_with_dsn_captures(self, mock_sentry):
        error = ValueError("x")
        SentryErrorReporter(dsn="https://key@sentry.example.com/1").report(
            ErrorContext(error, category=ErrorCategory.SECURITY_LOG)
        )

        mock_sentry.capture_exception.assert_called_once()
        assert mock_sentry.capture_exception.call_args[0][0] is error
        tags = mock_sentry.capture_exception.call_args[1]["tags"]
        assert tags["category"] == "security_log"

    @patch("jobtrack.utils.error_handler.sentry_sdk")
    def test_capture_failure_is_swallowed(self, mock_sentry):
        mock_sentry.capture_exception.side_effect = RuntimeError("network")
        SentryErrorReporter(dsn="https://key@sentry.example.com/1").report(
            ErrorContext(ValueError("x"))
        )


class TestLogContext:
    def test_mask_email(self):
        assert mask_email("owner@example.com") == "o***@example.com"
        assert mask_email(None) is None
        assert mask_email("not-an-email") == "not-an-email"

    def test_add_job_context(self):
        assert add_job_context("job-1", "cleanup") == {
            "job_id": "job-1",
            "job_type": "cleanup",
        }
        assert add_job_context("job-1") == {"job_id": "job-1"}
