from __future__ import annotations

from prometheus_client import Counter, Gauge

RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "rate_limit_decisions_total",
    "Rate limit checks by key prefix and outcome",
    ["prefix", "outcome"],
)

SECURITY_EVENTS_TOTAL = Counter(
    "security_events_total", "Security events recorded", ["type"]
)

SECURITY_EVENT_LOG_FAILURES_TOTAL = Counter(
    "security_event_log_failures_total",
    "Security events that could not be recorded",
)

SUSPICIOUS_ACTIVITY_TOTAL = Counter(
    "suspicious_activity_total", "Sign-ins flagged as suspicious", ["rule"]
)

JOB_DISPATCH_TOTAL = Counter(
    "scheduled_job_dispatch_total",
    "Scheduled job dispatches by job type and outcome",
    ["job_type", "outcome"],
)

JOBS_FAILED_TOTAL = Counter(
    "scheduled_jobs_failed_total",
    "Jobs deactivated after exhausting their retries",
    ["job_type"],
)

JOBS_IN_FLIGHT = Gauge(
    "scheduled_jobs_in_flight", "Dispatches currently awaiting the executor"
)


def key_prefix(key: str) -> str:
    """Label rate-limit keys by their prefix so emails never become labels."""
    return key.split(":", 1)[0] if ":" in key else "other"
