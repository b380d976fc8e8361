"""
Assembly of the sign-in protection services.

``build_auth_core`` creates one security event store and one rate limiter and
hands the same instances to the auth guard and to the maintenance job
handlers, so the cleanup job prunes exactly the events the guard records.
Security events live in process memory: the scheduler that cleans them up has
to run in the process that records them.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from jobtrack.core.clock import Clock, SystemClock
from jobtrack.services.auth_guard import AuthGuard
from jobtrack.services.rate_limiting import RateLimiter, SqlAlchemyRateLimitStore
from jobtrack.services.scheduling import (
    HandlerExecutor,
    JobExecutor,
    JobScheduler,
    SchedulerConfig,
    SqlAlchemyJobRepository,
)
from jobtrack.services.scheduling.maintenance import (
    ensure_maintenance_jobs,
    register_maintenance_handlers,
)
from jobtrack.services.security import (
    AnomalyDetector,
    RetentionPolicy,
    SecurityEventStore,
)
from jobtrack.utils.error_handler import ErrorReporter
from jobtrack.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AuthCore:
    guard: AuthGuard
    scheduler: JobScheduler
    executor: HandlerExecutor
    event_store: SecurityEventStore
    rate_limiter: RateLimiter


def build_auth_core(
    session_factory: sessionmaker,
    clock: Optional[Clock] = None,
    error_reporter: Optional[ErrorReporter] = None,
    fallback: Optional[JobExecutor] = None,
    retention: Optional[RetentionPolicy] = None,
    config: Optional[SchedulerConfig] = None,
) -> AuthCore:
    """
    Wire the guard, the scheduler and the maintenance jobs around shared state.

    Rate limit windows and jobs are persisted through ``session_factory``.
    Job types without an in-process handler go to ``fallback``.
    """
    clock = clock or SystemClock()
    event_store = SecurityEventStore(
        retention or RetentionPolicy.from_settings(),
        clock=clock,
        error_reporter=error_reporter,
    )
    rate_limiter = RateLimiter(
        SqlAlchemyRateLimitStore(session_factory),
        clock=clock,
        error_reporter=error_reporter,
    )

    executor = HandlerExecutor(fallback=fallback)
    register_maintenance_handlers(executor, event_store, rate_limiter, clock=clock)

    scheduler = JobScheduler(
        executor,
        repository=SqlAlchemyJobRepository(session_factory),
        clock=clock,
        config=config or SchedulerConfig.from_settings(),
        error_reporter=error_reporter,
    )
    ensure_maintenance_jobs(scheduler)

    guard = AuthGuard(
        rate_limiter,
        event_store,
        AnomalyDetector(event_store),
        scheduler=scheduler,
        clock=clock,
        error_reporter=error_reporter,
    )
    logger.info("auth_core_built", job_types=executor.job_types)
    return AuthCore(
        guard=guard,
        scheduler=scheduler,
        executor=executor,
        event_store=event_store,
        rate_limiter=rate_limiter,
    )
