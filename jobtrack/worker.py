"""
Standalone scheduler worker.

Runs the job scheduler's tick loop against the database until SIGINT or
SIGTERM, then drains in-flight dispatches. Maintenance jobs run in-process;
notification jobs are handed to Celery. Security events stay in
process memory, so the cleanup job here only prunes what this process
recorded; a web process runs its own scheduler from ``build_auth_core``.

    python -m jobtrack.worker
"""

import asyncio
import logging
import signal

import sentry_sdk

from jobtrack.core.clock import SystemClock
from jobtrack.core.config import settings
from jobtrack.db.base import Base
from jobtrack.db.session import build_engine, build_session_factory
from jobtrack.services.scheduling import CeleryExecutor, JobScheduler
from jobtrack.services.wiring import AuthCore, build_auth_core
from jobtrack.utils.error_handler import SentryErrorReporter
from jobtrack.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


def build_core() -> AuthCore:
    """Wire the auth services with database storage and the Celery fallback."""
    from jobtrack.core.celery_app import celery_app

    engine = build_engine()
    if engine.url.get_backend_name() == "sqlite":
        Base.metadata.create_all(bind=engine)

    return build_auth_core(
        build_session_factory(engine),
        clock=SystemClock(),
        error_reporter=SentryErrorReporter(),
        fallback=CeleryExecutor(celery_app),
    )


def build_scheduler() -> JobScheduler:
    return build_core().scheduler


async def run(scheduler: JobScheduler) -> None:
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:  # pragma: no cover - Windows
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_requested.set))

    await scheduler.start()
    logger.info("worker_started", status=scheduler.get_scheduler_status())
    try:
        await stop_requested.wait()
    finally:
        await scheduler.stop()
        logger.info("worker_stopped", status=scheduler.get_scheduler_status())


def main() -> None:
    configure_logging(logging.DEBUG if settings.is_development else logging.INFO)
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN, environment=settings.APP_ENV)
    asyncio.run(run(build_scheduler()))


if __name__ == "__main__":
    main()
