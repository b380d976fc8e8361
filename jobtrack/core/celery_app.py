import sentry_sdk
from celery import Celery
from celery.signals import setup_logging
from sentry_sdk.integrations.celery import CeleryIntegration

from jobtrack.core.config import settings
from jobtrack.utils.logger import configure_logging, get_logger


@setup_logging.connect
def setup_celery_logging(**kwargs):
    """Configure structured logging for Celery workers"""
    configure_logging()
    logger = get_logger(__name__)
    logger.info("Celery logging configured")


# Initialize Sentry for Celery if DSN is provided
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[CeleryIntegration()],
        environment=settings.APP_ENV,
        traces_sample_rate=0.1,
    )


celery_app = Celery(
    settings.APP_NAME,
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Scheduled notification jobs are consumed by the email sender
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue=settings.CELERY_NOTIFICATION_QUEUE,
    task_acks_late=True,
    result_expires=3600,
)
