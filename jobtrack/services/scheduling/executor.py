"""
Executors hand a due job's type and payload to whatever performs the work.

``HandlerExecutor`` runs registered in-process handlers (maintenance jobs);
``CeleryExecutor`` enqueues the job on the notification queue, where the
email sender picks it up.
"""

import asyncio
import functools
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from celery import Celery

from jobtrack.core.config import settings
from jobtrack.utils.logger import add_job_context, get_logger

from .models import ScheduledJob

logger = get_logger(__name__)

JobHandler = Callable[
    [Dict[str, Any], ScheduledJob], Union[Optional[bool], Awaitable[Optional[bool]]]
]


def _type_name(job_type: Any) -> str:
    return getattr(job_type, "value", job_type)


class JobExecutor(ABC):
    """Accepts a job and reports whether dispatch succeeded"""

    @abstractmethod
    async def execute(self, job: ScheduledJob) -> bool:
        """
        Dispatch ``job``.

        Returning False or raising both count as a failed dispatch.
        """


class HandlerExecutor(JobExecutor):
    """
    Runs handlers registered per job type.

    Handlers receive ``(payload, job)`` and may be sync or async; returning
    ``None`` counts as success. Job types without a handler go to
    ``fallback`` when one is set.
    """

    def __init__(self, fallback: Optional[JobExecutor] = None):
        self.fallback = fallback
        self._handlers: Dict[str, JobHandler] = {}

    def register_job_handler(self, job_type: str, handler: JobHandler) -> None:
        """Register a handler function for a specific job type"""
        self._handlers[_type_name(job_type)] = handler
        logger.info("job_handler_registered", job_type=_type_name(job_type))

    def has_handler(self, job_type: str) -> bool:
        return _type_name(job_type) in self._handlers

    @property
    def job_types(self) -> List[str]:
        return sorted(self._handlers)

    async def execute(self, job: ScheduledJob) -> bool:
        handler = self._handlers.get(job.job_type)
        if handler is None:
            if self.fallback is not None:
                return await self.fallback.execute(job)
            raise LookupError(f"No handler registered for job type: {job.job_type}")

        if inspect.iscoroutinefunction(handler):
            result = await handler(job.payload, job)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(
                None, functools.partial(handler, job.payload, job)
            )
            if inspect.isawaitable(result):
                result = await result

        return result is None or bool(result)


class CeleryExecutor(JobExecutor):
    """
    Enqueues jobs as Celery tasks.

    A job counts as dispatched once the broker accepts the message; delivery
    of the notification itself belongs to the consuming worker.
    """

    def __init__(
        self,
        celery_app: Celery,
        default_task_name: str = "notifications.send",
        queue: Optional[str] = None,
        task_names: Optional[Dict[str, str]] = None,
    ):
        self.celery_app = celery_app
        self.default_task_name = default_task_name
        self.queue = queue or settings.CELERY_NOTIFICATION_QUEUE
        self._task_names: Dict[str, str] = dict(task_names or {})

    def register_job_handler(self, job_type: str, task_name: str) -> None:
        """Route a job type to a specific Celery task name"""
        self._task_names[_type_name(job_type)] = task_name
        logger.info(
            "celery_task_route_registered",
            job_type=_type_name(job_type),
            task_name=task_name,
        )

    def task_name_for(self, job_type: str) -> str:
        return self._task_names.get(job_type, self.default_task_name)

    async def execute(self, job: ScheduledJob) -> bool:
        task_name = self.task_name_for(job.job_type)
        kwargs = {
            "job_id": job.id,
            "job_type": job.job_type,
            "scheduled_for": job.scheduled_for.isoformat(),
        }

        logger.info(
            "submitting_job_to_celery",
            task_name=task_name,
            queue=self.queue,
            **add_job_context(job.id, job.job_type),
        )

        loop = asyncio.get_running_loop()
        task_result = await loop.run_in_executor(
            None,
            functools.partial(
                self.celery_app.send_task,
                task_name,
                args=[job.payload],
                kwargs=kwargs,
                queue=self.queue,
            ),
        )

        logger.info(
            "job_submitted_to_celery",
            task_id=task_result.id,
            **add_job_context(job.id, job.job_type),
        )
        return True
