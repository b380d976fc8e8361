from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from jobtrack.models.scheduling import JobType
from jobtrack.services.scheduling import (
    CeleryExecutor,
    HandlerExecutor,
    JobExecutor,
    ScheduledJob,
)


def make_job(job_type="cleanup", payload=None):
    return ScheduledJob(
        id="job-1",
        job_type=job_type,
        payload=payload or {"email": "a@example.com"},
        scheduled_for=datetime(2024, 1, 7, 18, tzinfo=timezone.utc),
    )


class TestHandlerExecutor:
    """Test suite for in-process handlers"""

    @pytest.mark.asyncio
    async def test_sync_handler_receives_payload_and_job(self):
        executor = HandlerExecutor()
        handler = Mock(return_value=True)
        executor.register_job_handler(JobType.CLEANUP, handler)

        assert await executor.execute(make_job()) is True
        handler.assert_called_once()
        payload, job = handler.call_args[0]
        assert payload == {"email": "a@example.com"}
        assert job.id == "job-1"

    @pytest.mark.asyncio
    async def test_async_handler(self):
        executor = HandlerExecutor()

        async def handler(payload, job):
            return False

        executor.register_job_handler("cleanup", handler)
        assert await executor.execute(make_job()) is False

    @pytest.mark.asyncio
    async def test_none_counts_as_success(self):
        executor = HandlerExecutor()
        executor.register_job_handler("cleanup", lambda payload, job: None)

        assert await executor.execute(make_job()) is True

    @pytest.mark.asyncio
    async def test_handler_errors_propagate(self):
        executor = HandlerExecutor()

        def handler(payload, job):
            raise ValueError("bad payload")

        executor.register_job_handler("cleanup", handler)
        with pytest.raises(ValueError):
            await executor.execute(make_job())

    @pytest.mark.asyncio
    async def test_unknown_type_without_fallback(self):
        with pytest.raises(LookupError):
            await HandlerExecutor().execute(make_job("weekly_digest"))

    @pytest.mark.asyncio
    async def test_unknown_type_goes_to_fallback(self):
        fallback = Mock(spec=JobExecutor)
        fallback.execute = AsyncMock(return_value=True)
        executor = HandlerExecutor(fallback=fallback)
        executor.register_job_handler("cleanup", Mock(return_value=True))

        assert await executor.execute(make_job("weekly_digest")) is True
        fallback.execute.assert_awaited_once()

    def test_registry(self):
        executor = HandlerExecutor()
        executor.register_job_handler(JobType.SECURITY_CHECK, Mock())
        executor.register_job_handler(JobType.CLEANUP, Mock())

        assert executor.has_handler("cleanup")
        assert executor.has_handler(JobType.SECURITY_CHECK)
        assert not executor.has_handler("weekly_digest")
        assert executor.job_types == ["cleanup", "security_check"]


class TestCeleryExecutor:
    """Test suite for queueing jobs on Celery"""

    @pytest.fixture
    def celery_app(self):
        app = Mock()
        app.send_task.return_value = Mock(id="task-123")
        return app

    @pytest.mark.asyncio
    async def test_send_task(self, celery_app):
        executor = CeleryExecutor(celery_app, queue="notifications")
        job = make_job("weekly_digest", {"user_id": "u1"})

        assert await executor.execute(job) is True

        celery_app.send_task.assert_called_once_with(
            "notifications.send",
            args=[{"user_id": "u1"}],
            kwargs={
                "job_id": "job-1",
                "job_type": "weekly_digest",
                "scheduled_for": "2024-01-07T18:00:00+00:00",
            },
            queue="notifications",
        )

    @pytest.mark.asyncio
    async def test_task_routing(self, celery_app):
        executor = CeleryExecutor(celery_app, queue="notifications")
        executor.register_job_handler(JobType.WEEKLY_DIGEST, "notifications.weekly_digest")

        await executor.execute(make_job("weekly_digest"))

        assert celery_app.send_task.call_args[0][0] == "notifications.weekly_digest"
        assert executor.task_name_for("email_reminder") == "notifications.send"

    @pytest.mark.asyncio
    async def test_broker_errors_propagate(self, celery_app):
        celery_app.send_task.side_effect = ConnectionError("broker down")
        executor = CeleryExecutor(celery_app, queue="notifications")

        with pytest.raises(ConnectionError):
            await executor.execute(make_job("weekly_digest"))
