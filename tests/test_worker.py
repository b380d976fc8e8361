from unittest.mock import patch

from jobtrack.db.session import build_engine
from jobtrack.services.scheduling import HandlerExecutor, SqlAlchemyJobRepository
from jobtrack.worker import build_core, build_scheduler


class TestWorker:
    def test_build_scheduler_wires_storage_and_maintenance(self):
        engine = build_engine("sqlite://")

        with patch("jobtrack.worker.build_engine", return_value=engine):
            scheduler = build_scheduler()

        assert isinstance(scheduler.repository, SqlAlchemyJobRepository)
        assert isinstance(scheduler.executor, HandlerExecutor)
        assert scheduler.executor.job_types == ["cleanup", "security_check"]
        assert scheduler.executor.fallback is not None
        assert {j.job_type for j in scheduler.list_jobs(active_only=True)} == {
            "cleanup",
            "security_check",
        }

    def test_build_scheduler_does_not_duplicate_maintenance_jobs(self):
        engine = build_engine("sqlite://")

        with patch("jobtrack.worker.build_engine", return_value=engine):
            build_scheduler()
            scheduler = build_scheduler()

        assert len(scheduler.list_jobs()) == 2

    def test_build_core_hands_guard_the_maintained_stores(self):
        engine = build_engine("sqlite://")

        with patch("jobtrack.worker.build_engine", return_value=engine):
            core = build_core()

        assert core.scheduler.executor is core.executor
        assert core.guard.event_store is core.event_store
        assert core.guard.rate_limiter is core.rate_limiter
