"""Tests for the LostJobsFinder, including the detection of unscheduled runs."""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from sqlalchemy.orm import Session

from jobmonitor.cluster.handler import JobHandler
from jobmonitor.config.models import MonitorConfig
from jobmonitor.domain.models import (
    DATABASE_WORKER_TYPES,
    JobRecord,
    JobStatus,
    PipelineRun,
    RunStatus,
    WorkerType,
)
from jobmonitor.logging.context import get_log_context
from jobmonitor.monitor.lost_jobs import LostJobsFinder
from jobmonitor.persistence import (
    PipelineRunRepository,
    WorkerJobRepository,
    close_database,
    get_engine,
    init_database,
)
from jobmonitor.persistence.schema import PipelineRunModel, WorkerJobModel
from tests.helpers.jobs import NOW, FakeTimeHelper, make_job


def job_record(run_id, worker_type, status=JobStatus.RUNNING, created_at=None):
    return JobRecord(
        id=run_id * 10,
        run_id=run_id,
        worker_type=worker_type,
        status=status,
        created_at=created_at or NOW - timedelta(minutes=10),
    )


def pipeline_run(run_id, trace_id=None):
    return PipelineRun(
        id=run_id,
        status=RunStatus.ACTIVE,
        trace_id=trace_id,
        created_at=NOW - timedelta(minutes=30),
    )


@pytest.fixture
def handler():
    handler = Mock()
    handler.run_id.side_effect = JobHandler.run_id
    handler.find_jobs_for_worker.return_value = []
    return handler


@pytest.fixture
def repositories():
    repos = {}
    for worker_type in DATABASE_WORKER_TYPES:
        repo = Mock()
        repo.list_active.return_value = []
        repo.get_for_run.return_value = None
        repos[worker_type] = repo
    return repos


@pytest.fixture
def run_repository():
    repo = Mock()
    repo.get.return_value = None
    repo.list_active.return_value = []
    return repo


@pytest.fixture
def notifier():
    return Mock()


def create_finder(handler, notifier, repositories, run_repository, **config):
    config.setdefault("lost_jobs_min_age", "5m")
    monitor_config = MonitorConfig(namespace="test-namespace", **config)
    return LostJobsFinder(
        handler, notifier, repositories, run_repository, monitor_config, FakeTimeHelper()
    )


class TestLostJobs:
    """Test the detection of lost jobs."""

    def test_job_missing_in_cluster_is_reported(self, handler, notifier, repositories, run_repository):
        """Test that an active database job without cluster job is reported."""
        handler.find_jobs_for_worker.side_effect = lambda worker: (
            [make_job("analyzer-1", run_id=1)] if worker == WorkerType.ANALYZER else []
        )
        repositories[WorkerType.ANALYZER].list_active.return_value = [
            job_record(1, WorkerType.ANALYZER),
            job_record(2, WorkerType.ANALYZER),
        ]
        run_repository.get.return_value = pipeline_run(2, trace_id="trace-2")

        create_finder(handler, notifier, repositories, run_repository).run()

        notifier.send_job_lost.assert_called_once_with(2, "analyzer")
        run_repository.get.assert_called_once_with(2)

    def test_grace_period_is_passed_to_repository(self, handler, notifier, repositories, run_repository):
        """Test that only jobs older than the min age are considered."""
        create_finder(handler, notifier, repositories, run_repository, lost_jobs_min_age="5m").run()

        for repo in repositories.values():
            repo.list_active.assert_called_once_with(before=NOW - timedelta(minutes=5))

    def test_all_database_workers_are_checked(self, handler, notifier, repositories, run_repository):
        """Test that every worker type with a repository is compared with the cluster."""
        create_finder(handler, notifier, repositories, run_repository, enable_lost_schedules=False).run()

        queried = [c.args[0] for c in handler.find_jobs_for_worker.call_args_list]
        assert queried == list(DATABASE_WORKER_TYPES)

    def test_lost_job_notification_has_run_context(self, handler, notifier, repositories, run_repository):
        """Test that the trace ID of the run is in the context while notifying."""
        captured = {}
        notifier.send_job_lost.side_effect = lambda *args: captured.update(get_log_context())
        repositories[WorkerType.REPORTER].list_active.return_value = [job_record(5, WorkerType.REPORTER)]
        run_repository.get.return_value = pipeline_run(5, trace_id="trace-5")

        create_finder(handler, notifier, repositories, run_repository).run()

        assert captured["run_id"] == 5
        assert captured["trace_id"] == "trace-5"

    def test_unknown_run_uses_placeholder_trace_id(self, handler, notifier, repositories, run_repository):
        """Test that a missing run does not prevent the notification."""
        captured = {}
        notifier.send_job_lost.side_effect = lambda *args: captured.update(get_log_context())
        repositories[WorkerType.NOTIFIER].list_active.return_value = [job_record(6, WorkerType.NOTIFIER)]

        create_finder(handler, notifier, repositories, run_repository).run()

        notifier.send_job_lost.assert_called_once_with(6, "notifier")
        assert captured["trace_id"] == "unknown"

    def test_no_lost_jobs(self, handler, notifier, repositories, run_repository):
        handler.find_jobs_for_worker.return_value = [make_job("scanner-3", worker="scanner", run_id=3)]
        repositories[WorkerType.SCANNER].list_active.return_value = [job_record(3, WorkerType.SCANNER)]

        create_finder(handler, notifier, repositories, run_repository).run()

        notifier.send_job_lost.assert_not_called()


class TestLostSchedules:
    """Test the detection of active runs without any job in the cluster."""

    def test_run_without_any_job_is_reported(self, handler, notifier, repositories, run_repository):
        """Test that a run with neither cluster job nor job record is reported."""
        run_repository.list_active.return_value = [pipeline_run(7, trace_id="trace-7")]

        create_finder(handler, notifier, repositories, run_repository).run()

        run_repository.list_active.assert_called_once_with(before=NOW - timedelta(minutes=5))
        notifier.send_lost_schedule.assert_called_once_with(7)
        notifier.send_run_stuck.assert_not_called()

    def test_run_with_finished_jobs_only_is_reported(self, handler, notifier, repositories, run_repository):
        """Test that a run whose jobs all completed and were reaped counts as lost schedule."""
        repositories[WorkerType.ANALYZER].get_for_run.side_effect = (
            lambda run_id: job_record(run_id, WorkerType.ANALYZER, status=JobStatus.FINISHED)
        )
        run_repository.list_active.return_value = [pipeline_run(8)]

        create_finder(handler, notifier, repositories, run_repository).run()

        notifier.send_lost_schedule.assert_called_once_with(8)

    def test_run_with_config_job_is_not_reported(self, handler, notifier, repositories, run_repository):
        """Test that a config worker job in the cluster counts as scheduled."""
        handler.find_jobs_for_worker.side_effect = lambda worker: (
            [make_job("config-7", worker="config", run_id=7)] if worker == WorkerType.CONFIG else []
        )
        run_repository.list_active.return_value = [pipeline_run(7)]

        create_finder(handler, notifier, repositories, run_repository).run()

        notifier.send_lost_schedule.assert_not_called()

    def test_run_with_worker_job_in_cluster_is_not_reported(
        self, handler, notifier, repositories, run_repository
    ):
        handler.find_jobs_for_worker.side_effect = lambda worker: (
            [make_job("scanner-3", worker="scanner", run_id=3)] if worker == WorkerType.SCANNER else []
        )
        run_repository.list_active.return_value = [pipeline_run(3)]

        create_finder(handler, notifier, repositories, run_repository).run()

        notifier.send_lost_schedule.assert_not_called()

    def test_run_with_lost_job_is_reported_once(self, handler, notifier, repositories, run_repository):
        """Test that a run with a lost job only gets the lost job notification."""
        repositories[WorkerType.EVALUATOR].list_active.return_value = [job_record(4, WorkerType.EVALUATOR)]
        run_repository.list_active.return_value = [pipeline_run(4), pipeline_run(5)]

        create_finder(handler, notifier, repositories, run_repository).run()

        notifier.send_job_lost.assert_called_once_with(4, "evaluator")
        notifier.send_lost_schedule.assert_called_once_with(5)

    def test_notification_has_run_context(self, handler, notifier, repositories, run_repository):
        captured = {}
        notifier.send_lost_schedule.side_effect = lambda *args: captured.update(get_log_context())
        run_repository.list_active.return_value = [pipeline_run(6, trace_id="trace-6")]

        create_finder(handler, notifier, repositories, run_repository).run()

        assert captured["run_id"] == 6
        assert captured["trace_id"] == "trace-6"

    def test_disabled(self, handler, notifier, repositories, run_repository):
        """Test that the check can be switched off."""
        run_repository.list_active.return_value = [pipeline_run(9)]

        create_finder(
            handler, notifier, repositories, run_repository, enable_lost_schedules=False
        ).run()

        run_repository.list_active.assert_not_called()
        notifier.send_lost_schedule.assert_not_called()


@pytest.fixture
def database():
    """In-memory database with the schema, filled through a separate session."""
    init_database("sqlite://", create_tables=True)
    with Session(get_engine()) as session:
        yield session
    close_database()


class TestLostJobsWithDatabase:
    """Run the finder against real repositories and a moving clock."""

    def test_job_is_reported_once_min_age_has_passed(self, database, handler, notifier):
        """Test that a fresh job is left alone until it is lost_jobs_min_age old."""
        database.add(PipelineRunModel(id=11, status=RunStatus.ACTIVE.value, trace_id="trace-11", created_at=NOW))
        database.add(
            WorkerJobModel(
                run_id=11,
                worker_type=WorkerType.ANALYZER.value,
                status=JobStatus.RUNNING.value,
                created_at=NOW,
            )
        )
        database.commit()

        clock = FakeTimeHelper()
        config = MonitorConfig(namespace="test-namespace", lost_jobs_min_age="5m")
        repositories = {worker_type: WorkerJobRepository(worker_type) for worker_type in DATABASE_WORKER_TYPES}
        finder = LostJobsFinder(handler, notifier, repositories, PipelineRunRepository(), config, clock)

        finder.run()

        notifier.send_job_lost.assert_not_called()
        notifier.send_lost_schedule.assert_not_called()

        clock.advance(config.lost_jobs_min_age)
        finder.run()

        notifier.send_job_lost.assert_called_once_with(11, "analyzer")
        notifier.send_lost_schedule.assert_not_called()
