"""Detection of jobs that disappeared from the cluster.

Not every failure reaches the watcher. A job can vanish without an event,
for instance after ``kubectl delete job`` or an infrastructure problem, and
its pipeline run would stay active forever. This check compares the jobs the
database considers active with the jobs present in the cluster and reports
the missing ones to the orchestrator.

It also reports lost schedules: active runs that have no job in the cluster
at all, so the orchestrator can try to resume them.
"""

from datetime import datetime
from typing import Mapping, Optional, Set

from jobmonitor.cluster.handler import JobHandler
from jobmonitor.config.models import MonitorConfig
from jobmonitor.domain.models import DATABASE_WORKER_TYPES, JobRecord, WorkerType
from jobmonitor.logging import get_logger
from jobmonitor.logging.context import run_context
from jobmonitor.notifications.service import FailedJobNotifier
from jobmonitor.persistence.repositories import PipelineRunRepository, WorkerJobRepository
from jobmonitor.utils.timestamps import TimeHelper

logger = get_logger(__name__, component="lost_jobs")


class LostJobsFinder:
    """Reports database jobs without a counterpart in the cluster."""

    def __init__(
        self,
        job_handler: JobHandler,
        notifier: FailedJobNotifier,
        job_repositories: Mapping[WorkerType, WorkerJobRepository],
        run_repository: PipelineRunRepository,
        config: MonitorConfig,
        time_helper: Optional[TimeHelper] = None,
    ):
        """Initialize finder.

        Args:
            job_handler: Access to the cluster jobs
            notifier: Notifier for lost jobs
            job_repositories: Job repository per database worker type
            run_repository: Repository for pipeline runs, used for trace IDs
            config: Monitor settings (min age, lost schedules flag)
            time_helper: Clock (creates default if None)
        """
        self.job_handler = job_handler
        self.notifier = notifier
        self.job_repositories = dict(job_repositories)
        self.run_repository = run_repository
        self.config = config
        self.time_helper = time_helper or TimeHelper()

    def run(self) -> None:
        """Check all worker types for lost jobs, then check for lost schedules."""
        logger.info("Checking for lost jobs", extra={"event": "lost_jobs.run.started"})

        # Jobs younger than the min age may not have reached the cluster yet
        threshold = self.time_helper.before(self.config.lost_jobs_min_age)
        runs_with_jobs: Set[int] = set()

        for worker_type in DATABASE_WORKER_TYPES:
            repository = self.job_repositories.get(worker_type)
            if repository is None:
                continue
            runs_with_jobs |= self.check_worker(worker_type, repository, threshold)

        if self.config.enable_lost_schedules:
            # The config worker has no table, so only the cluster knows its jobs
            runs_with_jobs |= self._cluster_run_ids(WorkerType.CONFIG)
            self.check_schedules(threshold, runs_with_jobs)

    def check_worker(
        self,
        worker_type: WorkerType,
        repository: WorkerJobRepository,
        threshold: datetime,
    ) -> Set[int]:
        """Report the lost jobs of one worker type.

        Returns:
            IDs of the runs that have a job of this type in the cluster or a
            lost job of this type that was just reported
        """
        cluster_runs = self._cluster_run_ids(worker_type)
        logger.debug(
            f"Found {len(cluster_runs)} Kubernetes job(s) for {worker_type.value}",
            extra={"event": "lost_jobs.cluster_jobs", "worker_type": worker_type.value},
        )

        lost_jobs = [
            record for record in repository.list_active(before=threshold)
            if record.run_id not in cluster_runs
        ]

        if lost_jobs:
            logger.warning(
                f"Found {len(lost_jobs)} lost job(s) for {worker_type.value}",
                extra={
                    "event": "lost_jobs.found",
                    "worker_type": worker_type.value,
                    "run_ids": [record.run_id for record in lost_jobs],
                },
            )

        for record in lost_jobs:
            self._report_lost_job(worker_type, record)

        return cluster_runs | {record.run_id for record in lost_jobs}

    def check_schedules(self, threshold: datetime, runs_with_jobs: Set[int]) -> int:
        """Report active runs with nothing left in the cluster.

        Such a run is not progressing: either no job was ever scheduled, or
        its last job completed and the next one was never created. Runs
        with a lost job are excluded since they were reported already.

        Returns:
            Number of reported runs
        """
        reported = 0
        for run in self.run_repository.list_active(before=threshold):
            if run.id in runs_with_jobs:
                continue

            with run_context(run.id, run.trace_id):
                logger.warning(
                    f"Active run {run.id} has no scheduled jobs",
                    extra={"event": "lost_jobs.schedule_lost"},
                )
                self.notifier.send_lost_schedule(run.id)
            reported += 1

        return reported

    def _report_lost_job(self, worker_type: WorkerType, record: JobRecord) -> None:
        run = self.run_repository.get(record.run_id)
        trace_id = run.trace_id if run is not None else None

        with run_context(record.run_id, trace_id):
            logger.warning(
                f"The {worker_type.value} job of run {record.run_id} is lost",
                extra={"event": "lost_jobs.job_lost", "worker_type": worker_type.value},
            )
            self.notifier.send_job_lost(record.run_id, worker_type.value)

    def _cluster_run_ids(self, worker_type: WorkerType) -> Set[int]:
        jobs = self.job_handler.find_jobs_for_worker(worker_type)
        run_ids = (self.job_handler.run_id(job) for job in jobs)
        return {run_id for run_id in run_ids if run_id is not None}
