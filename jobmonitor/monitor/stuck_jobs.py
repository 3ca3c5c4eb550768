"""Detection of pipeline runs that stopped making progress."""

from typing import Mapping, Optional

from jobmonitor.config.models import MonitorConfig
from jobmonitor.domain.models import DATABASE_WORKER_TYPES, PipelineRun, WorkerType
from jobmonitor.logging import get_logger
from jobmonitor.logging.context import run_context
from jobmonitor.notifications.service import FailedJobNotifier
from jobmonitor.persistence.repositories import PipelineRunRepository, WorkerJobRepository
from jobmonitor.utils.timestamps import TimeHelper

logger = get_logger(__name__, component="stuck_jobs")


class StuckJobsFinder:
    """
    Reports active runs none of whose jobs is still running.

    Such a run has either no jobs at all or only jobs in a final status. The
    orchestrator should have finished it, so it probably missed a result.
    """

    def __init__(
        self,
        notifier: FailedJobNotifier,
        job_repositories: Mapping[WorkerType, WorkerJobRepository],
        run_repository: PipelineRunRepository,
        config: MonitorConfig,
        time_helper: Optional[TimeHelper] = None,
    ):
        self.notifier = notifier
        self.job_repositories = dict(job_repositories)
        self.run_repository = run_repository
        self.config = config
        self.time_helper = time_helper or TimeHelper()

    def run(self) -> None:
        """Check all sufficiently old active runs."""
        logger.info("Checking for stuck runs", extra={"event": "stuck_jobs.run.started"})

        threshold = self.time_helper.before(self.config.stuck_jobs_min_age)
        stuck = 0
        for run in self.run_repository.list_active(before=threshold):
            if self.check_run(run):
                stuck += 1

        logger.info(
            f"Stuck runs check finished, {stuck} stuck run(s) found",
            extra={"event": "stuck_jobs.run.finished", "stuck_runs": stuck},
        )

    def check_run(self, run: PipelineRun) -> bool:
        """Report the run if it is stuck.

        Returns:
            True if the run is stuck
        """
        jobs_total = 0
        jobs_finished = 0
        for worker_type in DATABASE_WORKER_TYPES:
            repository = self.job_repositories.get(worker_type)
            record = repository.get_for_run(run.id) if repository is not None else None
            if record is None:
                continue
            jobs_total += 1
            if record.is_final:
                jobs_finished += 1

        if jobs_total != jobs_finished:
            return False

        with run_context(run.id, run.trace_id):
            reason = (
                "The run has no jobs."
                if jobs_total == 0
                else f"All {jobs_total} jobs of the run are finished."
            )
            logger.warning(
                f"Run {run.id} is stuck: {reason}",
                extra={
                    "event": "stuck_jobs.run_stuck",
                    "jobs_total": jobs_total,
                    "jobs_finished": jobs_finished,
                },
            )
            self.notifier.send_run_stuck(run.id, reason=reason)

        return True
