"""Detection of jobs that exceed the timeout of their worker."""

from datetime import timedelta
from typing import Optional

from jobmonitor.cluster.handler import JobHandler
from jobmonitor.config.models import MonitorConfig
from jobmonitor.domain.models import WorkerType
from jobmonitor.logging import get_logger
from jobmonitor.utils.timestamps import TimeHelper, format_timestamp_for_log

logger = get_logger(__name__, component="long_running_jobs")


class LongRunningJobsFinder:
    """
    Deletes jobs that have been running longer than their worker's timeout.

    No notification is sent; the deleted job is later detected as lost and
    reported by the LostJobsFinder.
    """

    def __init__(
        self,
        job_handler: JobHandler,
        config: MonitorConfig,
        time_helper: Optional[TimeHelper] = None,
    ):
        self.job_handler = job_handler
        self.config = config
        self.time_helper = time_helper or TimeHelper()

    def run(self) -> None:
        """Check the jobs of all worker types with a configured timeout."""
        logger.info("Checking for long-running jobs", extra={"event": "long_running.run.started"})

        for worker_type, timeout in self.config.timeouts.items():
            self.check_worker(worker_type, timeout)

    def check_worker(self, worker_type: WorkerType, timeout: timedelta) -> int:
        """Delete the timed-out jobs of one worker type.

        Returns:
            Number of deleted jobs
        """
        threshold = self.time_helper.before(timeout)
        timed_out = [
            job for job in self.job_handler.find_jobs_for_worker(worker_type)
            if self.job_handler.is_timeout(job, threshold)
        ]

        for job in timed_out:
            logger.warning(
                f"Job '{job.metadata.name}' exceeded the {worker_type.value} timeout of "
                f"{timeout.total_seconds():.0f} seconds",
                extra={
                    "event": "long_running.job.timeout",
                    "job_name": job.metadata.name,
                    "worker_type": worker_type.value,
                    "start_time": format_timestamp_for_log(job.status.start_time),
                },
            )
            self.job_handler.delete_job(job.metadata.name)

        return len(timed_out)
