"""Removal of completed jobs from the cluster."""

from typing import Optional

from jobmonitor.cluster.handler import JobHandler
from jobmonitor.config.models import MonitorConfig
from jobmonitor.logging import get_logger
from jobmonitor.utils.timestamps import TimeHelper, format_timestamp_for_log

logger = get_logger(__name__, component="reaper")


class Reaper:
    """
    Periodically deletes worker jobs that completed longer than ``reaper_max_age`` ago.

    Failed jobs are reported on the way. This also catches failures whose
    watch event was missed.
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
        """Delete all jobs completed before the age threshold."""
        threshold = self.time_helper.before(self.config.reaper_max_age)
        logger.info(
            "Reaper run started",
            extra={"event": "reaper.run.started", "threshold": format_timestamp_for_log(threshold)},
        )

        jobs = self.job_handler.find_jobs_completed_before(threshold)
        for job in jobs:
            self.job_handler.delete_and_notify_if_failed(job)

        logger.info(
            f"Reaper run finished, {len(jobs)} completed job(s) processed",
            extra={"event": "reaper.run.finished", "jobs_processed": len(jobs)},
        )
