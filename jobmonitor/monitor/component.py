"""Composition root of the job monitor."""

import threading
from contextlib import AbstractContextManager
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Tuple

from kubernetes.client import BatchV1Api, CoreV1Api
from sqlalchemy.orm import Session

from jobmonitor.cluster.handler import JobHandler
from jobmonitor.cluster.watch import WatchHelper
from jobmonitor.config.models import AppConfig
from jobmonitor.domain.models import DATABASE_WORKER_TYPES
from jobmonitor.logging import get_logger
from jobmonitor.notifications.service import FailedJobNotifier
from jobmonitor.persistence.database import get_session
from jobmonitor.persistence.repositories import PipelineRunRepository, WorkerJobRepository
from jobmonitor.scheduler import Scheduler
from jobmonitor.utils.timestamps import TimeHelper

from .job_monitor import JobMonitor
from .long_running import LongRunningJobsFinder
from .lost_jobs import LostJobsFinder
from .reaper import Reaper
from .stuck_jobs import StuckJobsFinder

logger = get_logger(__name__, component="monitor")


class MonitorComponent:
    """
    Wires the monitoring components and starts the enabled ones.

    The watcher runs on a dedicated daemon thread; the periodic checks run
    on the scheduler's thread pool.
    """

    def __init__(
        self,
        config: AppConfig,
        batch_api: BatchV1Api,
        core_api: CoreV1Api,
        notifier: FailedJobNotifier,
        scheduler: Optional[Scheduler] = None,
        time_helper: Optional[TimeHelper] = None,
        session_provider: Callable[[], AbstractContextManager[Session]] = get_session,
    ):
        """
        Initialize the component.

        Args:
            config: Application configuration
            batch_api: API client for jobs
            core_api: API client for pods
            notifier: Notifier shared by all components
            scheduler: Scheduler for the periodic checks (creates default if None)
            time_helper: Clock shared by all components (creates default if None)
            session_provider: Source of database sessions for the repositories
        """
        self.config = config
        self.monitor_config = config.job_monitor
        self.notifier = notifier
        self.scheduler = scheduler or Scheduler()
        self.time_helper = time_helper or TimeHelper()
        self.stop_event = threading.Event()
        self._watch_thread: Optional[threading.Thread] = None

        self.job_handler = JobHandler(
            batch_api,
            core_api,
            notifier,
            self.monitor_config.namespace,
            recently_processed_interval=self.monitor_config.recently_processed_interval,
            time_helper=self.time_helper,
        )

        job_repositories = {
            worker_type: WorkerJobRepository(worker_type, session_provider)
            for worker_type in DATABASE_WORKER_TYPES
        }
        run_repository = PipelineRunRepository(session_provider)

        self.watch_helper = WatchHelper.create(batch_api, self.monitor_config)
        self.job_monitor = JobMonitor(self.watch_helper, self.job_handler, self.stop_event)
        self.reaper = Reaper(self.job_handler, self.monitor_config, self.time_helper)
        self.lost_jobs_finder = LostJobsFinder(
            self.job_handler,
            notifier,
            job_repositories,
            run_repository,
            self.monitor_config,
            self.time_helper,
        )
        self.long_running_jobs_finder = LongRunningJobsFinder(
            self.job_handler, self.monitor_config, self.time_helper
        )
        self.stuck_jobs_finder = StuckJobsFinder(
            notifier,
            job_repositories,
            run_repository,
            self.monitor_config,
            self.time_helper,
        )

    def start(self) -> None:
        """Start all enabled components."""
        cfg = self.monitor_config
        logger.info(
            f"Starting job monitor for namespace '{cfg.namespace}'",
            extra={"event": "monitor.starting", "namespace": cfg.namespace},
        )

        if cfg.enable_watching:
            self._watch_thread = threading.Thread(
                target=self.job_monitor.watch,
                name="job-watcher",
                daemon=True,
            )
            self._watch_thread.start()
        else:
            logger.info("Watching is disabled", extra={"event": "monitor.watching.disabled"})

        for name, interval, action in self._periodic_checks():
            self.scheduler.schedule(interval, action, name=name)

        logger.info(
            "Job monitor started",
            extra={
                "event": "monitor.started",
                "watching": cfg.enable_watching,
                "scheduled_actions": self.scheduler.get_scheduled_actions(),
            },
        )

    def stop(self) -> None:
        """Stop scheduling checks and end the watcher. Does not wait for running checks."""
        logger.info("Stopping job monitor", extra={"event": "monitor.stopping"})
        self.scheduler.close()
        self.stop_event.set()
        self.watch_helper.stop()

    def run_once(self) -> bool:
        """
        Run every enabled periodic check once in the calling thread.

        Returns:
            True if all checks completed without an error
        """
        success = True
        for name, _, action in self._periodic_checks():
            logger.info(f"Running {name}", extra={"event": "monitor.run_once", "action": name})
            try:
                action()
            except Exception as e:
                success = False
                logger.error(
                    f"{name} failed: {e}",
                    extra={"event": "monitor.run_once.failed", "action": name},
                    exc_info=True,
                )
        return success

    def is_watching(self) -> bool:
        return self._watch_thread is not None and self._watch_thread.is_alive()

    def _periodic_checks(self) -> List[Tuple[str, timedelta, Callable[[], None]]]:
        cfg = self.monitor_config
        checks: Dict[str, Tuple[bool, timedelta, Callable[[], None]]] = {
            "reaper": (cfg.enable_reaper, cfg.reaper_interval, self.reaper.run),
            "lost-jobs": (cfg.enable_lost_jobs, cfg.lost_jobs_interval, self.lost_jobs_finder.run),
            "long-running-jobs": (
                cfg.enable_long_running_jobs,
                cfg.long_running_jobs_interval,
                self.long_running_jobs_finder.run,
            ),
            "stuck-jobs": (cfg.enable_stuck_jobs, cfg.stuck_jobs_interval, self.stuck_jobs_finder.run),
        }

        enabled = []
        for name, (is_enabled, interval, action) in checks.items():
            if is_enabled:
                enabled.append((name, interval, action))
            else:
                logger.info(f"{name} is disabled", extra={"event": "monitor.check.disabled", "action": name})
        return enabled
