"""Scheduler for the periodic checks of the job monitor."""

import itertools
import threading
from datetime import timedelta, timezone
from typing import Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from jobmonitor.logging import get_logger
from jobmonitor.utils.timestamps import utc_now

logger = get_logger(__name__, component="scheduler")


class Scheduler:
    """
    Runs actions periodically on APScheduler's thread pool.

    Each action is scheduled with a fixed delay: the next run starts one
    interval after the previous run has finished, so an action never overlaps
    itself, while different actions run in parallel. Every run is a one-shot
    job that schedules its successor when it is done.
    """

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None):
        """
        Initialize the scheduler.

        Args:
            scheduler: APScheduler instance to use (creates a BackgroundScheduler if None)
        """
        self.scheduler = scheduler or BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping runs
                "coalesce": True,
                "misfire_grace_time": None,  # A late run is still a run
            },
            timezone=timezone.utc,
        )
        self._actions: Dict[str, timedelta] = {}
        self._closed = threading.Event()
        self._counter = itertools.count(1)

    def schedule(
        self,
        interval: timedelta,
        action: Callable[[], None],
        name: Optional[str] = None,
    ) -> str:
        """
        Register an action to run every ``interval``, starting one interval from now.

        Exceptions raised by the action are logged and do not affect later runs.

        Args:
            interval: Delay between the end of a run and the start of the next one
            action: Function to call
            name: Identifier of the action (derived from the function if None)

        Returns:
            The identifier of the scheduled action

        Raises:
            RuntimeError: If the scheduler has been closed
            ValueError: If the interval is not positive
        """
        if self._closed.is_set():
            raise RuntimeError("Scheduler has been closed")
        if interval <= timedelta(0):
            raise ValueError(f"Interval must be positive, got {interval}")

        action_name = name or f"{getattr(action, '__qualname__', 'action')}-{next(self._counter)}"
        self._actions[action_name] = interval

        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started", extra={"event": "scheduler.started"})

        self._schedule_next(action_name, interval, action)

        logger.info(
            f"Scheduled '{action_name}' every {interval.total_seconds():.0f} seconds",
            extra={
                "event": "scheduler.action.scheduled",
                "action": action_name,
                "interval_seconds": interval.total_seconds(),
            },
        )
        return action_name

    def close(self) -> None:
        """
        Stop scheduling.

        Runs that are in progress complete in their worker threads, but no
        further runs are started. Does not wait for running actions.
        """
        if self._closed.is_set():
            return

        logger.info("Shutting down scheduler", extra={"event": "scheduler.stopping"})
        self._closed.set()

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def is_running(self) -> bool:
        """
        Check if the scheduler is running.

        Returns:
            True if actions are being scheduled, False before the first
            action and after close()
        """
        return self.scheduler.running and not self._closed.is_set()

    def get_scheduled_actions(self) -> List[str]:
        """Get the identifiers of all registered actions."""
        return list(self._actions)

    def _run(self, name: str, interval: timedelta, action: Callable[[], None]) -> None:
        logger.debug(f"Running '{name}'", extra={"event": "scheduler.action.started", "action": name})
        try:
            action()
        except Exception as e:
            logger.error(
                f"Action '{name}' failed: {e}",
                extra={
                    "event": "scheduler.action.failed",
                    "action": name,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
        finally:
            if not self._closed.is_set():
                self._schedule_next(name, interval, action)

    def _schedule_next(self, name: str, interval: timedelta, action: Callable[[], None]) -> None:
        self.scheduler.add_job(
            func=self._run,
            trigger=DateTrigger(run_date=utc_now() + interval, timezone=timezone.utc),
            args=[name, interval, action],
            id=name,
            name=name,
            replace_existing=True,
        )
