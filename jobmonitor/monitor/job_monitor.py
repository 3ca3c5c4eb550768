"""Reaction to job change events."""

import threading
from typing import Optional

from jobmonitor.cluster.handler import JobHandler
from jobmonitor.cluster.watch import WatchEvent, WatchHelper
from jobmonitor.logging import get_logger

logger = get_logger(__name__, component="job_monitor")


class JobMonitor:
    """Consumes the job watch stream and cleans up failed jobs as soon as they fail."""

    def __init__(
        self,
        watch_helper: WatchHelper,
        job_handler: JobHandler,
        stop_event: Optional[threading.Event] = None,
    ):
        self.watch_helper = watch_helper
        self.job_handler = job_handler
        self.stop_event = stop_event or threading.Event()

    def watch(self) -> None:
        """Process events until the stop event is set or the helper is stopped.

        Blocks the calling thread; meant to run on a dedicated daemon thread.
        """
        logger.info("Watching for job events", extra={"event": "monitor.watch.started"})

        while not self.stop_event.is_set():
            event = self.watch_helper.next_event()
            if event is None or self.stop_event.is_set():
                break

            try:
                self.handle_event(event)
            except Exception as e:
                logger.error(
                    f"Failed to handle event for job '{_job_name(event)}': {e}",
                    extra={"event": "monitor.event.failed", "error_type": type(e).__name__},
                    exc_info=True,
                )

        logger.info("Stopped watching for job events", extra={"event": "monitor.watch.stopped"})

    def handle_event(self, event: WatchEvent) -> None:
        logger.debug(
            f"Job '{_job_name(event)}' was modified",
            extra={"event": "monitor.event.received", "event_type": event.type},
        )

        if self.job_handler.is_failed(event.job):
            self.job_handler.delete_and_notify_if_failed(event.job)


def _job_name(event: WatchEvent) -> Optional[str]:
    metadata = event.job.metadata
    return metadata.name if metadata is not None else None
