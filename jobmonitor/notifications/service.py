"""Notifier reporting job anomalies to the orchestrator.

Every message carries the trace ID of the active logging context, so callers
are expected to wrap the call into ``run_context(...)`` of the affected run.
"""

import logging
import time
from typing import Callable, Optional

from jobmonitor.config.models import NotificationConfig
from jobmonitor.logging import get_logger
from jobmonitor.logging.context import current_trace_id

from .client import OrchestratorClient
from .models import Notification, NotificationDeliveryError, NotificationType

logger = get_logger(__name__, component="notification")

# Upper bound for a single backoff delay (seconds)
MAX_RETRY_DELAY = 60.0


class FailedJobNotifier:
    """Publishes job-failed, job-lost, run-stuck and lost-schedule messages.

    Delivery is attempted ``max_retries + 1`` times with exponential backoff
    between attempts. With the default of zero retries a message is sent once.
    """

    def __init__(
        self,
        client: OrchestratorClient,
        config: Optional[NotificationConfig] = None,
        logger_instance: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize notifier.

        Args:
            client: Client used to deliver messages
            config: Retry settings (defaults if None)
            logger_instance: Logger instance (uses module logger if None)
            sleep: Function used to wait between attempts
        """
        self.client = client
        self.config = config or NotificationConfig()
        self.logger = logger_instance or logger
        self._sleep = sleep

    def send_job_failed(
        self,
        run_id: int,
        worker_type: str,
        message: str,
        job_name: Optional[str] = None,
    ) -> None:
        """Report that the job of a worker failed."""
        self._send(
            Notification(
                type=NotificationType.JOB_FAILED,
                run_id=run_id,
                worker_type=worker_type,
                job_name=job_name,
                message=message,
                trace_id=current_trace_id(),
            )
        )

    def send_job_lost(self, run_id: int, worker_type: str) -> None:
        """Report a job that is active in the database but missing in the cluster."""
        self._send(
            Notification(
                type=NotificationType.JOB_LOST,
                run_id=run_id,
                worker_type=worker_type,
                message=f"The {worker_type} job of run {run_id} could not be found in the cluster.",
                trace_id=current_trace_id(),
            )
        )

    def send_run_stuck(self, run_id: int, reason: Optional[str] = None) -> None:
        """Report an active run that has no running jobs left."""
        self._send(
            Notification(
                type=NotificationType.RUN_STUCK,
                run_id=run_id,
                message=reason,
                trace_id=current_trace_id(),
            )
        )

    def send_lost_schedule(self, run_id: int) -> None:
        """Report an active run that has no job in the cluster, so the orchestrator can resume it."""
        self._send(
            Notification(
                type=NotificationType.LOST_SCHEDULE,
                run_id=run_id,
                message=f"No job of run {run_id} is scheduled in the cluster.",
                trace_id=current_trace_id(),
            )
        )

    def _send(self, notification: Notification) -> None:
        """Deliver with retry/backoff.

        Raises:
            NotificationDeliveryError: If the last attempt fails
        """
        max_attempts = self.config.max_retries + 1
        log_extra = {
            "notification_type": notification.type.value,
            "run_id": notification.run_id,
            "worker_type": notification.worker_type,
        }

        for attempt in range(1, max_attempts + 1):
            # Apply backoff delay for retries (not on first attempt)
            if attempt > 1:
                delay = self.config.retry_initial_delay * (
                    self.config.retry_backoff_multiplier ** (attempt - 2)
                )
                delay = min(delay, MAX_RETRY_DELAY)
                self.logger.warning(
                    f"Retrying {notification.type.value} notification for run "
                    f"{notification.run_id} (attempt {attempt}/{max_attempts}) after {delay:.1f}s delay",
                    extra={"event": "notification.send.attempt", "attempt": attempt, **log_extra},
                )
                self._sleep(delay)

            try:
                self.client.publish(notification)
            except NotificationDeliveryError as e:
                e.attempts = attempt
                if attempt < max_attempts:
                    self.logger.warning(
                        f"Delivery of {notification.type.value} notification failed "
                        f"(attempt {attempt}/{max_attempts}): {e}",
                        extra={"event": "notification.send.failure", "attempt": attempt, **log_extra},
                    )
                    continue

                self.logger.error(
                    f"Giving up on {notification.type.value} notification for run "
                    f"{notification.run_id} after {attempt} attempt(s): {e}",
                    extra={"event": "notification.send.failed", "attempt": attempt, **log_extra},
                )
                raise

            self.logger.info(
                f"Sent {notification.type.value} notification for run {notification.run_id}",
                extra={"event": "notification.send.success", "attempt": attempt, **log_extra},
            )
            return
