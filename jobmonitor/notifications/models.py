"""Message model and exceptions for orchestrator notifications."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from jobmonitor.utils.timestamps import format_timestamp, utc_now


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationDeliveryError(NotificationError):
    """Raised when a notification could not be delivered after all attempts.

    Attributes:
        status_code: HTTP status of the last attempt, None for transport errors
        attempts: Number of delivery attempts made
    """

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 1):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts


class NotificationType(str, Enum):
    """Kinds of anomalies reported to the orchestrator."""

    JOB_FAILED = "job_failed"
    JOB_LOST = "job_lost"
    RUN_STUCK = "run_stuck"
    LOST_SCHEDULE = "lost_schedule"


class Notification(BaseModel):
    """A message for the orchestrator about a job or pipeline run."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    type: NotificationType
    run_id: int
    worker_type: Optional[str] = None
    job_name: Optional[str] = None
    message: Optional[str] = None
    trace_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)

    def to_payload(self) -> Dict[str, Any]:
        """Convert to the JSON body posted to the orchestrator.

        Unset optional fields are left out.
        """
        payload: Dict[str, Any] = {
            "type": self.type.value,
            "runId": self.run_id,
            "timestamp": format_timestamp(self.timestamp),
        }
        optional = {
            "workerType": self.worker_type,
            "jobName": self.job_name,
            "message": self.message,
            "traceId": self.trace_id,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload
