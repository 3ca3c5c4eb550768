"""Notifications about failed, lost and stuck jobs.

- FailedJobNotifier: builds messages and delivers them with retry/backoff
- OrchestratorClient: requests-based transport to the orchestrator
- Notification: the message posted to the orchestrator
"""

from .client import OrchestratorClient
from .models import (
    Notification,
    NotificationDeliveryError,
    NotificationError,
    NotificationType,
)
from .service import FailedJobNotifier

__all__ = [
    "FailedJobNotifier",
    "OrchestratorClient",
    "Notification",
    "NotificationType",
    "NotificationError",
    "NotificationDeliveryError",
]
