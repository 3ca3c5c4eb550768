"""HTTP client for the orchestrator's notification endpoint.

Thin wrapper around a requests session. Retries are not handled here; the
notifier decides whether a failed attempt is repeated.
"""

from typing import Optional

import requests

from jobmonitor.logging import get_logger

from .models import Notification, NotificationDeliveryError

logger = get_logger(__name__, component="notification")

USER_AGENT = "kubernetes-job-monitor/1.0"


class OrchestratorClient:
    """Posts notifications as JSON to ``<base_url>/notifications``."""

    def __init__(
        self,
        base_url: str,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ):
        """Initialize client.

        Args:
            base_url: Base URL of the orchestrator, without trailing slash
            timeout: HTTP request timeout in seconds
            session: Session to use (creates one if None)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/notifications"

    def publish(self, notification: Notification) -> None:
        """Deliver a single notification.

        Raises:
            NotificationDeliveryError: On transport errors and HTTP 4xx/5xx
        """
        try:
            response = self._session.post(
                self.endpoint,
                json=notification.to_payload(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise NotificationDeliveryError(
                f"Request to {self.endpoint} timed out after {self.timeout} seconds"
            ) from e
        except requests.exceptions.RequestException as e:
            raise NotificationDeliveryError(f"Request to {self.endpoint} failed: {e}") from e

        if response.status_code >= 400:
            raise NotificationDeliveryError(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
            )

        logger.debug(
            "Notification accepted by orchestrator",
            extra={
                "event": "notification.publish.accepted",
                "status_code": response.status_code,
                "notification_type": notification.type.value,
            },
        )

    def close(self) -> None:
        self._session.close()
