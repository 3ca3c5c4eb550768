"""Resumable iteration over the job watch stream.

The Kubernetes API ends watch requests after a server-side timeout and
rejects resource versions that have been compacted. WatchHelper hides both:
it reopens the stream where the last one stopped, using the resource
version of the latest bookmark event, and falls back to a fresh listing if
the previous stream made no progress.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from kubernetes import watch
from kubernetes.client import BatchV1Api, V1Job

from jobmonitor.config.models import MonitorConfig
from jobmonitor.logging import get_logger

logger = get_logger(__name__, component="watcher")

MODIFIED = "MODIFIED"
BOOKMARK = "BOOKMARK"

# Server-side lifetime of a single watch request (seconds)
WATCH_TIMEOUT_SECONDS = 300


@dataclass(frozen=True)
class WatchEvent:
    """A change event of a job."""

    type: str
    job: V1Job


class WatchHelper:
    """Blocking source of job modification events.

    Not thread-safe except for stop(): the cursor is owned by the single
    thread calling next_event().
    """

    def __init__(
        self,
        batch_api: BatchV1Api,
        namespace: str,
        resource_version: Optional[str] = None,
        watch_factory: Callable[[], watch.Watch] = watch.Watch,
        timeout_seconds: int = WATCH_TIMEOUT_SECONDS,
        retry_delay: float = 1.0,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize helper.

        Args:
            batch_api: API client for jobs
            namespace: Namespace to watch
            resource_version: Version to start watching from. If None, the
                current version is obtained from a listing.
            watch_factory: Factory for Watch objects
            timeout_seconds: Server-side timeout of a single watch request
            retry_delay: Pause after a failed or empty stream before the next attempt
            sleep: Function used for the pause. Defaults to a wait that
                stop() interrupts.
        """
        self.batch_api = batch_api
        self.namespace = namespace
        self.resource_version = resource_version
        self.watch_resource_version: Optional[str] = None
        self.timeout_seconds = timeout_seconds
        self.retry_delay = retry_delay
        self._watch_factory = watch_factory
        self._stopped = threading.Event()
        self._sleep = sleep or self._stopped.wait
        self._watch: Optional[watch.Watch] = None
        self._stream: Optional[Iterator[dict]] = None
        self._stream_received = False

    @classmethod
    def create(
        cls,
        batch_api: BatchV1Api,
        config: MonitorConfig,
        resource_version: Optional[str] = None,
    ) -> "WatchHelper":
        """Create a helper for the namespace of the configuration."""
        return cls(batch_api, config.namespace, resource_version=resource_version)

    def next_event(self) -> Optional[WatchEvent]:
        """Block until the next MODIFIED event arrives and return it.

        Bookmark events only advance the cursor. Other event types are
        skipped. Errors never escape; the stream is reopened after a pause
        instead. Returns None once stop() has been called.
        """
        while not self._stopped.is_set():
            if self._stream is None:
                try:
                    self._stream = self._open_stream()
                except Exception as e:
                    logger.warning(
                        f"Could not open watch stream: {e}",
                        extra={"event": "watch.open.failed", "error_type": type(e).__name__},
                    )
                    self._sleep(self.retry_delay)
                    continue

            try:
                event = next(self._stream)
            except StopIteration:
                logger.debug("Watch stream ended", extra={"event": "watch.stream.ended"})
                received = self._stream_received
                self._close_stream()
                if not received:
                    self._sleep(self.retry_delay)
                continue
            except Exception as e:
                logger.warning(
                    f"Error while reading watch stream: {e}",
                    extra={"event": "watch.stream.failed", "error_type": type(e).__name__},
                    exc_info=True,
                )
                self._close_stream()
                self._sleep(self.retry_delay)
                continue

            self._stream_received = True
            event_type = event.get("type")
            if event_type == BOOKMARK:
                self.resource_version = event["object"].metadata.resource_version
                logger.debug(
                    f"Bookmark received, resource version is now {self.resource_version}",
                    extra={"event": "watch.bookmark", "resource_version": self.resource_version},
                )
            elif event_type == MODIFIED:
                return WatchEvent(type=event_type, job=event["object"])

        logger.debug("Watch helper stopped", extra={"event": "watch.stopped"})
        return None

    def stop(self) -> None:
        """Make next_event() return None and end the currently open stream.

        May be called from any thread.
        """
        self._stopped.set()
        current = self._watch
        if current is not None:
            current.stop()

    def _open_stream(self) -> Iterator[dict]:
        if self.resource_version == self.watch_resource_version:
            # First start, or the last stream brought no progress. The version
            # may have expired, so start from the current state.
            self.resource_version = self._list_resource_version()

        self.watch_resource_version = self.resource_version
        logger.info(
            f"Opening watch stream at resource version {self.resource_version}",
            extra={
                "event": "watch.stream.opening",
                "namespace": self.namespace,
                "resource_version": self.resource_version,
            },
        )

        self._watch = self._watch_factory()
        self._stream_received = False
        return iter(
            self._watch.stream(
                self.batch_api.list_namespaced_job,
                namespace=self.namespace,
                resource_version=self.resource_version,
                allow_watch_bookmarks=True,
                timeout_seconds=self.timeout_seconds,
            )
        )

    def _list_resource_version(self) -> str:
        job_list = self.batch_api.list_namespaced_job(namespace=self.namespace, limit=1)
        return job_list.metadata.resource_version

    def _close_stream(self) -> None:
        current = self._watch
        if current is not None:
            current.stop()
        self._watch = None
        self._stream = None
