"""Access to the worker jobs in the monitored namespace.

JobHandler lists, classifies and deletes cluster jobs and reports failed ones
through the notifier. Classification helpers are static so the periodic
checks can use them on any V1Job.
"""

import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from kubernetes import client, config
from kubernetes.client import V1Job
from kubernetes.client.rest import ApiException

from jobmonitor.domain.models import WorkerType
from jobmonitor.logging import get_logger
from jobmonitor.logging.context import run_context
from jobmonitor.notifications.models import NotificationError
from jobmonitor.notifications.service import FailedJobNotifier
from jobmonitor.utils.timestamps import TimeHelper, ensure_utc

from .exceptions import ClusterConnectionError

logger = get_logger(__name__, component="job_handler")

# Labels set on the worker jobs by the orchestrator
WORKER_LABEL = "ort-worker"
RUN_ID_LABEL = "run-id"
TRACE_ID_LABEL_PREFIX = "trace-id-"
# Set by Kubernetes on the pods of a job
JOB_NAME_LABEL = "job-name"

FAILED_CONDITION = "Failed"
COMPLETE_CONDITION = "Complete"

WORKER_SELECTOR = f"{WORKER_LABEL} in ({','.join(w.value for w in WorkerType)})"


def create_cluster_apis() -> Tuple[client.BatchV1Api, client.CoreV1Api]:
    """Load the cluster configuration and create the API clients.

    The in-cluster service account is preferred; outside a cluster the
    kubeconfig file (``KUBECONFIG`` or ``~/.kube/config``) is used.

    Raises:
        ClusterConnectionError: If no configuration could be loaded
    """
    try:
        try:
            config.load_incluster_config()
            source = "in-cluster"
        except config.ConfigException:
            config.load_kube_config()
            source = "kubeconfig"
    except Exception as e:
        raise ClusterConnectionError(f"Failed to load Kubernetes configuration: {e}") from e

    logger.info(
        f"Loaded Kubernetes {source} configuration",
        extra={"event": "cluster.config.loaded", "source": source},
    )
    return client.BatchV1Api(), client.CoreV1Api()


def _conditions(job: V1Job) -> List[str]:
    if job.status is None or not job.status.conditions:
        return []
    return [condition.type for condition in job.status.conditions]


def _labels(job: V1Job) -> Dict[str, str]:
    if job.metadata is None or not job.metadata.labels:
        return {}
    return job.metadata.labels


def _trace_label_index(label: str) -> int:
    suffix = label[len(TRACE_ID_LABEL_PREFIX):]
    return int(suffix) if suffix.isdigit() else 0


class JobHandler:
    """Lists, deletes and classifies the worker jobs of one namespace."""

    def __init__(
        self,
        batch_api: client.BatchV1Api,
        core_api: client.CoreV1Api,
        notifier: FailedJobNotifier,
        namespace: str,
        recently_processed_interval: timedelta = timedelta(minutes=1),
        time_helper: Optional[TimeHelper] = None,
    ):
        """Initialize handler.

        Args:
            batch_api: API client for jobs
            core_api: API client for pods
            notifier: Notifier for failed jobs
            namespace: Namespace the worker jobs run in
            recently_processed_interval: Window in which a job handled by
                delete_and_notify_if_failed is ignored when seen again
            time_helper: Clock (creates default if None)
        """
        self.batch_api = batch_api
        self.core_api = core_api
        self.notifier = notifier
        self.namespace = namespace
        self.recently_processed_interval = recently_processed_interval
        self.time_helper = time_helper or TimeHelper()

        # The watcher thread and the Reaper both call delete_and_notify_if_failed
        self._recently_processed: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def find_jobs_completed_before(self, time: datetime) -> List[V1Job]:
        """Find worker jobs that completed before the given time.

        Completed jobs without a completion time (failed jobs) are always
        included.
        """
        jobs = self._list_jobs(WORKER_SELECTOR)
        threshold = ensure_utc(time)
        result = []
        for job in jobs:
            if not self.is_completed(job):
                continue
            completion_time = ensure_utc(job.status.completion_time)
            if completion_time is None or completion_time < threshold:
                result.append(job)
        return result

    def find_jobs_for_worker(self, worker_type: WorkerType) -> List[V1Job]:
        """Find all jobs that belong to the given worker type."""
        return self._list_jobs(f"{WORKER_LABEL}={WorkerType(worker_type).value}")

    def delete_job(self, name: str) -> None:
        """Delete a job and its pods.

        Jobs or pods that no longer exist are treated as deleted. Other API
        errors are logged; the periodic checks will try again later.
        """
        logger.info(f"Deleting job '{name}'", extra={"event": "job.delete.started", "job_name": name})

        self._delete(
            "job",
            name,
            lambda: self.batch_api.delete_namespaced_job(
                name=name,
                namespace=self.namespace,
                propagation_policy="Background",
            ),
        )

        try:
            pods = self.core_api.list_namespaced_pod(
                namespace=self.namespace,
                label_selector=f"{JOB_NAME_LABEL}={name}",
            )
        except ApiException as e:
            logger.error(
                f"Could not list pods of job '{name}': {e.status} {e.reason}",
                extra={"event": "job.pods.list_failed", "job_name": name, "status_code": e.status},
            )
            return

        for pod in pods.items or []:
            pod_name = pod.metadata.name
            self._delete(
                "pod",
                pod_name,
                lambda pod_name=pod_name: self.core_api.delete_namespaced_pod(
                    name=pod_name,
                    namespace=self.namespace,
                ),
            )

    def delete_and_notify_if_failed(self, job: V1Job) -> None:
        """Delete a job and, if it failed, report the failure.

        A job is handled at most once within the recently processed interval;
        further calls for the same job name are ignored. The job is deleted
        first, then the notification is sent.
        """
        name = job.metadata.name if job.metadata is not None else None
        if not name:
            logger.warning("Ignoring job without a name", extra={"event": "job.ignored"})
            return

        if not self._mark_processed(name):
            logger.debug(
                f"Skipping job '{name}', it was processed recently",
                extra={"event": "job.skipped.recently_processed", "job_name": name},
            )
            return

        run_id = self.run_id(job)
        with run_context(run_id, self.trace_id(job), job_name=name):
            self.delete_job(name)

            if not self.is_failed(job):
                return

            worker_type = self.worker_type(job)
            if run_id is None or worker_type is None:
                logger.warning(
                    f"Cannot report failed job '{name}' without run ID and worker labels",
                    extra={"event": "job.failed.unreported"},
                )
                return

            try:
                self.notifier.send_job_failed(
                    run_id,
                    worker_type,
                    self._failure_message(job),
                    job_name=name,
                )
            except NotificationError as e:
                logger.error(
                    f"Failed to report failed job '{name}': {e}",
                    extra={"event": "job.failed.notification_failed"},
                )

    def _mark_processed(self, name: str) -> bool:
        """Record that a job is processed now.

        Returns:
            False if the job was already processed within the interval
        """
        now = self.time_helper.now()
        with self._lock:
            expired = [
                key for key, processed_at in self._recently_processed.items()
                if now - processed_at >= self.recently_processed_interval
            ]
            for key in expired:
                del self._recently_processed[key]

            if name in self._recently_processed:
                return False

            self._recently_processed[name] = now
            return True

    def _list_jobs(self, label_selector: str) -> List[V1Job]:
        job_list = self.batch_api.list_namespaced_job(
            namespace=self.namespace,
            label_selector=label_selector,
        )
        return list(job_list.items or [])

    def _delete(self, kind: str, name: str, call) -> None:
        try:
            call()
        except ApiException as e:
            if e.status == 404:
                logger.debug(
                    f"{kind.capitalize()} '{name}' is already gone",
                    extra={"event": f"{kind}.delete.not_found", "resource_name": name},
                )
                return
            logger.error(
                f"Could not delete {kind} '{name}': {e.status} {e.reason}",
                extra={"event": f"{kind}.delete.failed", "resource_name": name, "status_code": e.status},
            )

    @staticmethod
    def _failure_message(job: V1Job) -> str:
        conditions = job.status.conditions if job.status is not None else None
        for condition in conditions or []:
            if condition.type == FAILED_CONDITION:
                details = ": ".join(part for part in (condition.reason, condition.message) if part)
                if details:
                    return f"Job '{job.metadata.name}' failed: {details}"
        return f"Job '{job.metadata.name}' failed."

    @staticmethod
    def is_failed(job: V1Job) -> bool:
        """Check whether the job has a Failed condition."""
        return FAILED_CONDITION in _conditions(job)

    @staticmethod
    def is_completed(job: V1Job) -> bool:
        """Check whether the job has finished, successfully or not."""
        if job.status is not None and job.status.completion_time is not None:
            return True
        conditions = _conditions(job)
        return FAILED_CONDITION in conditions or COMPLETE_CONDITION in conditions

    @staticmethod
    def is_timeout(job: V1Job, threshold: datetime) -> bool:
        """Check whether a still running job was started at or before the threshold."""
        if JobHandler.is_completed(job) or job.status is None:
            return False
        start_time = ensure_utc(job.status.start_time)
        return start_time is not None and start_time <= ensure_utc(threshold)

    @staticmethod
    def run_id(job: V1Job) -> Optional[int]:
        """Get the ID of the pipeline run the job belongs to."""
        value = _labels(job).get(RUN_ID_LABEL)
        if value is None or not value.isdigit():
            return None
        return int(value)

    @staticmethod
    def worker_type(job: V1Job) -> Optional[str]:
        return _labels(job).get(WORKER_LABEL)

    @staticmethod
    def trace_id(job: V1Job) -> Optional[str]:
        """Reassemble the trace ID.

        Label values are limited to 63 characters, so the orchestrator splits
        the trace ID over the labels trace-id-0, trace-id-1, ...
        """
        parts = sorted(
            (label for label in _labels(job) if label.startswith(TRACE_ID_LABEL_PREFIX)),
            key=_trace_label_index,
        )
        if not parts:
            return None
        labels = _labels(job)
        return "".join(labels[label] for label in parts)
