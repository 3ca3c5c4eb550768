"""Kubernetes access: job handling and the job watch stream."""

from .exceptions import ClusterConnectionError, ClusterError
from .handler import JobHandler, create_cluster_apis
from .watch import WatchEvent, WatchHelper

__all__ = [
    "JobHandler",
    "WatchHelper",
    "WatchEvent",
    "create_cluster_apis",
    "ClusterError",
    "ClusterConnectionError",
]
