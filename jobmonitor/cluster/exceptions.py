"""Exceptions raised by the cluster access layer."""


class ClusterError(Exception):
    """Base exception for errors talking to the Kubernetes API."""

    pass


class ClusterConnectionError(ClusterError):
    """Raised when no usable cluster configuration could be loaded.

    Neither the in-cluster service account nor a kubeconfig file was found,
    or the configuration could not be parsed.
    """

    pass
