"""Domain models for worker jobs and pipeline runs."""

from .models import (
    ACTIVE_RUN_STATUSES,
    DATABASE_WORKER_TYPES,
    FINAL_JOB_STATUSES,
    JobRecord,
    JobStatus,
    PipelineRun,
    RunStatus,
    WorkerType,
)

__all__ = [
    "WorkerType",
    "DATABASE_WORKER_TYPES",
    "JobStatus",
    "FINAL_JOB_STATUSES",
    "RunStatus",
    "ACTIVE_RUN_STATUSES",
    "JobRecord",
    "PipelineRun",
]
