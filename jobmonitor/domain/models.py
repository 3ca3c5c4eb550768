"""Core domain models for worker jobs and pipeline runs.

This module defines the data structures used throughout the monitor:
- WorkerType: the pipeline stages, as labelled on cluster jobs
- JobStatus / RunStatus: database-side lifecycle states
- JobRecord: database representation of one stage of one pipeline run
- PipelineRun: one execution of the full pipeline
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class WorkerType(str, Enum):
    """Pipeline stages that run as cluster jobs.

    The value matches the ``ort-worker`` label set on the cluster jobs.
    """

    CONFIG = "config"
    ANALYZER = "analyzer"
    ADVISOR = "advisor"
    SCANNER = "scanner"
    EVALUATOR = "evaluator"
    REPORTER = "reporter"
    NOTIFIER = "notifier"


# Worker types that have a job table in the database. The config worker
# only exists as a cluster job.
DATABASE_WORKER_TYPES = (
    WorkerType.ANALYZER,
    WorkerType.ADVISOR,
    WorkerType.SCANNER,
    WorkerType.EVALUATOR,
    WorkerType.REPORTER,
    WorkerType.NOTIFIER,
)


class JobStatus(str, Enum):
    """Status of a worker job record."""

    CREATED = "CREATED"
    SCHEDULED = "SCHEDULED"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    FINISHED_WITH_ISSUES = "FINISHED_WITH_ISSUES"

    @property
    def is_final(self) -> bool:
        """Whether the job has reached a terminal state."""
        return self in FINAL_JOB_STATUSES


FINAL_JOB_STATUSES = frozenset(
    {JobStatus.FINISHED, JobStatus.FAILED, JobStatus.FINISHED_WITH_ISSUES}
)


class RunStatus(str, Enum):
    """Status of a pipeline run."""

    CREATED = "CREATED"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    FINISHED_WITH_ISSUES = "FINISHED_WITH_ISSUES"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_RUN_STATUSES


ACTIVE_RUN_STATUSES = frozenset({RunStatus.CREATED, RunStatus.ACTIVE})


def _to_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class JobRecord(BaseModel):
    """Database record of a worker job.

    One record exists per pipeline run and worker type once the orchestrator
    has dispatched that stage. The monitor only reads these records.
    """

    id: int = Field(..., description="Primary key of the job record")
    run_id: int = Field(..., description="ID of the owning pipeline run")
    worker_type: WorkerType = Field(..., description="Pipeline stage of this job")
    status: JobStatus = Field(..., description="Current job status")
    created_at: datetime = Field(..., description="When the record was created (UTC)")
    started_at: Optional[datetime] = Field(None, description="When the worker started (UTC)")
    finished_at: Optional[datetime] = Field(None, description="When the job ended (UTC)")

    @field_validator("created_at", "started_at", "finished_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime is timezone-aware and in UTC."""
        return _to_utc(v)

    @property
    def is_final(self) -> bool:
        return self.status.is_final


class PipelineRun(BaseModel):
    """A single execution of the complete pipeline."""

    id: int = Field(..., description="Primary key of the run")
    status: RunStatus = Field(..., description="Current run status")
    trace_id: Optional[str] = Field(None, description="Trace ID for log correlation")
    created_at: datetime = Field(..., description="When the run was created (UTC)")

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Ensure datetime is timezone-aware and in UTC."""
        return _to_utc(v)

    @field_validator("trace_id")
    @classmethod
    def blank_trace_id_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped if stripped else None
