"""Database schema definition and ORM models.

The tables are owned by the worker-dispatch subsystem; the monitor maps only
the columns it reads. ``create_schema`` exists for tests and local SQLite
databases and is never run against the production database.
"""

import logging

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from jobmonitor.domain.models import JobRecord, PipelineRun
from jobmonitor.utils.timestamps import ensure_utc

logger = logging.getLogger(__name__)

Base = declarative_base()

# SQLite only auto-increments INTEGER primary keys
_Id = BigInteger().with_variant(Integer(), "sqlite")


class PipelineRunModel(Base):
    """ORM model for the pipeline_runs table."""

    __tablename__ = "pipeline_runs"

    id = Column(_Id, primary_key=True, autoincrement=True)
    status = Column(String(32), nullable=False)
    trace_id = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_pipeline_runs_status", "status"),
    )

    def to_domain(self) -> PipelineRun:
        return PipelineRun(
            id=self.id,
            status=self.status,
            trace_id=self.trace_id,
            created_at=ensure_utc(self.created_at),
        )


class WorkerJobModel(Base):
    """ORM model for the worker_jobs table.

    Holds one row per pipeline run and worker type.
    """

    __tablename__ = "worker_jobs"

    id = Column(_Id, primary_key=True, autoincrement=True)
    run_id = Column(_Id, nullable=False)
    worker_type = Column(String(32), nullable=False)
    status = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_worker_jobs_type_status", "worker_type", "status"),
        Index("idx_worker_jobs_run", "run_id", "worker_type"),
    )

    def to_domain(self) -> JobRecord:
        return JobRecord(
            id=self.id,
            run_id=self.run_id,
            worker_type=self.worker_type,
            status=self.status,
            created_at=ensure_utc(self.created_at),
            started_at=ensure_utc(self.started_at),
            finished_at=ensure_utc(self.finished_at),
        )


def create_schema(engine: Engine) -> None:
    """Create the mapped tables if they don't exist.

    Args:
        engine: SQLAlchemy engine instance
    """
    logger.info("Creating database schema")
    Base.metadata.create_all(engine)
