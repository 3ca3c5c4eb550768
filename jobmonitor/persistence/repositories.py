"""Read-only repositories for worker jobs and pipeline runs.

Repositories return domain models rather than ORM models. Each call opens
its own short-lived session, because the repositories are shared by
long-running components on several threads.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jobmonitor.domain.models import (
    ACTIVE_RUN_STATUSES,
    FINAL_JOB_STATUSES,
    JobRecord,
    PipelineRun,
    WorkerType,
)
from jobmonitor.logging import get_logger

from .database import get_session
from .exceptions import PersistenceError
from .schema import PipelineRunModel, WorkerJobModel

logger = get_logger(__name__, component="database")

SessionProvider = Callable[[], AbstractContextManager[Session]]

_FINAL_STATUS_VALUES = [status.value for status in FINAL_JOB_STATUSES]
_ACTIVE_RUN_STATUS_VALUES = [status.value for status in ACTIVE_RUN_STATUSES]


class WorkerJobRepository:
    """Repository for the jobs of a single worker type."""

    def __init__(self, worker_type: WorkerType, session_provider: SessionProvider = get_session):
        """Initialize repository.

        Args:
            worker_type: Worker type whose jobs this repository reads
            session_provider: Context manager factory yielding sessions
        """
        self.worker_type = worker_type
        self._session_provider = session_provider

    def list_active(self, before: Optional[datetime] = None) -> List[JobRecord]:
        """List jobs that have not reached a final status.

        Args:
            before: If set, only jobs created at or before this time are returned

        Returns:
            List of JobRecord domain models

        Raises:
            PersistenceError: If database error occurs
        """
        stmt = select(WorkerJobModel).where(
            WorkerJobModel.worker_type == self.worker_type.value,
            WorkerJobModel.status.not_in(_FINAL_STATUS_VALUES),
        )
        if before is not None:
            stmt = stmt.where(WorkerJobModel.created_at <= before)

        try:
            with self._session_provider() as session:
                models = session.execute(stmt.order_by(WorkerJobModel.id)).scalars().all()
                return [model.to_domain() for model in models]
        except SQLAlchemyError as e:
            logger.error(
                f"Error listing active {self.worker_type.value} jobs: {e}",
                extra={"event": "database.query.failed", "worker_type": self.worker_type.value},
                exc_info=True,
            )
            raise PersistenceError(f"Failed to list active jobs: {e}") from e

    def get_for_run(self, run_id: int) -> Optional[JobRecord]:
        """Get the job of this worker type for a pipeline run.

        Args:
            run_id: ID of the pipeline run

        Returns:
            JobRecord if the orchestrator created one, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        stmt = (
            select(WorkerJobModel)
            .where(
                WorkerJobModel.worker_type == self.worker_type.value,
                WorkerJobModel.run_id == run_id,
            )
            .order_by(WorkerJobModel.id.desc())
            .limit(1)
        )

        try:
            with self._session_provider() as session:
                model = session.execute(stmt).scalar_one_or_none()
                return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(
                f"Error retrieving {self.worker_type.value} job for run {run_id}: {e}",
                extra={"event": "database.query.failed", "worker_type": self.worker_type.value},
                exc_info=True,
            )
            raise PersistenceError(f"Failed to retrieve job: {e}") from e


class PipelineRunRepository:
    """Repository for pipeline runs."""

    def __init__(self, session_provider: SessionProvider = get_session):
        self._session_provider = session_provider

    def get(self, run_id: int) -> Optional[PipelineRun]:
        """Retrieve a pipeline run by ID, or None if it does not exist.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            with self._session_provider() as session:
                model = session.get(PipelineRunModel, run_id)
                return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving pipeline run {run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve pipeline run: {e}") from e

    def list_active(self, before: Optional[datetime] = None) -> List[PipelineRun]:
        """List runs that are still created or active.

        Args:
            before: If set, only runs created at or before this time are returned

        Raises:
            PersistenceError: If database error occurs
        """
        stmt = select(PipelineRunModel).where(
            PipelineRunModel.status.in_(_ACTIVE_RUN_STATUS_VALUES)
        )
        if before is not None:
            stmt = stmt.where(PipelineRunModel.created_at <= before)

        try:
            with self._session_provider() as session:
                models = session.execute(stmt.order_by(PipelineRunModel.id)).scalars().all()
                return [model.to_domain() for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Error listing active pipeline runs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list active pipeline runs: {e}") from e
