"""Read access to the orchestrator's database.

Public API:
    # Database initialization and session management
    - init_database(database_url: str, create_tables: bool = False) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - WorkerJobRepository: jobs of a single worker type
    - PipelineRunRepository: pipeline runs

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures

Example usage:
    >>> from jobmonitor.persistence import init_database, WorkerJobRepository
    >>> from jobmonitor.domain.models import WorkerType
    >>>
    >>> init_database("postgresql+psycopg2://monitor@db/orchestrator")
    >>> repo = WorkerJobRepository(WorkerType.ANALYZER)
    >>> repo.list_active()
"""

# Database initialization and session management
from .database import close_database, get_engine, get_session, init_database

# Repository classes
from .repositories import PipelineRunRepository, WorkerJobRepository

# Exceptions
from .exceptions import DatabaseConnectionError, PersistenceError

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "WorkerJobRepository",
    "PipelineRunRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
]
