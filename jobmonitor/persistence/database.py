"""Database connection and session management.

The monitor only reads from the orchestrator's database. Sessions are never
committed; every session is rolled back and closed when its scope ends.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from jobmonitor.logging import get_logger

from .exceptions import DatabaseConnectionError

# Module-level engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker | None = None

logger = get_logger(__name__, component="database")


def init_database(database_url: str, create_tables: bool = False) -> None:
    """Initialize the database connection.

    This function should be called once during application startup. It creates
    the engine, validates the connection and prepares the session factory.

    Args:
        database_url: Database connection URL
            (e.g., "postgresql+psycopg2://monitor@db/orchestrator")
        create_tables: Create the mapped tables if missing. Only meant for
            local SQLite databases and tests.

    Raises:
        DatabaseConnectionError: If database initialization fails
    """
    global _engine, _session_factory

    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    logger.info(
        "Initializing database",
        extra={
            "event": "database.initializing",
            "database_url": _redact_url(database_url),
        },
    )

    try:
        engine_kwargs = {"pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            # Components query from several threads
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
            if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
                # One shared connection, otherwise every thread sees its own empty database
                engine_kwargs["poolclass"] = StaticPool

        engine = create_engine(database_url, **engine_kwargs)
        _validate_connection(engine)

        if create_tables:
            from .schema import create_schema

            create_schema(engine)

    except DatabaseConnectionError:
        raise
    except Exception as e:
        error_msg = f"Failed to initialize database: {e}"
        logger.error(error_msg, exc_info=True)
        raise DatabaseConnectionError(error_msg) from e

    _engine = engine
    _session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    logger.info(
        "Database initialized successfully",
        extra={
            "event": "database.initialised",
            "database_url": _redact_url(database_url),
        },
    )


def _validate_connection(engine: Engine) -> None:
    """Validate database connection by executing a test query.

    Raises:
        DatabaseConnectionError: If connection test fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.debug("Database connection validated successfully")
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


def _redact_url(url: str) -> str:
    """Redact the password from a database URL for logging."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid database url>"


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Provide a read-only database session.

    Yields:
        Session: SQLAlchemy session for database queries

    Raises:
        DatabaseConnectionError: If database not initialized

    Example:
        >>> with get_session() as session:
        ...     session.get(PipelineRunModel, 42)
    """
    if _session_factory is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_session()"
        )

    session = _session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def get_engine() -> Engine:
    """Get the database engine instance.

    Raises:
        DatabaseConnectionError: If database not initialized
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )

    return _engine


def close_database() -> None:
    """Close database connections and cleanup resources.

    This should be called during application shutdown.
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.info("Closing database connections", extra={"event": "database.closing"})
        _engine.dispose()
        _engine = None
        _session_factory = None
