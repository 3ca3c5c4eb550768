"""Persistence layer exceptions."""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors.

    Periodic checks catch this to skip a single tick when the database
    is unavailable.
    """

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database server not reachable
    - Database driver not installed
    - Session requested before init_database()
    """

    pass
