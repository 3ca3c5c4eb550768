"""Context propagation for structured logging.

Fields pushed here are injected into every log record emitted within the
scope, and the notifier reads the trace ID from here so that messages to the
orchestrator can be correlated with the monitor's logs. Context lives in a
ContextVar; every thread starts with an empty context, so the watcher and
the periodic checks never see each other's fields.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

# Placeholder for identifiers that cannot be determined
UNKNOWN = "unknown"

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Get a copy of the current logging context."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Push new context fields onto the logging context stack.

    This merges new fields with existing context. Use pop_log_context()
    to restore the previous state.

    Args:
        **kwargs: Key-value pairs to add to the logging context

    Returns:
        Token that can be used to restore previous context state

    Example:
        >>> token = push_log_context(run_id=42, trace_id="abc123")
        >>> # ... do work, all logs will include run_id and trace_id ...
        >>> pop_log_context(token)
    """
    current = LogContextVar.get()
    new_context = {**current, **kwargs}
    return LogContextVar.set(new_context)


def pop_log_context(token: Token) -> None:
    """Restore the logging context to the state before the matching push."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Clear all logging context fields.

    This is primarily useful for testing.
    """
    LogContextVar.set({})


def current_trace_id() -> Optional[str]:
    """Return the trace ID of the active context, if a real one is set."""
    trace_id = LogContextVar.get().get("trace_id")
    if not trace_id or trace_id == UNKNOWN:
        return None
    return trace_id


class log_context:
    """Context manager for scoped logging context.

    Automatically pushes context on entry and pops on exit, even if
    an exception occurs.

    Example:
        >>> with log_context(run_id=42, job_name="analyzer-42"):
        ...     logger.info("Deleting job")  # includes run_id and job_name
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
        return False  # Don't suppress exceptions


def run_context(run_id: Optional[Any], trace_id: Optional[str], **kwargs) -> log_context:
    """Scope carrying the identifiers of a pipeline run.

    Missing identifiers are recorded as "unknown" so that log queries on
    these fields still match the record.
    """
    return log_context(
        run_id=run_id if run_id is not None else UNKNOWN,
        trace_id=trace_id or UNKNOWN,
        **kwargs,
    )
