"""Scheduling of the periodic checks."""

from .service import Scheduler

__all__ = [
    "Scheduler",
]
