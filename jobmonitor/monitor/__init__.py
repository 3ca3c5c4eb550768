"""Monitoring components: the watcher and the periodic checks."""

from .component import MonitorComponent
from .job_monitor import JobMonitor
from .long_running import LongRunningJobsFinder
from .lost_jobs import LostJobsFinder
from .reaper import Reaper
from .stuck_jobs import StuckJobsFinder

__all__ = [
    "MonitorComponent",
    "JobMonitor",
    "Reaper",
    "LostJobsFinder",
    "LongRunningJobsFinder",
    "StuckJobsFinder",
]
