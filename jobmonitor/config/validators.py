"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from jobmonitor.domain.models import WorkerType

from .duration import DurationParseError, to_timedelta

COMPONENT_FLAGS = {
    "enable_watching": "watcher",
    "enable_reaper": "reaper",
    "enable_lost_jobs": "lost jobs detection",
    "enable_long_running_jobs": "long-running jobs detection",
    "enable_stuck_jobs": "stuck runs detection",
}


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    monitor = config_dict.get("job_monitor", {})
    if not isinstance(monitor, dict):
        return warning_messages

    # Check for disabled components
    disabled = [
        name for flag, name in COMPONENT_FLAGS.items() if monitor.get(flag, True) is False
    ]
    for name in disabled:
        warning_messages.append(f"Component '{name}' is disabled and will not be started")
    if len(disabled) == len(COMPONENT_FLAGS):
        warning_messages.append("All monitoring components are disabled; the monitor will idle")

    # Very short grace periods produce false lost-job reports
    min_age = monitor.get("lost_jobs_min_age")
    if min_age is not None:
        try:
            if to_timedelta(min_age).total_seconds() < 30:
                warning_messages.append(
                    f"Short lost_jobs_min_age ({min_age}) may report jobs that are still being created"
                )
        except DurationParseError:
            # Reported as a validation error later
            pass

    # Worker types without a timeout are never stopped
    timeouts = monitor.get("timeouts")
    if isinstance(timeouts, dict):
        missing = [w.value for w in WorkerType if w.value not in timeouts]
        if missing:
            warning_messages.append(
                f"No timeout configured for: {', '.join(missing)}; these jobs are never stopped"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
