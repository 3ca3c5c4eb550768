"""Configuration schema models using Pydantic."""

from datetime import timedelta
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from jobmonitor.domain.models import WorkerType

from .duration import DurationParseError, to_timedelta, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _duration(value):
    try:
        duration = to_timedelta(value)
        validate_duration_range(int(duration.total_seconds()))
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return duration


DEFAULT_TIMEOUTS = {
    WorkerType.CONFIG: timedelta(minutes=10),
    WorkerType.ANALYZER: timedelta(hours=3),
    WorkerType.ADVISOR: timedelta(hours=1),
    WorkerType.SCANNER: timedelta(hours=24),
    WorkerType.EVALUATOR: timedelta(hours=1),
    WorkerType.REPORTER: timedelta(hours=1),
    WorkerType.NOTIFIER: timedelta(minutes=30),
}


class MonitorConfig(BaseModel):
    """Settings of the job monitor.

    Loaded once at startup and never modified afterwards. Durations accept
    seconds, human-readable strings ("5m", "1h30m") or ISO-8601 ("PT5M").
    """

    namespace: str = Field(..., min_length=1, description="Kubernetes namespace to monitor")

    reaper_interval: timedelta = Field(
        timedelta(minutes=10), description="Interval in which the Reaper runs"
    )
    reaper_max_age: timedelta = Field(
        timedelta(minutes=10), description="Completed jobs older than this are deleted by the Reaper"
    )
    lost_jobs_interval: timedelta = Field(
        timedelta(minutes=2), description="Interval of the lost jobs detection"
    )
    lost_jobs_min_age: timedelta = Field(
        timedelta(minutes=1),
        description="Minimum age of a database job before it can be considered lost",
    )
    recently_processed_interval: timedelta = Field(
        timedelta(minutes=1),
        description="Window in which a handled job is not processed a second time",
    )
    long_running_jobs_interval: timedelta = Field(
        timedelta(minutes=1), description="Interval of the long-running jobs detection"
    )
    stuck_jobs_interval: timedelta = Field(
        timedelta(minutes=10), description="Interval of the stuck runs detection"
    )
    stuck_jobs_min_age: timedelta = Field(
        timedelta(minutes=20), description="Minimum age of an active run before it can be stuck"
    )
    timeouts: Dict[WorkerType, timedelta] = Field(
        default_factory=lambda: dict(DEFAULT_TIMEOUTS),
        description="Maximum running time per worker type",
    )

    enable_watching: bool = Field(True, description="Start the watcher component")
    enable_reaper: bool = Field(True, description="Start the Reaper")
    enable_lost_jobs: bool = Field(True, description="Start the lost jobs detection")
    enable_long_running_jobs: bool = Field(True, description="Start the long-running jobs detection")
    enable_stuck_jobs: bool = Field(True, description="Start the stuck runs detection")
    enable_lost_schedules: bool = Field(
        True, description="Report active runs without any job in the cluster as part of the lost jobs check"
    )

    model_config = {"frozen": True}

    @field_validator("namespace")
    @classmethod
    def strip_namespace(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("namespace cannot be empty or whitespace-only")
        return stripped

    @field_validator(
        "reaper_interval",
        "reaper_max_age",
        "lost_jobs_interval",
        "lost_jobs_min_age",
        "recently_processed_interval",
        "long_running_jobs_interval",
        "stuck_jobs_interval",
        "stuck_jobs_min_age",
        mode="before",
    )
    @classmethod
    def parse_durations(cls, v):
        """Parse duration values into timedeltas."""
        return _duration(v)

    @field_validator("timeouts", mode="before")
    @classmethod
    def parse_timeouts(cls, v):
        """Parse per-worker timeouts; unknown worker names are rejected by the enum."""
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("timeouts must be a mapping of worker type to duration")
        return {key: _duration(value) for key, value in v.items()}

    def timeout_for(self, worker_type: WorkerType) -> Optional[timedelta]:
        """Get the configured timeout of a worker type, if any."""
        return self.timeouts.get(worker_type)


class NotificationConfig(BaseModel):
    """Delivery settings for orchestrator notifications."""

    max_retries: int = Field(
        0, ge=0, le=10, description="Retry attempts for failed deliveries (0 = fire-and-forget)"
    )
    retry_backoff_multiplier: float = Field(
        2.0, ge=1.0, le=5.0, description="Exponential backoff multiplier for retries"
    )
    retry_initial_delay: float = Field(
        1.0, ge=0, le=60, description="Initial retry delay in seconds"
    )
    request_timeout: int = Field(
        10, ge=1, le=300, description="HTTP timeout for a single delivery attempt (seconds)"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the job monitor."""

    job_monitor: MonitorConfig = Field(..., description="Monitoring settings")
    notifications: NotificationConfig = Field(
        default_factory=NotificationConfig, description="Notification delivery settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    def with_namespace(self, namespace: str) -> "AppConfig":
        """Return a copy with the monitored namespace replaced.

        Raises:
            ValidationError: If the namespace is blank
        """
        monitor = MonitorConfig.model_validate(
            {**self.job_monitor.model_dump(), "namespace": namespace}
        )
        return self.model_copy(update={"job_monitor": monitor})
