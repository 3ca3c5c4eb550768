"""Environment variable loading and validation."""

import os
import re
from typing import Optional

from .exceptions import ConfigurationError


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        database_url: str,
        orchestrator_url: str,
        namespace: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        """Initialize environment configuration."""
        self.database_url = database_url
        self.orchestrator_url = orchestrator_url.rstrip("/")
        self.namespace = namespace
        self.log_level = log_level
        self.environment = environment or "local"


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required environment variables:
    - DATABASE_URL: SQLAlchemy URL of the pipeline database
    - ORCHESTRATOR_URL: Base URL of the orchestrator notification endpoint

    Optional environment variables:
    - MONITOR_NAMESPACE: Override the namespace from the config file
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - ENVIRONMENT: Environment label used in logs (default: local)

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    database_url = os.getenv("DATABASE_URL")
    orchestrator_url = os.getenv("ORCHESTRATOR_URL")

    namespace = os.getenv("MONITOR_NAMESPACE")
    log_level = os.getenv("LOG_LEVEL")
    environment = os.getenv("ENVIRONMENT")

    if not database_url:
        errors.append("Missing required environment variable: DATABASE_URL")

    if not orchestrator_url:
        errors.append("Missing required environment variable: ORCHESTRATOR_URL")
    elif not _is_valid_http_url(orchestrator_url):
        errors.append(
            f"Invalid ORCHESTRATOR_URL: '{orchestrator_url}'. Must start with http:// or https://."
        )

    if namespace is not None and not namespace.strip():
        errors.append("MONITOR_NAMESPACE is set but empty")

    if log_level:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in the values",
                "Ensure DATABASE_URL and ORCHESTRATOR_URL are set",
            ],
        )

    return EnvironmentConfig(
        database_url=database_url,
        orchestrator_url=orchestrator_url,
        namespace=namespace.strip() if namespace else None,
        log_level=log_level.upper() if log_level else None,
        environment=environment,
    )


def _is_valid_http_url(url: str) -> bool:
    """Check that a URL has an http(s) scheme and a host."""
    return bool(re.match(r"^https?://[^/\s]+", url.strip()))
