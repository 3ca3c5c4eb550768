"""Configuration loader for the job monitor.

The monitor reads its check settings from a YAML file and the connection
settings from the environment. MONITOR_NAMESPACE, if set, replaces the
namespace of the file so one file can serve several deployments.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_LOCATIONS = (Path("config.yaml"), Path("config") / "config.yaml")

EXAMPLE_HINT = "See config.example.yaml for all job_monitor settings and their defaults"


def load_config(config_path: Optional[Path] = None) -> tuple[AppConfig, EnvironmentConfig]:
    """
    Load the monitor configuration.

    Without an explicit path, config.yaml and config/config.yaml are tried
    in this order.

    Returns:
        Tuple of (AppConfig, EnvironmentConfig)

    Raises:
        ConfigurationError: If the file is missing or invalid, or the
            environment lacks a required variable
    """
    config_dict = _read_config_file(_find_config_file(config_path))

    warnings = check_for_warnings(config_dict)
    if warnings:
        emit_warnings(warnings)

    app_config = _validate(config_dict)
    env_config = load_environment_config()

    if env_config.namespace:
        try:
            app_config = app_config.with_namespace(env_config.namespace)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid MONITOR_NAMESPACE: '{env_config.namespace}'",
                errors=_format_validation_errors(e),
                suggestions=["Unset MONITOR_NAMESPACE to use the namespace of the config file"],
            ) from e

    return app_config, env_config


def validate_config_file(config_path: Path) -> List[str]:
    """
    Check a configuration file without reading the environment.

    Returns:
        The problems found, empty if the file is usable
    """
    try:
        _validate(_read_config_file(config_path))
    except ConfigurationError as e:
        return e.errors or [e.message]
    return []


def _find_config_file(config_path: Optional[Path]) -> Path:
    if config_path:
        if not config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                suggestions=["Check the path passed with --config"],
            )
        return config_path

    for candidate in DEFAULT_LOCATIONS:
        if candidate.exists():
            return candidate

    raise ConfigurationError(
        "Configuration file not found",
        errors=[f"Tried: {candidate}" for candidate in DEFAULT_LOCATIONS],
        suggestions=[
            "Copy config.example.yaml to config.yaml and set job_monitor.namespace",
            "Use --config to point to the file of this deployment",
        ],
    )


def _read_config_file(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse {config_file}: {e}",
            suggestions=["Durations like 10m or PT10M need no quotes, but indentation must use spaces"],
        ) from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read {config_file}: {e}") from e

    if not config_dict:
        raise ConfigurationError(
            f"Configuration file {config_file} is empty",
            suggestions=["At least job_monitor.namespace must be set"],
        )
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Configuration file {config_file} must contain a mapping at the top level",
            suggestions=[EXAMPLE_HINT],
        )

    return config_dict


def _validate(config_dict: Dict[str, Any]) -> AppConfig:
    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=_format_validation_errors(e),
            suggestions=[EXAMPLE_HINT, "Durations accept 90s, 10m, 3h, 1d or ISO-8601 like PT10M"],
        ) from e


def _format_validation_errors(error: ValidationError) -> List[str]:
    messages = []
    for detail in error.errors():
        field_path = " -> ".join(str(loc) for loc in detail["loc"])
        if detail["type"] == "missing":
            messages.append(f"Missing required field: {field_path}")
        else:
            messages.append(f"{field_path}: {detail['msg']} (got {detail.get('input')!r})")
    return messages
