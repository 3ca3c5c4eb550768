"""Main entry point for the Kubernetes job monitor."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from jobmonitor.cluster.exceptions import ClusterConnectionError
from jobmonitor.cluster.handler import create_cluster_apis
from jobmonitor.config.environment import EnvironmentConfig
from jobmonitor.config.exceptions import ConfigurationError
from jobmonitor.config.loader import load_config
from jobmonitor.config.models import AppConfig
from jobmonitor.logging import get_logger
from jobmonitor.logging.config import configure_logging
from jobmonitor.monitor import MonitorComponent
from jobmonitor.notifications import FailedJobNotifier, OrchestratorClient
from jobmonitor.persistence.database import close_database, init_database
from jobmonitor.persistence.exceptions import DatabaseConnectionError

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load and prepare runtime configuration.

    Args:
        config_path: Path to configuration file (default locations if None)
        log_level_override: Log level from CLI (takes precedence)

    Returns:
        Tuple of (AppConfig, EnvironmentConfig) with the effective log level set

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    # Apply log level priority: CLI > Environment > Config
    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level

    return app_config, env_config


def build_notifier(app_config: AppConfig, env_config: EnvironmentConfig) -> FailedJobNotifier:
    client = OrchestratorClient(
        env_config.orchestrator_url,
        timeout=app_config.notifications.request_timeout,
    )
    return FailedJobNotifier(client, app_config.notifications)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Kubernetes job monitor - keeps pipeline run state in sync with the worker jobs in the cluster"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run each enabled periodic check once and exit",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the job monitor.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = parse_args(argv)

    try:
        # Step 1: Load configuration early (before logging for format detection)
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        # Step 2: Configure logging
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "Job monitor starting",
            extra={
                "event": "service.starting",
                "namespace": app_config.job_monitor.namespace,
                "log_level": env_config.log_level,
                "once": args.once,
            },
        )

        # Step 3: Connect to the database and the cluster
        init_database(env_config.database_url)
        batch_api, core_api = create_cluster_apis()

        # Step 4: Wire the components
        component = MonitorComponent(
            app_config,
            batch_api,
            core_api,
            build_notifier(app_config, env_config),
        )

        if args.once:
            logger.info("Running periodic checks once", extra={"event": "service.once.starting"})
            success = component.run_once()
            close_database()
            logger.info(
                "Job monitor stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                    "success": success,
                },
            )
            return 0 if success else 1

        # Daemon mode: run until a signal arrives
        shutdown_event = threading.Event()

        def signal_handler(signum, frame):
            logger.info(
                f"Received signal {signum}, shutting down",
                extra={"event": "service.signal_received", "signal": signum},
            )
            shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        component.start()
        logger.info(
            "Job monitor running. Press Ctrl+C to stop",
            extra={"event": "service.daemon_mode.started"},
        )

        shutdown_event.wait()

        component.stop()
        close_database()

        logger.info(
            "Job monitor stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return 0

    except ConfigurationError as e:
        # Configuration errors are already formatted nicely
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except (ClusterConnectionError, DatabaseConnectionError) as e:
        print(f"Startup Error: {e}", file=sys.stderr)
        logger.error(
            f"Startup failed: {e}",
            extra={"event": "service.startup.failed", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        # Unexpected fatal error
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
