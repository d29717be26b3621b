"""
Logs configuration module for livemix.

Provides centralized configuration for log file storage with support for:
- Default location: ~/.livemix/logs
- Environment variable override: LIVEMIX_LOGS_DIR

Log files are named ``livemix-logs-YYYY-MM-DD-HH-MM-SS.log`` and rotated by
size; rotated files (``.log.1``, ``.log.2``...) are never considered current.
"""

import logging
import os
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path

logger = logging.getLogger(__name__)

# Default logs directory
DEFAULT_LOGS_DIR = "~/.livemix/logs"

# Environment variable for overriding logs directory
LOGS_DIR_ENV_VAR = "LIVEMIX_LOGS_DIR"

LOG_FILE_PREFIX = "livemix-logs-"
LOG_FILE_TIME_FORMAT = "%Y-%m-%d-%H-%M-%S"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logs_dir() -> Path:
    """
    Get the logs directory path.

    Priority order:
    1. LIVEMIX_LOGS_DIR environment variable
    2. Default: ~/.livemix/logs

    Returns:
        Path: Absolute path to the logs directory
    """
    env_dir = os.environ.get(LOGS_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return Path(DEFAULT_LOGS_DIR).expanduser().resolve()


def ensure_logs_dir() -> Path:
    """Get the logs directory path and ensure it exists."""
    logs_dir = get_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_current_log_file() -> Path:
    """Return a fresh log file path stamped with the current local time."""
    timestamp = datetime.now().strftime(LOG_FILE_TIME_FORMAT)
    return get_logs_dir() / f"{LOG_FILE_PREFIX}{timestamp}.log"


def get_most_recent_log_file() -> Path | None:
    """
    Get the most recent base log file.

    Filenames carry a sortable timestamp, so the lexicographically largest
    name is the newest one.

    Returns:
        Path to the newest ``.log`` file, or None if there is none
    """
    logs_dir = get_logs_dir()
    if not logs_dir.is_dir():
        return None

    log_files = sorted(p for p in logs_dir.glob("*.log") if p.is_file())
    if not log_files:
        return None
    return log_files[-1]


def cleanup_old_logs(max_age_days: int = 1) -> None:
    """
    Delete log files (including rotated ones) older than ``max_age_days``.

    Args:
        max_age_days: Maximum age based on file modification time
    """
    logs_dir = get_logs_dir()
    if not logs_dir.is_dir():
        return

    cutoff = (datetime.now() - timedelta(days=max_age_days)).timestamp()
    deleted = 0
    for path in logs_dir.glob("*.log*"):
        if not path.is_file():
            continue
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                deleted += 1
        except OSError as e:
            logger.warning(f"Failed to delete old log file {path}: {e}")

    if deleted:
        logger.info(
            f"Cleaned up {deleted} old log file(s) older than {max_age_days} day(s)"
        )


def configure_logging(level: int = logging.INFO, log_to_file: bool = True) -> Path | None:
    """
    Configure root logging for the livemix process.

    Root stays at WARNING to keep third-party libraries quiet; the livemix
    loggers are raised to ``level``. A rotating file handler is added when
    ``log_to_file`` is set.

    Returns:
        The log file path, or None when logging to console only
    """
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(
            handler, RotatingFileHandler
        ):
            handler.setLevel(level)

    logging.getLogger("livemix").setLevel(level)

    if not log_to_file:
        return None

    ensure_logs_dir()
    cleanup_old_logs(max_age_days=1)
    log_file = get_current_log_file()
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5 MB per file
        backupCount=5,
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(file_handler)
    return log_file
