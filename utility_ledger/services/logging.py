"""Logging configuration for the ledger API server and the reconcile job.

Writes to stdout and a log file. Level comes from LOG_LEVEL (default INFO);
WARNING suits production, DEBUG shows every cascade step.
"""

import logging
import sys
from pathlib import Path

from utility_ledger.config import settings

# Map string level names to logging constants
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level(level_name: str | None = None) -> int:
    """Resolve a level name to a logging constant.

    Args:
        level_name: Level name; falls back to the LOG_LEVEL setting

    Returns:
        Logging level constant (default: INFO)
    """
    level_str = (level_name or settings.log_level).upper()
    return LOG_LEVEL_MAP.get(level_str, logging.INFO)


def setup_server_logging(log_file: str | None = None, level_name: str | None = None) -> None:
    """
    Configure the root logger with stdout and file handlers.

    Args:
        log_file: Path to log file (default: LOG_FILE setting)
        level_name: Optional level override (default: LOG_LEVEL setting)
    """
    log_path = Path(log_file or settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    log_level = get_log_level(level_name)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Avoid duplicate handlers when called twice (API startup + CLI in one process)
    root_logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    file_handler = logging.FileHandler(log_path)
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
