"""Centralized logging configuration for the storages service."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

PACKAGE_LOGGER = "storages_api"

# Per-statement and per-request chatter from the libraries under the service
QUIET_LOGGERS = ("sqlalchemy.engine", "python_multipart", "multipart", "httpx")


def setup_logging(
    log_file_prefix: str = "storages",
    log_dir: Path = Path("./logs"),
    level: str = "INFO",
) -> logging.Logger:
    """
    Configure logging for the service.

    Console and rotating file handlers share one format and are installed on
    the root logger once; later calls only return the package logger. The
    ``storages_api`` loggers run at ``level`` (lister and walker skips are
    logged at DEBUG) while third-party libraries stay at WARNING.

    Args:
        log_file_prefix: Prefix for the log file name (default: "storages")
        log_dir: Directory that receives the log files
        level: Level name for the service's own loggers

    Returns:
        The ``storages_api`` package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    root_logger = logging.getLogger()

    # Only configure if not already configured (avoid duplicate handlers)
    if root_logger.handlers:
        return package_logger

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{log_file_prefix}.log"

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    # 10MB per file, 4 backups
    file_handler = RotatingFileHandler(
        log_file,
        mode="a",
        maxBytes=10 * 1024 * 1024,
        backupCount=4,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    package_logger.setLevel(level.upper())
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    package_logger.info(f"Logging to {log_file} at {level.upper()}")
    return package_logger
