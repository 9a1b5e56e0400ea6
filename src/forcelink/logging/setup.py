"""Logging setup and configuration."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from forcelink.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_MAX_BYTES = 50 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiohttp",
    "aiohttp.access",
    "aiohttp.client",
    "asyncio",
    "urllib3",
]


def setup_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    log_file: Path | str | None = None,
    file_level: int | str = logging.DEBUG,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Configure root logging for applications that use forcelink.

    The library itself only creates module loggers; call this from an
    application entry point to get console (and optionally file) output.

    Args:
        level: Console handler level
        json_format: Use JSONFormatter on the console instead of ConsoleFormatter
        log_file: Optional path for a size-rotated JSON log file
        file_level: File handler level
        max_bytes: Rotate the file once it reaches this size
        backup_count: Number of rotated files to keep
        suppress_noisy: Quiet down HTTP client loggers

    Returns:
        The package logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    return logging.getLogger("forcelink")
