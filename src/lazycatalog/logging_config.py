"""
Logging setup for lazycatalog.

Configures the ``lazycatalog`` logger with a console handler and an optional
rotating file handler, using the options from ``lazycatalog.config``.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from typing import Optional

from lazycatalog.config import Settings, settings

STANDARD_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    return logging.Formatter(fmt=STANDARD_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    context: str = "cli",
    level: Optional[str] = None,
    config: Optional[Settings] = None,
) -> logging.Logger:
    """
    Configure the ``lazycatalog`` logger.

    Args:
        context: Name of the running component; used for the log file name
        level: Log level override (defaults to config.log_level)
        config: Settings to use (defaults to the global settings)

    Returns:
        The configured package logger

    Raises:
        PermissionError: If file logging is enabled and the log directory
            cannot be created
    """
    config = config or settings
    package_logger = logging.getLogger("lazycatalog")
    package_logger.setLevel((level or config.log_level).upper())

    # Re-running setup replaces handlers instead of stacking them
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = _build_formatter(config.log_format)

    if config.log_console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    if config.log_file_enabled:
        log_dir = config.log_directory
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{context}.log",
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    package_logger.propagate = False
    return package_logger
