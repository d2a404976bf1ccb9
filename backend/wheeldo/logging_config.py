"""
Logging configuration for Wheeldo.

Console output is colour coded by level during development; set
``WHEELDO_LOG_JSON=true`` to emit one JSON object per line for log
aggregation instead.
"""

import json
import logging
import sys
from typing import Optional

from wheeldo.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that are too chatty at our default level
QUIET_LOGGERS = ("sqlalchemy.engine", "asyncpg", "aiosqlite", "httpcore", "httpx")


class Colors:
    GREY = "\x1b[38;20m"
    GREEN = "\x1b[32;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"


LEVEL_COLORS = {
    logging.DEBUG: Colors.GREY,
    logging.INFO: Colors.GREEN,
    logging.WARNING: Colors.YELLOW,
    logging.ERROR: Colors.RED,
    logging.CRITICAL: Colors.BOLD_RED,
}


class ColoredFormatter(logging.Formatter):
    """Wraps each record in the colour of its level."""

    def format(self, record):
        color = LEVEL_COLORS.get(record.levelno, Colors.RESET)
        formatter = logging.Formatter(color + LOG_FORMAT + Colors.RESET, datefmt=DATE_FORMAT)
        return formatter.format(record)


class JsonFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def setup_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name; defaults to DEBUG when settings.debug is on, else INFO
        json_format: Force JSON output; defaults to settings.log_json
    """
    settings = get_settings()

    log_level = level or ("DEBUG" if settings.debug else "INFO")
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    if json_format is None:
        json_format = settings.log_json

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(JsonFormatter() if json_format else ColoredFormatter())
    root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("arq").setLevel(logging.INFO)

    logging.getLogger("wheeldo").setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger under the ``wheeldo`` namespace.

    Usage:
        from wheeldo.logging_config import get_logger
        logger = get_logger(__name__)
    """
    if not name.startswith("wheeldo"):
        name = f"wheeldo.{name}"
    return logging.getLogger(name)
