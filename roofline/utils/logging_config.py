"""
Roofline logging configuration.

One console handler (colored when attached to a TTY) plus an optional file
handler. Records may carry detection and editing context as ``extra`` fields,
which both formatters append to the message.

Usage:
    from roofline.utils.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Selected footprint", extra={"polygon_id": "roof_ab12", "strategy": "point"})
"""

import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


DEFAULT_LOG_LEVEL = os.environ.get("ROOFLINE_LOG_LEVEL", "INFO").upper()

LOG_DIR = Path(os.environ.get("ROOFLINE_LOG_DIR", "logs"))

CONTEXT_FIELDS = ("polygon_id", "address", "request_id", "strategy")


class RooflineFormatter(logging.Formatter):
    """Console formatter with level colors and context extras."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        self.use_colors = use_colors and sys.stdout.isatty()
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        extras = [
            f"{key}={getattr(record, key)}"
            for key in CONTEXT_FIELDS
            if hasattr(record, key)
        ]
        if extras:
            formatted = f"{formatted} [{', '.join(extras)}]"

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            return f"{color}{formatted}{self.RESET}"
        return formatted


class FileFormatter(logging.Formatter):
    """Dict-per-line formatter for log files."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS + ("error_type",):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return str(log_data)


def setup_logging(
    level: str = DEFAULT_LOG_LEVEL,
    log_to_file: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure the ``roofline`` logger tree.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to also log to a file
        log_file: Custom log file path (default: logs/roofline_YYYYMMDD.log)
    """
    package_logger = logging.getLogger("roofline")
    package_logger.setLevel(getattr(logging, level, logging.INFO))
    package_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(RooflineFormatter(use_colors=True))
    console_handler.setLevel(getattr(logging, level, logging.INFO))
    package_logger.addHandler(console_handler)

    if log_to_file:
        LOG_DIR.mkdir(exist_ok=True)
        if log_file is None:
            log_path = LOG_DIR / f"roofline_{datetime.now().strftime('%Y%m%d')}.log"
        else:
            log_path = Path(log_file)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(FileFormatter())
        file_handler.setLevel(logging.DEBUG)
        package_logger.addHandler(file_handler)

    # Quiet HTTP client chatter
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)


_initialized = False


def ensure_logging(level: Optional[str] = None) -> None:
    """Set up logging once per process."""
    global _initialized
    if not _initialized:
        setup_logging(level or DEFAULT_LOG_LEVEL)
        _initialized = True
