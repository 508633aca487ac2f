"""Structured logging for deletion runs (JSON by default, plain text on request)."""

import json
import logging
import sys
from typing import Any, Dict, Optional

LOG_FORMATS = ("json", "text")


class JsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        """Format LogRecord into JSON string."""
        log_obj: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_obj["error"] = self.formatException(record.exc_info)
            log_obj["error_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None

        if hasattr(record, "extra_fields"):
            log_obj["extra_fields"] = record.extra_fields

        # Paths and exceptions in extra_fields are not JSON types
        return json.dumps(log_obj, default=str)


class TextFormatter(logging.Formatter):
    """Human readable formatter: ``time LEVEL message key=value ...``."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-8s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = getattr(record, "extra_fields", None)
        if extra:
            line += " " + " ".join(f"{key}={value}" for key, value in extra.items())
        return line


def setup_logging(logger_name: str = "asyncrmtree", level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """
    Configure the project logger.

    Args:
        logger_name: Name of the logger
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" for one JSON object per line, "text" for plain lines

    Returns:
        Configured logger instance

    Raises:
        ValueError: If level or log_format is not recognised
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")
    if log_format not in LOG_FORMATS:
        raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {log_format!r}")

    logger = logging.getLogger(logger_name)
    logger.setLevel(numeric_level)

    formatter = JsonFormatter() if log_format == "json" else TextFormatter()

    # Reuse our handler across runs so records are never emitted twice
    handler = next((h for h in logger.handlers if getattr(h, "_asyncrmtree", False)), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler._asyncrmtree = True
        logger.addHandler(handler)
    handler.setFormatter(formatter)

    return logger


def log_with_context(
    logger: logging.Logger, level: str, message: str, extra: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log message with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        extra: Additional context fields to include in the output
    """
    if extra is None:
        extra = {}

    log_method = getattr(logger, level.lower())
    log_method(message, extra={"extra_fields": extra})
