"""Structured logging for the Consistency Engine.

Records render as `key=value` pairs. Anything passed through `extra=` (for
example `session_id`, `audit_id`, `chunk_count`) is appended after the
standard fields, so call sites can attach context without a custom adapter.
"""

import logging
import sys
from typing import Any

# Attributes every LogRecord carries; everything else came from `extra=`
_RECORD_ATTRS = set(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}

# Rendered first, in this order, when present
CONTEXT_FIELDS = ("session_id", "audit_id")


class StructuredFormatter(logging.Formatter):
    """key=value formatter that includes extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in log_data and key != "extra_data"
        }
        log_data.update(extras)

        # log_with_context bundles its fields under extra_data
        log_data.update(getattr(record, "extra_data", {}) or {})

        line = " ".join(f"{k}={v}" for k, v in log_data.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the structured stdout handler attached.

    Level is DEBUG when ENGINE_ENV is "dev" and INFO otherwise.

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from consistency_engine.core.config import get_settings

            env = get_settings().ENGINE_ENV
        except Exception:
            # Invalid environment values must not break logging
            env = "prod"
        logger.setLevel(logging.DEBUG if env == "dev" else logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log a message with structured context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Context fields; session_id and audit_id are rendered first
    """
    extra: dict[str, Any] = {
        field: kwargs.pop(field) for field in CONTEXT_FIELDS if field in kwargs
    }
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
