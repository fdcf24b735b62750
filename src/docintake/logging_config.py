"""
Structured Logging
==================
JSON and plain-text formatters plus root logger setup for intake services.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime
from io import StringIO
from typing import Any, Optional


# Correlation id of the current request or job, attached to every record
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

DEFAULT_MASK_FIELDS = [
    "access_token",
    "refresh_token",
    "client_secret",
    "encrypted_credentials",
    "webhook_secret",
]

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName",
))


def _format_traceback(exc_info) -> Optional[str]:
    if not exc_info or not exc_info[2]:
        return None
    sio = StringIO()
    traceback.print_exception(exc_info[0], exc_info[1], exc_info[2], file=sio)
    return sio.getvalue()


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def __init__(self, mask_fields: Optional[list[str]] = None):
        super().__init__()
        self.mask_fields = set(f.lower() for f in (mask_fields or DEFAULT_MASK_FIELDS))

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_dict: dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        cid = correlation_id.get()
        if cid:
            log_dict["correlation_id"] = cid

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if key.lower() in self.mask_fields:
                value = "***MASKED***"
            log_dict[key] = value

        if record.exc_info:
            log_dict["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": _format_traceback(record.exc_info),
            }

        return json.dumps(log_dict, default=str)


class TextFormatter(logging.Formatter):
    """Plain text log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)
        cid = correlation_id.get()
        context = f" [{cid[:8]}]" if cid else ""

        formatted = f"{timestamp} {level} {record.name}{context} - {record.getMessage()}"

        if record.exc_info:
            formatted += "\n" + (_format_traceback(record.exc_info) or "")

        return formatted


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    mask_fields: Optional[list[str]] = None,
) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Log level name
        json_output: Emit JSON lines instead of plain text
        mask_fields: Extra-field names whose values are masked in JSON output
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(mask_fields) if json_output else TextFormatter())
    root.addHandler(handler)

    # SQL echo is controlled by DatabaseConfig.echo_sql
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
