from __future__ import annotations

import datetime as dt
import json
import logging
import os
import sys
import uuid
from logging.handlers import RotatingFileHandler
from typing import Any

UTC = dt.UTC

# Attributes present on every LogRecord; anything else came in through ``extra``.
_STANDARD_FIELDS = frozenset(
    {
        "args",
        "msg",
        "name",
        "levelno",
        "levelname",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "message",
    }
)

# Fields promoted to the top level of the JSON document.
_TRACE_FIELDS = ("correlation_id", "user_id", "bookmark_id")


class EnhancedJsonFormatter(logging.Formatter):
    """JSON formatter emitting one object per record with ``extra`` fields grouped."""

    def __init__(self, include_location: bool = True, include_process_info: bool = False):
        super().__init__()
        self.include_location = include_location
        self.include_process_info = include_process_info
        self.hostname = os.uname().nodename if hasattr(os, "uname") else "unknown"

    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "timestamp": dt.datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "hostname": self.hostname,
        }

        if self.include_location:
            base.update(
                {
                    "module": record.module,
                    "function": record.funcName,
                    "line": record.lineno,
                }
            )

        if self.include_process_info:
            base.update(
                {
                    "process": record.process,
                    "thread_name": getattr(record, "threadName", "MainThread"),
                    "task_name": getattr(record, "taskName", None),
                }
            )

        if record.exc_info:
            base["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if record.stack_info:
            base["stack_trace"] = record.stack_info

        extra_fields: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _STANDARD_FIELDS or key in base:
                continue
            if key in _TRACE_FIELDS:
                base[key] = value
            else:
                extra_fields[key] = value

        if extra_fields:
            base["extra"] = extra_fields

        # Be resilient to non-JSON-serializable values
        return json.dumps(
            base, ensure_ascii=False, default=self._json_serializer, separators=(",", ":")
        )

    def _json_serializer(self, obj: Any) -> str:
        """Custom JSON serializer for non-standard types."""
        if isinstance(obj, dt.datetime | dt.date):
            return obj.isoformat()
        if hasattr(obj, "__dict__"):
            return f"<{obj.__class__.__name__}>"
        return str(obj)


def setup_json_logging(
    level: str = "INFO",
    include_location: bool = True,
    include_process_info: bool = False,
    log_file: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure JSON logging on stdout with optional rotating file output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        include_location: Include module/function/line in each record
        include_process_info: Include process/thread/task information
        log_file: Optional log file path for persistent logging
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated files kept
    """
    lvl = getattr(logging, level.upper(), logging.INFO)
    formatter = EnhancedJsonFormatter(
        include_location=include_location, include_process_info=include_process_info
    )

    root = logging.getLogger()
    root.setLevel(lvl)
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "json_logging_initialized",
        extra={
            "setup_config": {
                "level": level,
                "include_location": include_location,
                "include_process_info": include_process_info,
                "log_file": log_file,
            }
        },
    )


def generate_correlation_id() -> str:
    """Generate a short correlation ID for tracing a session across logs."""
    return uuid.uuid4().hex[:12]
