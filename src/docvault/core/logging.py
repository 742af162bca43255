"""Logging configuration for DocVault."""

import contextvars
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

from docvault.core.config import Settings

# Context variable for the tus upload being handled in the current task
upload_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar("upload_id", default=None)

_STANDARD_RECORD_FIELDS = frozenset(
    [
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName",
        "relativeCreated", "thread", "threadName", "exc_info",
        "exc_text", "stack_info", "getMessage", "taskName",
    ]
)

_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CloudLoggingFormatter(logging.Formatter):
    """JSON formatter for structured log ingestion.

    Formats log records as single-line JSON objects. Fields passed with
    ``extra={...}`` are merged into the top level of the entry, and
    exceptions are embedded as strings.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "timestamp": timestamp.isoformat().replace("+00:00", "Z"),
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        upload_id = upload_id_context.get()
        if upload_id:
            entry["upload_id"] = upload_id

        entry.update(
            (key, value) for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_FIELDS
        )

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception_type"] = exc_type.__name__
            entry["exception_message"] = str(exc_value)
            entry["exception"] = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))

        return json.dumps(entry, default=str, ensure_ascii=False)


def _resolve_level(env: str, level_name: str) -> int:
    if env == "local":
        return logging.DEBUG
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(settings: Settings) -> None:
    """Configure structured logging for the application.

    Local development gets a plain text format at DEBUG level; every other
    environment gets single-line JSON at LOG_LEVEL.

    Args:
        settings: Application settings, read for ENV and LOG_LEVEL
    """
    log_level = _resolve_level(settings.ENV, settings.LOG_LEVEL)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(_TEXT_FORMAT) if settings.ENV == "local" else CloudLoggingFormatter()
    )

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers = [handler]

    # uvicorn installs its own handlers; route them through ours instead
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        server_logger = logging.getLogger(name)
        server_logger.setLevel(log_level)
        server_logger.handlers = [handler]
        server_logger.propagate = False

    # SQL echo is controlled by DB_ECHO, keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
