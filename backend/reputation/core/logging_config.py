"""
Centralized logging configuration for the reputation engine.

Structured JSON in production, human-readable in development.
Call setup_logging() once at startup (FastAPI lifespan, Celery worker signal).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from reputation.core.config import get_settings

# Extra attributes promoted into JSON log entries when passed via `extra=`
EXTRA_LOG_FIELDS = (
    "user_id",
    "review_id",
    "lease_id",
    "tenant_group_id",
    "task",
    "task_id",
    "request_id",
    "path",
    "method",
    "status_code",
)


def _current_task() -> tuple[Optional[str], Optional[str]]:
    """(task_id, task_name) of the Celery task running in this thread, if any."""
    from celery import current_task

    if current_task and current_task.request.id:
        return current_task.request.id, current_task.name
    return None, None


class CorrelationIDFilter(logging.Filter):
    """
    Logging filter that injects a correlation ID into all log records.

    API requests use the ID set by CorrelationIDMiddleware. Inside a
    Celery worker (publisher, recognition, cleanup) the task id is used
    instead, and the task name is attached when the call site gave none.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        # Import here to avoid circular imports
        from reputation.core.middleware import get_correlation_id

        correlation_id = get_correlation_id()
        task_id, task_name = _current_task()
        if task_id:
            record.task_id = task_id
            if getattr(record, "task", None) is None:
                record.task = task_name
        record.correlation_id = correlation_id or task_id or "-"
        return True


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id and correlation_id != "-":
            log_entry["correlation_id"] = correlation_id
        for key in EXTRA_LOG_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value
        return json.dumps(log_entry, default=str)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure application-wide logging."""
    settings = get_settings()
    log_level = level or ("DEBUG" if settings.debug else "INFO")

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(CorrelationIDFilter())

    if settings.debug:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s [%(correlation_id)s]: %(message)s",
            datefmt="%H:%M:%S",
        )
    else:
        formatter = JSONFormatter()

    handler.setFormatter(formatter)
    root.addHandler(handler)

    noisy_loggers = [
        "uvicorn.access",
        "httpx",
        "httpcore",
        "hpack",
        "h2",
        "h11",
        "watchfiles",
        "multipart",
        "celery.worker.strategy",
    ]
    for name in noisy_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
