"""Structured logging configuration.

Features:
- JSON formatted logs for aggregation
- Request correlation IDs
- Group context for registry operations
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
group_var: ContextVar[Optional[str]] = ContextVar("group", default=None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(
        self,
        service_name: str = "schema-registry",
        environment: str = "production",
        include_stack_trace: bool = True,
    ):
        super().__init__()
        self.service_name = service_name
        self.environment = environment
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
        }

        # Add context variables
        if request_id := request_id_var.get():
            log_entry["request_id"] = request_id
        if group := group_var.get():
            log_entry["group"] = group

        # Add extra fields
        if hasattr(record, "extra_fields"):
            log_entry["extra"] = record.extra_fields

        if record.exc_info and self.include_stack_trace:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_entry, default=str)


class StructuredLogger:
    """Logger wrapper that attaches keyword arguments as structured fields."""

    def __init__(self, name: str, level: int = logging.NOTSET):
        self.logger = logging.getLogger(name)
        if level:
            self.logger.setLevel(level)
        self._extra_fields: Dict[str, Any] = {}

    def _log(
        self, level: int, message: str, extra: Optional[Dict[str, Any]] = None
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        fields = {**self._extra_fields, **(extra or {})}
        self.logger.log(level, message, extra={"extra_fields": fields} if fields else None)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, kwargs)

    def with_fields(self, **fields: Any) -> "StructuredLogger":
        """Return a new logger with additional context fields."""
        new_logger = StructuredLogger(self.logger.name)
        new_logger._extra_fields = {**self._extra_fields, **fields}
        return new_logger


def setup_structured_logging(
    service_name: str = "schema-registry",
    environment: str = "production",
    level: int = logging.INFO,
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if json_output:
        formatter: logging.Formatter = StructuredFormatter(
            service_name=service_name,
            environment=environment,
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def setup_logging_from_settings() -> None:
    """Configure logging from the cached runtime settings."""
    from sregistry.core.config import get_settings

    settings = get_settings()
    setup_structured_logging(
        service_name=settings.SERVICE_NAME,
        environment=settings.ENVIRONMENT,
        level=logging.getLevelName(settings.LOG_LEVEL.upper()),
        json_output=settings.LOG_JSON,
    )


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)


@contextmanager
def request_context(
    request_id: Optional[str] = None,
    group: Optional[str] = None,
) -> Iterator[str]:
    """Bind a request id and group to log records emitted inside the block.

    The previous values are restored on exit, also when the block raises.
    """
    req_id = request_id or str(uuid.uuid4())
    request_token = request_id_var.set(req_id)
    group_token = group_var.set(group)
    try:
        yield req_id
    finally:
        group_var.reset(group_token)
        request_id_var.reset(request_token)
