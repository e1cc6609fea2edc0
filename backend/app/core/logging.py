"""Structured logging with correlation IDs.

Every merge request binds its session identifier as the correlation ID so
that all stage logs of one pipeline run can be joined downstream. Fields
passed through `extra` (session_id, strategy, size, ...) are emitted at the
top level of each JSON line.
"""

import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from app.core.tracing import get_span_id, get_trace_id

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord carries; anything else came in through `extra`.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "botocore", "boto3", "s3transfer")


def get_correlation_id() -> str:
    """Current correlation ID; falls back to the trace ID, then a fresh UUID."""
    cid = correlation_id_var.get()
    if cid is not None:
        return cid
    trace_id = get_trace_id()
    if trace_id:
        return trace_id
    cid = str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


@contextmanager
def bind_correlation_id(correlation_id: str) -> Iterator[str]:
    """Bind a correlation ID for the duration of a block.

    The previous value is restored on exit, so a pipeline run inside a
    request-scoped correlation ID does not clobber it.
    """
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, include_stack_trace: bool = True):
        super().__init__()
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }
        for key, value in (("trace_id", get_trace_id()), ("span_id", get_span_id())):
            if value:
                entry[key] = value

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and key not in entry:
                entry[key] = _jsonable(value)

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["error_type"] = exc_type.__name__ if exc_type else None
            entry["error_message"] = str(exc_value) if exc_value else None
            if self.include_stack_trace and exc_tb is not None:
                entry["stack_trace"] = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))

        return json.dumps(entry, default=str)


class CorrelationIdFilter(logging.Filter):
    """Stamps the active correlation ID on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Route all logging to stdout, as JSON lines unless `json_format` is off."""
    log_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(CorrelationIdFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter(include_stack_trace=include_stack_trace))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s")
        )

    root = logging.getLogger()
    root.setLevel(log_level)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _log(logger: logging.Logger, level: int, message: str, exception: Optional[BaseException], extra: dict) -> None:
    extra["correlation_id"] = get_correlation_id()
    logger.log(level, message, exc_info=exception, extra=extra)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    """Log an error, with traceback when an exception is given."""
    _log(logger, logging.ERROR, message, exception, extra)


def log_warning(logger: logging.Logger, message: str, **extra: Any) -> None:
    _log(logger, logging.WARNING, message, None, extra)


def log_info(logger: logging.Logger, message: str, **extra: Any) -> None:
    _log(logger, logging.INFO, message, None, extra)
