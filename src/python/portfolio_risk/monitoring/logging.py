"""
Structured Logging for the Portfolio Risk Engine.

Every engine call binds an identifier (``assessment_id`` for full
assessments, ``symbol`` for sizing and stop-loss requests) to a per-thread
context. Both formatters below attach that context to each record, so log
lines from concurrent assessments can be told apart:

    2024-01-02 10:00:00 - portfolio_risk.risk.assessor - INFO - Assessing ... | assessment_id=9f1c...

    {"@timestamp": "...", "level": "INFO", "service": "portfolio-risk",
     "context": {"assessment_id": "9f1c..."}, ...}
"""

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SERVICE_NAME = "portfolio-risk"

_local = threading.local()

# Attributes every LogRecord carries; anything else came in via extra={...}
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def _fields() -> Dict[str, Any]:
    if not hasattr(_local, "fields"):
        _local.fields = {}
    return _local.fields


def get_context() -> Dict[str, Any]:
    """Copy of the fields bound on the current thread."""
    return dict(_fields())


def bind(**kwargs) -> None:
    """Bind fields to the current thread's context."""
    _fields().update(kwargs)


def unbind(*keys: str) -> None:
    """Remove fields from the current thread's context."""
    fields = _fields()
    for key in keys:
        fields.pop(key, None)


def clear_context() -> None:
    """Remove all fields from the current thread's context."""
    _fields().clear()


class BoundLogger:
    """
    Bind context fields for the duration of a ``with`` block.

    On exit the context is restored exactly as it was on entry, so nested
    blocks may rebind the same key.

    Example:
        >>> with BoundLogger(assessment_id=assessment_id):
        ...     logger.info("Assessing portfolio risk")
    """

    def __init__(self, **kwargs):
        self.bindings = kwargs
        self._saved: Optional[Dict[str, Any]] = None

    def __enter__(self) -> "BoundLogger":
        self._saved = get_context()
        bind(**self.bindings)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        fields = _fields()
        fields.clear()
        fields.update(self._saved or {})


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def __init__(
        self,
        include_context: bool = True,
        include_source: bool = False,
        extra_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__()
        self.include_context = include_context
        self.include_source = include_source
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = get_context() if self.include_context else {}
        if context:
            payload["context"] = context

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        payload.update(self.extra_fields)

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_source:
            payload["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """Plain-text formatter with the bound context appended after a ``|``."""

    def __init__(
        self,
        fmt: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        include_context: bool = True,
    ):
        super().__init__(fmt=fmt)
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = get_context() if self.include_context else {}
        if not context:
            return line
        return line + " | " + " ".join(f"{k}={v}" for k, v in context.items())
