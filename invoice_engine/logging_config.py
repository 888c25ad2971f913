"""
Structured JSON logging for the invoice engine.

Every record under the ``invoice_engine`` logger is rendered as one JSON
line.  The owner and invoice a unit of work acts on are carried in
context variables, so every record emitted inside
``LogContext.bind(owner_id=..., invoice_id=...)`` is tagged with them,
including records from the allocator and the retry loop.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from invoice_engine.exceptions import InvoiceEngineError

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "owner_id": ContextVar("invoice_log_owner_id", default=None),
    "invoice_id": ContextVar("invoice_log_invoice_id", default=None),
}


def _as_text(value: UUID | str) -> str:
    return str(value)


class LogContext:
    """Owner and invoice ids attached to every record of the current task."""

    FIELDS = tuple(_CONTEXT_VARS)

    @classmethod
    def set(
        cls,
        *,
        owner_id: UUID | str | None = None,
        invoice_id: UUID | str | None = None,
    ) -> None:
        """Set context fields. None leaves a field unchanged."""
        if owner_id is not None:
            _CONTEXT_VARS["owner_id"].set(_as_text(owner_id))
        if invoice_id is not None:
            _CONTEXT_VARS["invoice_id"].set(_as_text(invoice_id))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name, var in _CONTEXT_VARS.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: UUID | str | None) -> Iterator[type["LogContext"]]:
        """
        Set fields for the duration of a ``with`` block.

        Previous values (including "unset") are restored on exit.

        Raises:
            TypeError: For a field name other than ``owner_id``/``invoice_id``.
        """
        unknown = set(fields) - set(_CONTEXT_VARS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")

        tokens = [
            (_CONTEXT_VARS[name], _CONTEXT_VARS[name].set(_as_text(value)))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return repr(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, InvoiceEngineError):
        fields["exc_code"] = exc.code
        fields["exc_http_status"] = exc.http_status
        fields["exc_retryable"] = exc.retryable
        for key, value in vars(exc).items():
            if not key.startswith("_"):
                fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "invoice_engine"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the invoice_engine namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``invoice_engine`` logger.

    Only the first call has an effect until ``reset_logging()``.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    engine_logger = logging.getLogger(_LOGGER_PREFIX)
    engine_logger.setLevel(level)
    engine_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    engine_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    engine_logger = logging.getLogger(_LOGGER_PREFIX)
    engine_logger.handlers.clear()
    engine_logger.setLevel(logging.WARNING)
