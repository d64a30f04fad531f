"""
Structured JSON logging for the manufacturing order engine.

Every record is one JSON line carrying ``ts``, ``level``, ``logger`` and
``message``, followed by the request-scoped fields bound through
LogContext (which order, which operator, which operation) and any
``extra`` payload.  Exceptions attached with ``exc_info`` are flattened
into ``exc_*`` keys so an error code such as MO_TARGET_REACHED can be
filtered on without parsing the traceback.

All engine loggers live under the ``mo_kernel`` namespace; mo_services and
mo_config log through the same tree.
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
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

ROOT_LOGGER = "mo_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor_id", "mo_id", "operation", "trace_id")

_context: ContextVar[dict[str, str]] = ContextVar("mo_log_context", default={})


class LogContext:
    """
    Request-scoped log fields, isolated per thread and per asyncio task.

    Values are stored as strings so UUID order and actor ids can be bound
    directly.  Unknown field names are ignored.
    """

    @staticmethod
    def _merged(fields: dict[str, Any]) -> dict[str, str]:
        merged = dict(_context.get())
        for name, value in fields.items():
            if name in CONTEXT_FIELDS and value is not None:
                merged[name] = str(value)
        return merged

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Update the given fields; ``None`` leaves a field unchanged."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        current = _context.get()
        return {name: current[name] for name in CONTEXT_FIELDS if name in current}

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Context manager binding ``fields`` for the duration of a block."""
        return _BoundContext(fields)


class _BoundContext:

    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(LogContext._merged(self._fields))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        _context.reset(self._token)


# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # ManufacturingError subclasses keep their context as public attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in ("args", "code"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the engine namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the engine logger tree; later calls are no-ops."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.propagate = False
    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Detach handlers and allow configure_logging to run again (tests)."""
    global _configured
    with _configure_lock:
        _configured = False
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
