"""
Structured JSON logging for the planning kernel.

Every record under the ``planning_kernel`` logger is written as one JSON
object: timestamp, level, logger, event name, the request-scoped fields
held by ``LogContext``, any ``extra=`` fields, and for kernel exceptions
their ``code`` plus structured attributes (``exc_code``, ``exc_entity_type``,
...), so an outer layer can alert on codes without parsing messages.
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

_LOGGER_PREFIX = "planning_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("correlation_id", "actor_id", "entity_id", "trace_id")

_context: ContextVar[dict[str, str]] = ContextVar("planning_log_context", default={})


class LogContext:
    """
    Request-scoped log fields, safe across threads and tasks.

    Only ``correlation_id``, ``actor_id``, ``entity_id`` and ``trace_id``
    are carried; other names are ignored.
    """

    @staticmethod
    def _accepted(fields: dict[str, Any]) -> dict[str, str]:
        return {
            k: str(v) for k, v in fields.items()
            if k in _CONTEXT_FIELDS and v is not None
        }

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Merge non-None fields into the current context."""
        accepted = cls._accepted(fields)
        if accepted:
            _context.set({**_context.get(), **accepted})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Context manager: set fields on entry, restore the previous context on exit."""
        return _BoundContext(cls._accepted(fields))


class _BoundContext:
    def __init__(self, fields: dict[str, str]):
        self._fields = fields
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set({**_context.get(), **self._fields})
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        _context.reset(self._token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RESERVED: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    """Fallback encoder for kernel value types."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
        # Structured attributes of PlanningKernelError subclasses
        fields.update(
            (f"exc_{name}", value) for name, value in vars(exc).items()
            if not name.startswith("_") and name != "code"
        )
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
        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RESERVED and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the planning_kernel namespace, e.g. ``services.workflow``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the planning_kernel logger.

    Idempotent: only the first call in a process takes effect, until
    ``reset_logging()``.  Records do not propagate to the root logger.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``.  For tests."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
