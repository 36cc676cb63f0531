"""
Structured logging for the inventory ledger.

Responsibility:
    Turns every record under the ``coldstore_kernel`` logger into one JSON
    object per line, stamped with the context of the ledger operation that
    produced it.

Architecture position:
    Kernel -- shared infrastructure, imported by db, services and selectors.
    Configuration values (the level) are passed in by callers; this module
    never reads settings itself.

Context fields (all optional, stringified):
    correlation_id -- one unit of work; retries of that unit share it.
    actor_id       -- CallerContext.actor_id of the operation.
    facility_id    -- facility whose stock the operation touches.
    voucher_id     -- receipt or delivery id, once the voucher row exists.

Ledger errors attached with ``exc_info`` are flattened into ``exc_code``,
``exc_status``, ``exc_retryable`` and one ``exc_<attr>`` key per structured
attribute, so a failed withdrawal logs its requested/available counts as
fields rather than inside a message.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
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
from enum import Enum
from typing import Any
from uuid import UUID

from coldstore_kernel.exceptions import LedgerError

ROOT_LOGGER = "coldstore_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor_id", "facility_id", "voucher_id")

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"coldstore_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _check_fields(fields: dict[str, object]) -> None:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")


class LogContext:
    """Per-task log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(**fields: object) -> None:
        """Set the given fields; ``None`` leaves a field untouched."""
        _check_fields(fields)
        for name, value in fields.items():
            if value is not None:
                _context[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: object) -> Iterator[None]:
        """Set fields for the duration of the block, then restore them."""
        _check_fields(fields)
        tokens = [
            (_context[name], _context[name].set(str(value)))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

    @classmethod
    def for_operation(
        cls,
        actor_id: UUID,
        facility_id: UUID,
        voucher_id: UUID | None = None,
    ):
        """Bind the fields every ledger write carries."""
        return cls.bind(actor_id=actor_id, facility_id=facility_id, voucher_id=voucher_id)


# LogRecord attributes that are plumbing, not payload.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # UUID and anything else without a JSON form
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, LedgerError):
        fields["exc_code"] = exc.code
        fields["exc_status"] = exc.status
        fields["exc_retryable"] = exc.retryable
        for attr, value in vars(exc).items():
            if not attr.startswith("_"):
                fields[f"exc_{attr}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``coldstore_kernel`` namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_installed: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Attach the JSON handler to the ``coldstore_kernel`` logger.

    Only the first call has an effect until reset_logging(); engine
    initialization calls this too, so scripts that configured a level
    first keep it.
    """
    global _installed
    root = logging.getLogger(ROOT_LOGGER)
    with _lock:
        if _installed is not None:
            return root
        _installed = handler or logging.StreamHandler(stream or sys.stderr)
        _installed.setFormatter(StructuredFormatter())
        root.addHandler(_installed)
        root.setLevel(level.upper() if isinstance(level, str) else level)
        root.propagate = False
    return root


def reset_logging() -> None:
    """Detach the installed handler. Tests only."""
    global _installed
    root = logging.getLogger(ROOT_LOGGER)
    with _lock:
        if _installed is not None:
            root.removeHandler(_installed)
            _installed = None
        root.setLevel(logging.WARNING)
