"""
Structured logging for the POS ledger.

Every record under the ``pos_ledger`` logger is written as one JSON object
per line.  Sale context bound with ``LogContext.bind`` (sale_id, actor_id,
idempotency_key) is merged into each record.  A ledger exception passed as
``exc_info`` contributes its ``code`` and structured attributes as ``exc_*``
keys, so a rejected sale can be traced from the log alone.
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, TextIO
from uuid import UUID

ROOT_LOGGER_NAME = "pos_ledger"

CONTEXT_FIELDS = ("sale_id", "actor_id", "idempotency_key")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_bound: ContextVar[Mapping[str, str]] = ContextVar("pos_ledger_log_context", default=_EMPTY)


class LogContext:
    """Sale-scoped fields attached to every record on the current thread or task."""

    @staticmethod
    def current() -> dict[str, str]:
        return dict(_bound.get())

    @staticmethod
    def clear() -> None:
        _bound.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """
        Add fields for the duration of the block, then restore the outer ones.

        None values are skipped so optional fields can be passed straight
        through.  Unknown names raise TypeError.
        """
        unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(unknown)}")
        merged = dict(_bound.get())
        merged.update((k, v) for k, v in fields.items() if v is not None)
        token = _bound.set(MappingProxyType(merged))
        try:
            yield
        finally:
            _bound.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return repr(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_bound.get())
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                entry.setdefault(key, value)
        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger for a ledger module, e.g. ``get_logger("services.sale_engine")``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_installed: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install the JSON handler on the ``pos_ledger`` logger.

    Only the first call installs anything; later calls return the handler
    already in place.  Records do not propagate to the root logger.
    """
    global _installed
    with _lock:
        if _installed is None:
            _installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
            _installed.setFormatter(StructuredFormatter())
            root = logging.getLogger(ROOT_LOGGER_NAME)
            root.setLevel(level)
            root.propagate = False
            root.addHandler(_installed)
        return _installed


def reset_logging() -> None:
    """Remove the installed handler and restore the logger's defaults."""
    global _installed
    with _lock:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if _installed is not None:
            root.removeHandler(_installed)
            _installed = None
        root.setLevel(logging.NOTSET)
        root.propagate = True
