"""
Structured logging for the notice ledger.

Responsibility:
    Writes one JSON object per log line.  Each line carries the
    request-scoped identifiers bound by the gateway and the services
    (correlation, actor, collector, notice, external transaction) plus the
    record's ``extra`` fields.

Architecture position:
    Ledger > Infrastructure.  Imported by every layer; imports nothing else
    from notice_ledger.

Invariants:
    - Amounts are written as exact decimal strings, never as JSON numbers.
    - A value logged under a credential key (secret, token, authorization,
      encryption key) is replaced by a fixed mask.
    - A NoticeLedgerError attached to a record contributes its code, its
      kind and its structured attributes as ``exc_*`` fields.

Failure modes:
    - LogContext.set / LogContext.bind with an unknown field: TypeError.
    - configure_logging with an unknown level name: ValueError.
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
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "notice_ledger"

# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

_CONTEXT: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"notice_ledger_log_{name}", default=None)
    for name in (
        "correlation_id",
        "actor_id",
        "collector_id",
        "notice_id",
        "external_txn_id",
    )
}


def _resolve_fields(fields: dict[str, object]) -> list[tuple[ContextVar, str]]:
    """Validate every name first so a typo never leaves half a context set."""
    unknown = sorted(set(fields) - set(_CONTEXT))
    if unknown:
        raise TypeError(f"unknown log context field(s): {', '.join(unknown)}")
    return [
        (_CONTEXT[name], str(value))
        for name, value in fields.items()
        if value is not None
    ]


class LogContext:
    """
    Identifiers attached to every log line of the current request.

    Backed by ContextVars, so values are private to a thread or an asyncio
    task.  Values are stored as strings: UUIDs may be passed directly.
    ``None`` never overwrites a field.
    """

    FIELDS = tuple(_CONTEXT)

    @staticmethod
    def set(**fields: object) -> None:
        for var, value in _resolve_fields(fields):
            var.set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        values = {name: var.get() for name, var in _CONTEXT.items()}
        return {name: value for name, value in values.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: object) -> Iterator[None]:
        """Bind fields for the block; previous values come back on exit."""
        tokens: list[tuple[ContextVar, Token]] = [
            (var, var.set(value)) for var, value in _resolve_fields(fields)
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}

_CREDENTIAL_KEYS = frozenset(
    {"secret", "secret_key", "token", "authorization", "encryption_key", "password"}
)
_MASK = "[redacted]"


def _to_json(obj: Any) -> Any:
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    kind = getattr(exc, "kind", None)
    if kind is not None:
        fields["exc_kind"] = kind
    for key, value in vars(exc).items():
        if not key.startswith("_"):
            fields[f"exc_{key}"] = value
    return fields


def _is_credential(key: str) -> bool:
    return key.removeprefix("exc_").lower() in _CREDENTIAL_KEYS


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

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        for key, value in payload.items():
            if value is not None and _is_credential(key):
                payload[key] = _MASK
        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the notice_ledger namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelNamesMapping().get(level.upper())
    if resolved is None:
        raise ValueError(f"unknown log level {level!r}")
    return resolved


_handler: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the notice_ledger logger.

    ``level`` is a logging constant or a name such as ``"INFO"`` (the form
    ``LedgerConfig.log_level`` takes).  Only the first call has an effect
    until ``reset_logging`` runs.
    """
    global _handler
    resolved = _resolve_level(level)
    with _lock:
        if _handler is not None:
            return
        _handler = handler if handler is not None else logging.StreamHandler(
            stream or sys.stderr
        )
        _handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(resolved)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Detach every notice_ledger handler. Test support."""
    global _handler
    with _lock:
        _handler = None
        root = logging.getLogger(_LOGGER_PREFIX)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
