"""
Structured JSON logging for the fleet billing kernel.

Every logger lives under the ``fleet_billing`` namespace and writes one JSON
object per line.  Run-scoped fields (run, period, driver, actor) are carried
in a context variable so nested calls pick them up without threading them
through every signature:

    with LogContext.bind(run_id=run_id, period_code="2026-W07"):
        logger.info("billing_run_started")
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from types import MappingProxyType
from typing import Any

NAMESPACE = "fleet_billing"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "run_id",
    "period_code",
    "driver_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("fleet_billing_log_context", default=_EMPTY)


def _merged(updates: Mapping[str, Any]) -> Mapping[str, str]:
    fields = dict(_context.get())
    for name, value in updates.items():
        if name not in CONTEXT_FIELDS:
            raise TypeError(f"Unknown log context field: {name}")
        if value is not None:
            fields[name] = str(value)
    return MappingProxyType(fields)


class LogContext:
    """Run-scoped log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Overwrite the named fields for the rest of the current context. None is ignored."""
        _context.set(_merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields for the duration of a block, restoring the outer values after.

        Values are stringified, so UUIDs can be passed as they are.
        """
        token = _context.set(_merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else arrived through extra=
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # UUID, Decimal and Fraction read back from their str()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON line per record: header, context, extras, then exception details."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_json_default)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # FleetBillingError subclasses keep their structured fields as attributes
        fields.update(
            (f"exc_{name}", value)
            for name, value in vars(exc).items()
            if not name.startswith("_") and name != "code"
        )
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Child logger of the fleet_billing namespace, e.g. ``get_logger("services.billing_run")``."""
    return logging.getLogger(f"{NAMESPACE}.{name}")


_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to the fleet_billing namespace. Later calls are no-ops."""
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        _installed_handler = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        _installed_handler.setFormatter(StructuredFormatter())

        namespace = logging.getLogger(NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        namespace.addHandler(_installed_handler)


def reset_logging() -> None:
    """Detach every handler so the next configure_logging() call applies. Tests only."""
    global _installed_handler
    with _setup_lock:
        _installed_handler = None
        namespace = logging.getLogger(NAMESPACE)
        namespace.handlers.clear()
        namespace.setLevel(logging.WARNING)
