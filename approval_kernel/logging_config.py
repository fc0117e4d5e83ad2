"""Structured JSON logging for the approval kernel.

Every record is one JSON line.  Services bind the request being worked on
(``request_id``, ``actor_id``, ``entity_type``, ``workflow_id``) with
``LogContext.bind`` so that engine traces, escalations and notifications
emitted deeper in the call stack carry the same keys.  Typed
``ApprovalKernelError`` attributes are flattened into ``exc_*`` fields.
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

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """Context fields identifying the approval request a record belongs to.

    ``correlation_id`` ties together every request touched by one caller
    operation, such as an escalation sweep.
    """

    _correlation_id: ContextVar[str | None] = ContextVar(
        "log_correlation_id", default=None
    )
    _request_id: ContextVar[str | None] = ContextVar(
        "log_request_id", default=None
    )
    _actor_id: ContextVar[str | None] = ContextVar(
        "log_actor_id", default=None
    )
    _entity_type: ContextVar[str | None] = ContextVar(
        "log_entity_type", default=None
    )
    _workflow_id: ContextVar[str | None] = ContextVar(
        "log_workflow_id", default=None
    )

    _FIELD_NAMES = (
        "correlation_id",
        "request_id",
        "actor_id",
        "entity_type",
        "workflow_id",
    )

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        request_id: str | None = None,
        actor_id: str | None = None,
        entity_type: str | None = None,
        workflow_id: str | None = None,
    ) -> None:
        """Set fields for the rest of the current context; None leaves a field as is."""
        if correlation_id is not None:
            cls._correlation_id.set(correlation_id)
        if request_id is not None:
            cls._request_id.set(request_id)
        if actor_id is not None:
            cls._actor_id.set(actor_id)
        if entity_type is not None:
            cls._entity_type.set(entity_type)
        if workflow_id is not None:
            cls._workflow_id.set(workflow_id)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        ctx: dict[str, str] = {}
        for name in cls._FIELD_NAMES:
            val = getattr(cls, f"_{name}").get()
            if val is not None:
                ctx[name] = val
        return ctx

    @classmethod
    def clear(cls) -> None:
        for name in cls._FIELD_NAMES:
            getattr(cls, f"_{name}").set(None)

    @classmethod
    def bind(cls, **kwargs: str | None) -> "_LogContextManager":
        """Scope fields to a ``with`` block, e.g. one request mutation."""
        return _LogContextManager(**kwargs)


class _LogContextManager:
    """Sets the bound fields and restores the previous values on exit."""

    def __init__(self, **kwargs: str | None):
        self._kwargs = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        for key, val in self._kwargs.items():
            if val is not None:
                var = getattr(LogContext, f"_{key}", None)
                if var is not None:
                    self._tokens[key] = var.set(val)
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for key, token in self._tokens.items():
            var = getattr(LogContext, f"_{key}", None)
            if var is not None:
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Statuses, ids, deadlines, percentages and approver sets."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(str(v) for v in obj)
        return super().default(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, the
    bound LogContext fields, then the record's ``extra`` keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(
                record.created, tz=UTC
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            # Structured fields from ApprovalKernelError subclasses
            for k, v in vars(exc).items():
                if not k.startswith("_") and k not in ("args", "code"):
                    payload[f"exc_{k}"] = v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "approval_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger for a kernel component, e.g. ``get_logger("services.escalation")``."""
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
    """Attach the JSON handler to the ``approval_kernel`` logger.

    Only the first call has an effect.  The operator scripts call this with
    the level from ``APPROVAL_LOG_LEVEL``.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    if handler is not None:
        h = handler
    else:
        h = logging.StreamHandler(stream or sys.stderr)

    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Drop the handler so the test suite can configure logging again."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
