"""
Logging context for auditkit.

Carries the adapter, operation and storage scope of the current call so
that every record logged inside it is tagged without threading the values
through each log call.
"""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "auditkit_log_context",
    default=None,
)

CONTEXT_FIELDS = ("adapter", "operation", "database", "namespace", "tenant")


@dataclass
class LogContext:
    """
    Structured logging context.

    Attributes:
        adapter: Adapter name, e.g. "clickhouse"
        operation: Public operation being run, e.g. "find"
        database: Active database
        namespace: Table namespace prefix
        tenant: Tenant the call is scoped to
        extra: Any further fields
    """

    adapter: str | None = None
    operation: str | None = None
    database: str | None = None
    namespace: str | None = None
    tenant: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary of non-None values."""
        result = {
            name: getattr(self, name)
            for name in CONTEXT_FIELDS
            if getattr(self, name) is not None
        }
        result.update(self.extra)
        return result


def get_log_context() -> dict[str, Any]:
    """Get the current log context."""
    ctx = _log_context.get()
    return ctx.copy() if ctx else {}


@contextmanager
def with_log_context(
    context: LogContext | dict[str, Any] | None = None,
    **kwargs: Any,
) -> Iterator[None]:
    """
    Set log context fields within a scope.

    Fields are layered on top of the enclosing context unless a full
    context object is given.

    Example:
        with with_log_context(adapter="clickhouse", operation="find"):
            logger.debug("Executing statement")
    """
    previous = _log_context.get()

    if context is not None:
        new_context = context.to_dict() if isinstance(context, LogContext) else context.copy()
    else:
        new_context = previous.copy() if previous else {}

    new_context.update({k: v for k, v in kwargs.items() if v is not None})
    token = _log_context.set(new_context)

    try:
        yield
    finally:
        _log_context.reset(token)


class ContextFilter(logging.Filter):
    """Inject the current context fields into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_log_context().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
