"""
Structured logging for auditkit.

JSON and text formatters plus context injection of the adapter, operation
and storage scope of each call.
"""

from auditkit.logging.config import (
    AuditKitLogger,
    LogFormat,
    LogLevel,
    configure_logging,
    get_logger,
)
from auditkit.logging.context import ContextFilter, LogContext, get_log_context, with_log_context
from auditkit.logging.formatters import JSONFormatter, TextFormatter

__all__ = [
    # Configuration
    "configure_logging",
    "get_logger",
    "AuditKitLogger",
    "LogLevel",
    "LogFormat",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    # Context
    "ContextFilter",
    "LogContext",
    "get_log_context",
    "with_log_context",
]
