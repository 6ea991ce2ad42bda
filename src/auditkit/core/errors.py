"""
Error taxonomy for auditkit.

All auditkit errors inherit from AuditKitError and include:
- A unique error code for programmatic handling
- A human-readable message
- Optional details for diagnostics (never credentials)
"""

from typing import Any


class AuditKitError(Exception):
    """
    Base class for all auditkit errors.

    Attributes:
        code: Unique error code for programmatic handling
        message: Human-readable error message
        details: Additional error context
    """

    code: str = "AUDITKIT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidConfigurationError(AuditKitError):
    """
    Bad host, port, identifier, compression mode or timeout.

    Always raised locally, before anything reaches the network.
    """

    code = "INVALID_CONFIGURATION"

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            details={"setting": setting} if setting else {},
            **kwargs,
        )


class UnknownAttributeError(AuditKitError):
    """A query or insert referenced a name absent from the schema."""

    code = "UNKNOWN_ATTRIBUTE"

    def __init__(
        self,
        attribute: str,
        known: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"Unknown attribute '{attribute}'",
            details={"attribute": attribute, "known": known or []},
            **kwargs,
        )
        self.attribute = attribute


class MissingRequiredAttributeError(AuditKitError):
    """An insert omitted a required attribute."""

    code = "MISSING_REQUIRED_ATTRIBUTE"

    def __init__(
        self,
        attribute: str,
        position: int | None = None,
        **kwargs: Any,
    ) -> None:
        message = f"Required attribute '{attribute}' is missing"
        if position is not None:
            message += f" in batch entry {position}"
        super().__init__(
            message,
            details={"attribute": attribute, "position": position},
            **kwargs,
        )
        self.attribute = attribute
        self.position = position


class InvalidAttributeValueError(AuditKitError):
    """An insert set an attribute to a value of the wrong type or format."""

    code = "INVALID_ATTRIBUTE_VALUE"

    def __init__(
        self,
        attribute: str,
        reason: str,
        position: int | None = None,
        **kwargs: Any,
    ) -> None:
        message = f"Invalid value for attribute '{attribute}': {reason}"
        if position is not None:
            message += f" (batch entry {position})"
        super().__init__(
            message,
            details={"attribute": attribute, "position": position},
            **kwargs,
        )
        self.attribute = attribute
        self.position = position


class UnsupportedMethodError(AuditKitError):
    """A Query carried a method the translator does not know."""

    code = "UNSUPPORTED_METHOD"

    def __init__(
        self,
        method: str,
        message: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message or f"Unsupported query method '{method}'",
            details={"method": method},
            **kwargs,
        )
        self.method = method


class InvalidQueryValuesError(UnsupportedMethodError):
    """A Query has a known method but malformed values (arity or type)."""

    code = "INVALID_QUERY_VALUES"

    def __init__(self, method: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            method,
            f"Invalid values for query method '{method}': {reason}",
            **kwargs,
        )


class TransportError(AuditKitError):
    """
    HTTP-level failure talking to the engine, including non-2xx responses.

    Carries the remote error text so callers can diagnose without access to
    the engine's logs.
    """

    code = "TRANSPORT_FAILURE"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        sql: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            details={"status_code": status_code, "body": body, "sql": sql},
            **kwargs,
        )
        self.status_code = status_code
        self.body = body
        self.sql = sql


class QueryTimeoutError(AuditKitError):
    """A request exceeded the configured timeout."""

    code = "TIMEOUT"

    def __init__(
        self,
        timeout_ms: int,
        sql: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"Request exceeded timeout of {timeout_ms}ms",
            details={"timeout_ms": timeout_ms, "sql": sql},
            **kwargs,
        )
        self.timeout_ms = timeout_ms


class CorruptRowError(AuditKitError):
    """A response row could not be decoded."""

    code = "CORRUPT_ROW"

    def __init__(
        self,
        message: str,
        column: str | None = None,
        line: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            details={"column": column, "line": line},
            **kwargs,
        )


class TruncatedRowError(CorruptRowError):
    """A response row had fewer fields than the column layout expects."""

    code = "TRUNCATED_ROW"

    def __init__(
        self,
        expected: int,
        received: int,
        line: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"Row has {received} fields, expected {expected}",
            line=line,
            **kwargs,
        )
        self.details.update({"expected": expected, "received": received})
