"""
auditkit - structured audit logs over pluggable storage adapters.

Record who did what, to what, when and from where, then query it back by
actor, resource and event with pagination, ordering and counts. Ships a
ClickHouse adapter (HTTP interface, parameterized SQL) and a SQLAlchemy
adapter behind one contract.
"""

__version__ = "0.1.0"

from auditkit.audit import Audit
from auditkit.core.errors import (
    AuditKitError,
    CorruptRowError,
    InvalidAttributeValueError,
    InvalidConfigurationError,
    InvalidQueryValuesError,
    MissingRequiredAttributeError,
    QueryTimeoutError,
    TransportError,
    TruncatedRowError,
    UnknownAttributeError,
    UnsupportedMethodError,
)
from auditkit.core.query import Query
from auditkit.core.schema import DEFAULT_SCHEMA, EXTENDED_SCHEMA, build_schema
from auditkit.store import (
    AuditAdapter,
    ClickHouseAdapter,
    ClickHouseConfig,
    Log,
    RetentionManager,
    RetentionPolicy,
    SQLAlchemyAdapter,
)

__all__ = [
    # Version
    "__version__",
    # Facade
    "Audit",
    # Model and query
    "Log",
    "Query",
    # Schema
    "DEFAULT_SCHEMA",
    "EXTENDED_SCHEMA",
    "build_schema",
    # Adapters
    "AuditAdapter",
    "ClickHouseAdapter",
    "ClickHouseConfig",
    "SQLAlchemyAdapter",
    # Retention
    "RetentionManager",
    "RetentionPolicy",
    # Errors
    "AuditKitError",
    "CorruptRowError",
    "InvalidAttributeValueError",
    "InvalidConfigurationError",
    "InvalidQueryValuesError",
    "MissingRequiredAttributeError",
    "QueryTimeoutError",
    "TransportError",
    "TruncatedRowError",
    "UnknownAttributeError",
    "UnsupportedMethodError",
]
