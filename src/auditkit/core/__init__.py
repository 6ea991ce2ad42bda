"""
Core building blocks: errors, schema registry, query algebra.
"""

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
from auditkit.core.identifiers import quote_identifier, validate_hostname, validate_identifier
from auditkit.core.query import Query, QueryMethod
from auditkit.core.resource import ResourcePath, parse_resource
from auditkit.core.schema import (
    ACTOR,
    BASE,
    DEFAULT_SCHEMA,
    EXTENDED_SCHEMA,
    GEO,
    ORIGIN,
    RESOURCE,
    TENANCY,
    AttributeDescriptor,
    AttributeKind,
    IndexDescriptor,
    Schema,
    SchemaExtension,
    build_schema,
)

__all__ = [
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
    # Identifiers
    "quote_identifier",
    "validate_hostname",
    "validate_identifier",
    # Query
    "Query",
    "QueryMethod",
    # Resource
    "ResourcePath",
    "parse_resource",
    # Schema
    "AttributeDescriptor",
    "AttributeKind",
    "IndexDescriptor",
    "Schema",
    "SchemaExtension",
    "build_schema",
    "BASE",
    "ACTOR",
    "RESOURCE",
    "GEO",
    "TENANCY",
    "ORIGIN",
    "DEFAULT_SCHEMA",
    "EXTENDED_SCHEMA",
]
