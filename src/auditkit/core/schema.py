"""
Schema registry for audit rows.

A schema is a flat, validated list of typed attributes plus the secondary
indexes declared over them. Schemas are built by composition: a base set
followed by any number of extension sets. Duplicate names are rejected at
build time rather than silently shadowed.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from auditkit.core.errors import InvalidConfigurationError
from auditkit.core.identifiers import is_identifier

LENGTH_KEY = 255


class AttributeKind(str, Enum):
    """Supported attribute kinds."""

    TEXT = "text"
    DATETIME = "datetime"
    JSON = "json"


class AttributeDescriptor(BaseModel):
    """A single typed column of an audit row."""

    name: str
    kind: AttributeKind = AttributeKind.TEXT
    max_size: int = Field(default=LENGTH_KEY, ge=0)
    required: bool = False

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not is_identifier(v):
            raise ValueError(f"Invalid attribute name: {v!r}")
        return v


class IndexDescriptor(BaseModel):
    """A secondary index over one or more attributes."""

    name: str
    attributes: tuple[str, ...]

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not is_identifier(v):
            raise ValueError(f"Invalid index name: {v!r}")
        return v

    @field_validator("attributes")
    @classmethod
    def validate_attributes(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("An index must cover at least one attribute")
        return v


class SchemaExtension(BaseModel):
    """A composable set of attributes and indexes."""

    name: str
    attributes: tuple[AttributeDescriptor, ...] = ()
    indexes: tuple[IndexDescriptor, ...] = ()

    model_config = {"frozen": True}


class Schema:
    """
    Validated, flattened registry of attributes and indexes.

    Built with build_schema(); instances are never mutated. Use extend() to
    derive a larger schema.
    """

    def __init__(
        self,
        attributes: Iterable[AttributeDescriptor],
        indexes: Iterable[IndexDescriptor],
        parts: Iterable[str] = (),
    ) -> None:
        self._attributes = tuple(attributes)
        self._indexes = tuple(indexes)
        self._parts = tuple(parts)
        self._by_name = {a.name: a for a in self._attributes}

    def attributes(self) -> tuple[AttributeDescriptor, ...]:
        return self._attributes

    def indexes(self) -> tuple[IndexDescriptor, ...]:
        return self._indexes

    def lookup(self, name: str) -> AttributeDescriptor | None:
        return self._by_name.get(name)

    def has(self, name: str) -> bool:
        return name in self._by_name

    def names(self) -> list[str]:
        return [a.name for a in self._attributes]

    @property
    def parts(self) -> tuple[str, ...]:
        """Names of the extension sets this schema was built from."""
        return self._parts

    def extend(self, *extensions: SchemaExtension) -> Schema:
        """Return a new schema with the given extensions appended."""
        current = SchemaExtension(
            name="+".join(self._parts) or "schema",
            attributes=self._attributes,
            indexes=self._indexes,
        )
        schema = build_schema(current, *extensions)
        schema._parts = self._parts + tuple(e.name for e in extensions)
        return schema

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __repr__(self) -> str:
        return f"Schema(parts={list(self._parts)}, attributes={self.names()})"


def build_schema(base: SchemaExtension, *extensions: SchemaExtension) -> Schema:
    """
    Concatenate a base attribute/index set with extension sets.

    Raises:
        InvalidConfigurationError: On a duplicate attribute or index name, or
            an index referencing an undeclared attribute
    """
    attributes: list[AttributeDescriptor] = []
    indexes: list[IndexDescriptor] = []
    seen_attributes: dict[str, str] = {}
    seen_indexes: dict[str, str] = {}

    for part in (base, *extensions):
        for attribute in part.attributes:
            if attribute.name in seen_attributes:
                raise InvalidConfigurationError(
                    f"Attribute '{attribute.name}' from '{part.name}' is already "
                    f"declared by '{seen_attributes[attribute.name]}'",
                    setting="schema",
                )
            seen_attributes[attribute.name] = part.name
            attributes.append(attribute)

        for index in part.indexes:
            if index.name in seen_indexes:
                raise InvalidConfigurationError(
                    f"Index '{index.name}' from '{part.name}' is already "
                    f"declared by '{seen_indexes[index.name]}'",
                    setting="schema",
                )
            seen_indexes[index.name] = part.name
            indexes.append(index)

    for index in indexes:
        for name in index.attributes:
            if name not in seen_attributes:
                raise InvalidConfigurationError(
                    f"Index '{index.name}' references undeclared attribute '{name}'",
                    setting="schema",
                )

    return Schema(attributes, indexes, parts=[base.name, *(e.name for e in extensions)])


def _text(name: str, size: int = LENGTH_KEY, required: bool = False) -> AttributeDescriptor:
    return AttributeDescriptor(name=name, max_size=size, required=required)


def _index(name: str, *attributes: str) -> IndexDescriptor:
    return IndexDescriptor(name=name, attributes=attributes)


# === Predefined sets ===

BASE = SchemaExtension(
    name="base",
    attributes=(
        _text("userId"),
        _text("event", required=True),
        _text("resource"),
        _text("userAgent", size=65534, required=True),
        _text("ip", size=45, required=True),
        _text("location", size=45),
        AttributeDescriptor(name="time", kind=AttributeKind.DATETIME, max_size=0),
        AttributeDescriptor(name="data", kind=AttributeKind.JSON, max_size=16777216),
    ),
    indexes=(
        _index("idx_event", "event"),
        _index("idx_userId_event", "userId", "event"),
        _index("idx_resource_event", "resource", "event"),
        _index("idx_time_desc", "time"),
    ),
)

ACTOR = SchemaExtension(
    name="actor",
    attributes=(_text("userType"), _text("userInternalId")),
    indexes=(
        _index("_key_user_internal_and_event", "userInternalId", "event"),
        _index("_key_user_internal_id", "userInternalId"),
        _index("_key_user_type", "userType"),
    ),
)

RESOURCE = SchemaExtension(
    name="resource",
    attributes=(
        _text("resourceParent"),
        _text("resourceType"),
        _text("resourceId"),
        _text("resourceInternalId"),
    ),
)

GEO = SchemaExtension(
    name="geo",
    attributes=(_text("country"),),
    indexes=(_index("_key_country", "country"),),
)

TENANCY = SchemaExtension(
    name="tenancy",
    attributes=(
        _text("projectId"),
        _text("projectInternalId"),
        _text("teamId"),
        _text("teamInternalId"),
    ),
    indexes=(
        _index("_key_project_internal_id", "projectInternalId"),
        _index("_key_team_internal_id", "teamInternalId"),
    ),
)

ORIGIN = SchemaExtension(
    name="origin",
    attributes=(_text("hostname"),),
    indexes=(_index("_key_hostname", "hostname"),),
)

RESOURCE_DECOMPOSITION = ("resourceParent", "resourceType", "resourceId")

DEFAULT_SCHEMA = build_schema(BASE)

EXTENDED_SCHEMA = build_schema(BASE, ACTOR, RESOURCE, GEO, TENANCY, ORIGIN)
