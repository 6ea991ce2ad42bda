"""
Query algebra for audit lookups.

A Query is a small immutable directive: a filter (equal, lessThan,
greaterThan, between, in), an ordering (orderAsc, orderDesc) or a pagination
step (limit, offset). Queries are built without any knowledge of the storage
backend; each adapter validates them against its schema when translating.

Example:
    [
        Query.equal("userId", "u1"),
        Query.in_("event", ["update", "delete"]),
        Query.order_desc("time"),
        Query.limit(25),
    ]
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator

from auditkit.core.errors import UnsupportedMethodError


class QueryMethod(str, Enum):
    """Supported query methods."""

    EQUAL = "equal"
    LESS_THAN = "lessThan"
    GREATER_THAN = "greaterThan"
    BETWEEN = "between"
    IN = "in"
    ORDER_ASC = "orderAsc"
    ORDER_DESC = "orderDesc"
    LIMIT = "limit"
    OFFSET = "offset"


FILTER_METHODS = frozenset({
    QueryMethod.EQUAL,
    QueryMethod.LESS_THAN,
    QueryMethod.GREATER_THAN,
    QueryMethod.BETWEEN,
    QueryMethod.IN,
})

ORDER_METHODS = frozenset({QueryMethod.ORDER_ASC, QueryMethod.ORDER_DESC})

PAGINATION_METHODS = frozenset({QueryMethod.LIMIT, QueryMethod.OFFSET})

# Older clients serialized the membership filter as "contains".
_METHOD_ALIASES = {"contains": QueryMethod.IN.value}


class Query(BaseModel):
    """
    A single filter, ordering or pagination directive.

    The method is kept as a plain string so that malformed queries can be
    constructed and are only rejected by the translator, which raises
    UnsupportedMethodError.
    """

    method: str
    attribute: str = ""
    values: tuple[Any, ...] = ()

    model_config = {"frozen": True}

    @field_validator("values", mode="before")
    @classmethod
    def coerce_values(cls, v: Any) -> Any:
        if isinstance(v, list):
            return tuple(v)
        return v

    # === Constructors ===

    @classmethod
    def equal(cls, attribute: str, value: Any) -> Query:
        return cls(method=QueryMethod.EQUAL.value, attribute=attribute, values=(value,))

    @classmethod
    def less_than(cls, attribute: str, value: Any) -> Query:
        return cls(method=QueryMethod.LESS_THAN.value, attribute=attribute, values=(value,))

    @classmethod
    def greater_than(cls, attribute: str, value: Any) -> Query:
        return cls(method=QueryMethod.GREATER_THAN.value, attribute=attribute, values=(value,))

    @classmethod
    def between(cls, attribute: str, start: Any, end: Any) -> Query:
        """Inclusive range filter on both ends."""
        return cls(method=QueryMethod.BETWEEN.value, attribute=attribute, values=(start, end))

    @classmethod
    def in_(cls, attribute: str, values: Iterable[Any]) -> Query:
        return cls(method=QueryMethod.IN.value, attribute=attribute, values=tuple(values))

    @classmethod
    def order_asc(cls, attribute: str = "time") -> Query:
        return cls(method=QueryMethod.ORDER_ASC.value, attribute=attribute)

    @classmethod
    def order_desc(cls, attribute: str = "time") -> Query:
        return cls(method=QueryMethod.ORDER_DESC.value, attribute=attribute)

    @classmethod
    def limit(cls, limit: int) -> Query:
        return cls(method=QueryMethod.LIMIT.value, values=(limit,))

    @classmethod
    def offset(cls, offset: int) -> Query:
        return cls(method=QueryMethod.OFFSET.value, values=(offset,))

    # === Accessors ===

    def value(self, default: Any = None) -> Any:
        """Return the first value, or default when there is none."""
        return self.values[0] if self.values else default

    def resolved_method(self) -> QueryMethod:
        """
        Resolve the method string.

        Raises:
            UnsupportedMethodError: If the method is not a known QueryMethod
        """
        try:
            return QueryMethod(self.method)
        except ValueError:
            raise UnsupportedMethodError(self.method) from None

    @property
    def is_filter(self) -> bool:
        return self.method in {m.value for m in FILTER_METHODS}

    @property
    def is_order(self) -> bool:
        return self.method in {m.value for m in ORDER_METHODS}

    @property
    def is_pagination(self) -> bool:
        return self.method in {m.value for m in PAGINATION_METHODS}

    # === Serialization ===

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire dictionary form."""
        result: dict[str, Any] = {"method": self.method}
        if self.attribute:
            result["attribute"] = self.attribute
        result["values"] = list(self.values)
        return result

    def to_string(self) -> str:
        """Serialize to a JSON string."""
        try:
            return json.dumps(self.to_dict())
        except (TypeError, ValueError) as e:
            raise UnsupportedMethodError(
                self.method, f"Query values are not JSON serializable: {e}"
            ) from e

    @classmethod
    def parse(cls, text: str) -> Query:
        """
        Parse a query from its JSON string form.

        Raises:
            UnsupportedMethodError: If the text is not a JSON object of the
                expected shape
        """
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise UnsupportedMethodError("", f"Invalid query: {e.msg}") from e

        if not isinstance(raw, dict):
            raise UnsupportedMethodError(
                "", f"Invalid query. Must be an object, got {type(raw).__name__}"
            )
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Query:
        method = raw.get("method", "")
        attribute = raw.get("attribute", "")
        values = raw.get("values", [])

        if not isinstance(method, str):
            raise UnsupportedMethodError(
                str(method), f"Invalid query method. Must be a string, got {type(method).__name__}"
            )
        if not isinstance(attribute, str):
            raise UnsupportedMethodError(
                method, f"Invalid query attribute. Must be a string, got {type(attribute).__name__}"
            )
        if not isinstance(values, list):
            raise UnsupportedMethodError(
                method, f"Invalid query values. Must be an array, got {type(values).__name__}"
            )

        method = _METHOD_ALIASES.get(method, method)
        return cls(method=method, attribute=attribute, values=tuple(values))

    @classmethod
    def parse_queries(cls, texts: Iterable[str]) -> list[Query]:
        """Parse a list of JSON query strings."""
        return [cls.parse(text) for text in texts]
