"""
ClickHouse query compiler.

Compiles Query lists into SQL fragments and a table of bound parameters.
Values never appear in the SQL text: every value is referenced as a typed
placeholder (`{param0:String}`) and shipped separately by the client.
Attribute names are checked against the schema before they are
interpolated, which is what keeps them safe to quote into the statement.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from auditkit.core.errors import InvalidQueryValuesError, UnknownAttributeError
from auditkit.core.identifiers import quote_identifier
from auditkit.core.query import Query, QueryMethod
from auditkit.core.schema import AttributeKind, Schema
from auditkit.store.clickhouse.codec import ColumnLayout, format_datetime

# Upper bound used when an offset is given without a limit.
MAX_LIMIT = 2**64 - 1

_COMPARISON_OPERATORS = {
    QueryMethod.EQUAL: "=",
    QueryMethod.LESS_THAN: "<",
    QueryMethod.GREATER_THAN: ">",
}


@dataclass(frozen=True)
class CompiledQuery:
    """
    Result of compiling a Query list.

    Attributes:
        conditions: WHERE conditions, AND-combined, tenant condition last
        orders: ORDER BY terms, primary first, `id` last as the tiebreaker
        limit: Row limit, if any
        offset: Rows to skip, if any
        params: Bound parameter values by name
    """

    conditions: tuple[str, ...] = ()
    orders: tuple[str, ...] = ()
    limit: int | None = None
    offset: int | None = None
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def where(self) -> str:
        if not self.conditions:
            return ""
        return " WHERE " + " AND ".join(self.conditions)

    @property
    def order_by(self) -> str:
        if not self.orders:
            return ""
        return " ORDER BY " + ", ".join(self.orders)

    @property
    def pagination(self) -> str:
        if self.limit is None and self.offset is None:
            return ""
        clause = " LIMIT {limit:UInt64}"
        if self.offset is not None:
            clause += " OFFSET {offset:UInt64}"
        return clause

    def for_count(self) -> CompiledQuery:
        """Drop ordering and pagination, which are meaningless for a count."""
        params = {k: v for k, v in self.params.items() if k not in ("limit", "offset")}
        return replace(self, orders=(), limit=None, offset=None, params=params)


class ClickHouseCompiler:
    """
    Compiles Query lists against a schema.

    Args:
        schema: The attribute registry used to validate names
        shared_tables: Whether the table has a `tenant` column
        tenant: Tenant to scope every statement to, or None for no scoping
    """

    def __init__(
        self,
        schema: Schema,
        *,
        shared_tables: bool = False,
        tenant: int | None = None,
    ) -> None:
        self.schema = schema
        self.shared_tables = shared_tables
        self.tenant = tenant if shared_tables else None

    def compile(self, queries: Sequence[Query]) -> CompiledQuery:
        """
        Compile queries into fragments and parameters.

        Raises:
            UnknownAttributeError: If a query names an attribute outside the schema
            UnsupportedMethodError: If a query has an unknown method
            InvalidQueryValuesError: If a query has the wrong number or type of values
        """
        conditions: list[str] = []
        orders: list[str] = []
        params: dict[str, Any] = {}
        limit: int | None = None
        offset: int | None = None
        last_direction: str | None = None
        ordered_by_id = False

        for query in queries:
            method = query.resolved_method()

            if method is QueryMethod.LIMIT:
                limit = self._pagination_value(query, method)
            elif method is QueryMethod.OFFSET:
                offset = self._pagination_value(query, method)
            elif method in (QueryMethod.ORDER_ASC, QueryMethod.ORDER_DESC):
                self._check_attribute(query.attribute)
                direction = "ASC" if method is QueryMethod.ORDER_ASC else "DESC"
                orders.append(f"{quote_identifier(query.attribute)} {direction}")
                last_direction = direction
                ordered_by_id = ordered_by_id or query.attribute == "id"
            else:
                self._check_attribute(query.attribute)
                conditions.append(self._condition(query, method, params))

        # id breaks ties so LIMIT/OFFSET pages stay disjoint
        if last_direction is not None and not ordered_by_id:
            orders.append(f"{quote_identifier('id')} {last_direction}")

        if self.tenant is not None:
            conditions.append(f"{quote_identifier('tenant')} = {{tenant:UInt64}}")
            params["tenant"] = self.tenant

        if offset is not None and limit is None:
            limit = MAX_LIMIT
        if limit is not None:
            params["limit"] = limit
        if offset is not None:
            params["offset"] = offset

        return CompiledQuery(
            conditions=tuple(conditions),
            orders=tuple(orders),
            limit=limit,
            offset=offset,
            params=params,
        )

    # === Statements ===

    def select_sql(self, table: str, layout: ColumnLayout, compiled: CompiledQuery) -> str:
        return (
            f"SELECT {layout.select_list()} FROM {table}"
            f"{compiled.where}{compiled.order_by}{compiled.pagination}"
            " FORMAT TabSeparated"
        )

    def count_sql(self, table: str, compiled: CompiledQuery) -> str:
        return f"SELECT count() FROM {table}{compiled.for_count().where} FORMAT TabSeparated"

    def delete_before_sql(self, table: str, threshold: datetime | str) -> tuple[str, dict[str, Any]]:
        """
        DELETE every row whose time is strictly before threshold.

        The engine applies deletes as background mutations, so removed rows
        may remain visible to reads for a short while.
        """
        params: dict[str, Any] = {"threshold": format_datetime(threshold)}
        conditions = [f"{quote_identifier('time')} < {{threshold:DateTime64(3)}}"]
        if self.tenant is not None:
            conditions.append(f"{quote_identifier('tenant')} = {{tenant:UInt64}}")
            params["tenant"] = self.tenant
        return f"DELETE FROM {table} WHERE {' AND '.join(conditions)}", params

    # === Helpers ===

    def _check_attribute(self, attribute: str) -> None:
        if attribute == "id" or self.schema.has(attribute):
            return
        if attribute == "tenant" and self.shared_tables:
            return
        known = ["id", *self.schema.names()]
        if self.shared_tables:
            known.append("tenant")
        raise UnknownAttributeError(attribute, known=known)

    def _param_type(self, attribute: str) -> str:
        if attribute == "tenant":
            return "UInt64"
        descriptor = self.schema.lookup(attribute)
        if descriptor is not None and descriptor.kind is AttributeKind.DATETIME:
            return "DateTime64(3)"
        return "String"

    def _is_json(self, attribute: str) -> bool:
        descriptor = self.schema.lookup(attribute)
        return descriptor is not None and descriptor.kind is AttributeKind.JSON

    def _bind(self, query: Query, value: Any, params: dict[str, Any]) -> str:
        # Only paramN entries exist while conditions are being compiled
        name = f"param{len(params)}"
        param_type = self._param_type(query.attribute)
        try:
            if param_type == "DateTime64(3)":
                value = format_datetime(value)
            elif param_type == "UInt64":
                value = int(value)
            elif not isinstance(value, str):
                value = json.dumps(value) if self._is_json(query.attribute) else str(value)
        except (TypeError, ValueError) as e:
            raise InvalidQueryValuesError(query.method, str(e)) from e
        params[name] = value
        return f"{{{name}:{param_type}}}"

    def _condition(self, query: Query, method: QueryMethod, params: dict[str, Any]) -> str:
        column = quote_identifier(query.attribute)
        values = query.values

        if method in _COMPARISON_OPERATORS:
            if len(values) != 1:
                raise InvalidQueryValuesError(method.value, f"expected 1 value, got {len(values)}")
            if values[0] is None:
                if method is QueryMethod.EQUAL:
                    return f"{column} IS NULL"
                raise InvalidQueryValuesError(method.value, "value cannot be null")
            placeholder = self._bind(query, values[0], params)
            return f"{column} {_COMPARISON_OPERATORS[method]} {placeholder}"

        if method is QueryMethod.BETWEEN:
            if len(values) != 2:
                raise InvalidQueryValuesError(method.value, f"expected 2 values, got {len(values)}")
            if values[0] is None or values[1] is None:
                raise InvalidQueryValuesError(method.value, "bounds cannot be null")
            start = self._bind(query, values[0], params)
            end = self._bind(query, values[1], params)
            return f"{column} BETWEEN {start} AND {end}"

        # QueryMethod.IN
        if not values:
            raise InvalidQueryValuesError(method.value, "expected at least 1 value")
        if any(v is None for v in values):
            raise InvalidQueryValuesError(method.value, "values cannot be null")
        placeholders = ", ".join(self._bind(query, v, params) for v in values)
        return f"{column} IN ({placeholders})"

    @staticmethod
    def _pagination_value(query: Query, method: QueryMethod) -> int:
        if len(query.values) != 1:
            raise InvalidQueryValuesError(method.value, f"expected 1 value, got {len(query.values)}")
        value = query.values[0]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidQueryValuesError(method.value, "value must be a non-negative integer")
        return value
