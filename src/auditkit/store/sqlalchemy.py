"""
SQLAlchemy-based audit adapter.

General-purpose transactional storage behind the same contract as the
ClickHouse adapter. The table is built from the schema registry with
SQLAlchemy Core, and the Query algebra is compiled to Core expressions with
the same attribute validation, tenant scoping and pagination rules.
Supports both sync and async engines.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any, TypeVar

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    Text,
    delete,
    func,
    insert,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.ext.asyncio import AsyncEngine

from auditkit.core.errors import (
    CorruptRowError,
    InvalidConfigurationError,
    InvalidQueryValuesError,
    UnknownAttributeError,
)
from auditkit.core.identifiers import validate_identifier
from auditkit.core.query import Query, QueryMethod
from auditkit.core.schema import DEFAULT_SCHEMA, AttributeDescriptor, AttributeKind, Schema
from auditkit.logging import get_logger, with_log_context
from auditkit.store.base import AuditAdapter
from auditkit.store.models import COLUMN_TO_FIELD, Log
from auditkit.store.records import build_log, prepare_record, to_utc

logger = get_logger(__name__)

T = TypeVar("T")

# Longest text column stored as VARCHAR; anything larger becomes TEXT.
MAX_VARCHAR = 16383


def _naive_utc(value: datetime | str) -> datetime:
    return to_utc(value).replace(tzinfo=None)


def _column(attribute: AttributeDescriptor) -> Column:
    if attribute.kind is AttributeKind.DATETIME:
        column_type: Any = DateTime()
    elif attribute.kind is AttributeKind.JSON or attribute.max_size > MAX_VARCHAR:
        column_type = Text()
    else:
        column_type = String(attribute.max_size or 255)
    nullable = not attribute.required and attribute.name != "time"
    return Column(attribute.name, column_type, nullable=nullable)


def build_table(metadata: MetaData, name: str, schema: Schema, shared_tables: bool) -> Table:
    """
    Declare the audit table for a schema.

    Index names are prefixed with the table name since some databases
    require them to be unique per database.
    """
    columns: list[Any] = [Column("id", String(255), primary_key=True)]
    columns.extend(_column(a) for a in schema.attributes())
    if shared_tables:
        columns.append(Column("tenant", BigInteger, nullable=True))
    columns.extend(
        Index(f"{name}_{index.name}", *index.attributes) for index in schema.indexes()
    )
    return Table(name, metadata, *columns)


class SQLAlchemyAdapter(AuditAdapter):
    """
    Audit adapter using SQLAlchemy for SQL database access.

    Usage with a sync engine:
        from sqlalchemy import create_engine

        adapter = SQLAlchemyAdapter(create_engine("sqlite:///audit.db"))
        await adapter.setup()
        await adapter.create({"event": "login", "userAgent": "curl", "ip": "::1"})

    Usage with an async engine:
        from sqlalchemy.ext.asyncio import create_async_engine

        adapter = SQLAlchemyAdapter(create_async_engine("postgresql+asyncpg://..."))

    Sync engines run each operation in the default executor. Every
    operation runs in its own transaction.
    """

    def __init__(
        self,
        engine: Engine | AsyncEngine,
        schema: Schema = DEFAULT_SCHEMA,
        table: str = "audits",
        namespace: str = "",
        tenant: int | None = None,
        shared_tables: bool = False,
    ) -> None:
        self.engine = engine
        self.is_async = isinstance(engine, AsyncEngine)
        self.schema = schema
        self._table_name = validate_identifier(table, "Table")
        self.namespace = ""
        self.tenant: int | None = None
        self.shared_tables = bool(shared_tables)
        self.set_namespace(namespace)
        self.set_tenant(tenant)
        self._table_cache: dict[tuple[str, bool], Table] = {}

    @property
    def name(self) -> str:
        return "sqlalchemy"

    # === Runtime configuration ===

    def set_namespace(self, namespace: str) -> SQLAlchemyAdapter:
        if namespace:
            validate_identifier(namespace, "Namespace")
        self.namespace = namespace
        return self

    def set_tenant(self, tenant: int | None) -> SQLAlchemyAdapter:
        if tenant is not None and (isinstance(tenant, bool) or not isinstance(tenant, int) or tenant < 0):
            raise InvalidConfigurationError(
                "Tenant must be a non-negative integer or None",
                setting="tenant",
            )
        self.tenant = tenant
        return self

    def set_shared_tables(self, shared_tables: bool) -> SQLAlchemyAdapter:
        self.shared_tables = bool(shared_tables)
        return self

    @property
    def table_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}_{self._table_name}"
        return self._table_name

    @property
    def table(self) -> Table:
        key = (self.table_name, self.shared_tables)
        table = self._table_cache.get(key)
        if table is None:
            table = build_table(MetaData(), self.table_name, self.schema, self.shared_tables)
            self._table_cache[key] = table
        return table

    # === Execution ===

    async def _run(self, operation: str, fn: Callable[[Connection], T]) -> T:
        """Run fn inside one transaction, on the executor for sync engines."""
        with with_log_context(
            adapter=self.name,
            operation=operation,
            namespace=self.namespace or None,
            tenant=self.tenant,
        ):
            if self.is_async:
                async with self.engine.begin() as conn:  # type: ignore[union-attr]
                    return await conn.run_sync(fn)

            def _sync() -> T:
                with self.engine.begin() as conn:  # type: ignore[union-attr]
                    return fn(conn)

            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, _sync)

    # === Query compilation ===

    def _check_attribute(self, attribute: str) -> None:
        if attribute == "id" or self.schema.has(attribute):
            return
        if attribute == "tenant" and self.shared_tables:
            return
        raise UnknownAttributeError(attribute, known=["id", *self.schema.names()])

    def _bind_value(self, query: Query, value: Any) -> Any:
        descriptor = self.schema.lookup(query.attribute)
        try:
            if descriptor is not None and descriptor.kind is AttributeKind.DATETIME:
                return _naive_utc(value)
            if query.attribute == "tenant":
                return int(value)
            if descriptor is not None and descriptor.kind is AttributeKind.JSON and not isinstance(value, str):
                return json.dumps(value)
        except (TypeError, ValueError) as e:
            raise InvalidQueryValuesError(query.method, str(e)) from e
        return value if isinstance(value, str) else str(value)

    def _compile(self, stmt: Any, queries: Sequence[Query], paginate: bool = True) -> Any:
        table = self.table
        limit: int | None = None
        offset: int | None = None
        last_descending: bool | None = None
        ordered_by_id = False

        for query in queries:
            method = query.resolved_method()
            values = query.values

            if method in (QueryMethod.LIMIT, QueryMethod.OFFSET):
                if len(values) != 1 or isinstance(values[0], bool) or not isinstance(values[0], int) or values[0] < 0:
                    raise InvalidQueryValuesError(method.value, "value must be a non-negative integer")
                if method is QueryMethod.LIMIT:
                    limit = values[0]
                else:
                    offset = values[0]
                continue

            self._check_attribute(query.attribute)
            column = table.c[query.attribute]

            if method in (QueryMethod.ORDER_ASC, QueryMethod.ORDER_DESC):
                descending = method is QueryMethod.ORDER_DESC
                if paginate:
                    stmt = stmt.order_by(column.desc() if descending else column.asc())
                last_descending = descending
                ordered_by_id = ordered_by_id or query.attribute == "id"
            elif method is QueryMethod.BETWEEN:
                if len(values) != 2 or values[0] is None or values[1] is None:
                    raise InvalidQueryValuesError(method.value, "expected 2 non-null values")
                stmt = stmt.where(
                    column.between(self._bind_value(query, values[0]), self._bind_value(query, values[1]))
                )
            elif method is QueryMethod.IN:
                if not values or any(v is None for v in values):
                    raise InvalidQueryValuesError(method.value, "expected at least 1 non-null value")
                stmt = stmt.where(column.in_([self._bind_value(query, v) for v in values]))
            else:
                if len(values) != 1:
                    raise InvalidQueryValuesError(method.value, f"expected 1 value, got {len(values)}")
                value = values[0]
                if value is None:
                    if method is not QueryMethod.EQUAL:
                        raise InvalidQueryValuesError(method.value, "value cannot be null")
                    stmt = stmt.where(column.is_(None))
                    continue
                bound = self._bind_value(query, value)
                if method is QueryMethod.EQUAL:
                    stmt = stmt.where(column == bound)
                elif method is QueryMethod.LESS_THAN:
                    stmt = stmt.where(column < bound)
                else:
                    stmt = stmt.where(column > bound)

        stmt = self._scope_tenant(stmt)
        if paginate:
            # id breaks ties so LIMIT/OFFSET pages stay disjoint
            if last_descending is not None and not ordered_by_id:
                stmt = stmt.order_by(table.c.id.desc() if last_descending else table.c.id.asc())
            if limit is not None:
                stmt = stmt.limit(limit)
            if offset is not None:
                stmt = stmt.offset(offset)
        return stmt

    def _scope_tenant(self, stmt: Any) -> Any:
        if self.shared_tables and self.tenant is not None:
            stmt = stmt.where(self.table.c.tenant == self.tenant)
        return stmt

    # === Row conversion ===

    def _is_json(self, name: str) -> bool:
        attribute = self.schema.lookup(name)
        return attribute is not None and attribute.kind is AttributeKind.JSON

    def _to_row(self, values: dict[str, Any], log_id: str) -> dict[str, Any]:
        row = {"id": log_id}
        for name, value in values.items():
            if isinstance(value, datetime):
                value = value.replace(tzinfo=None)
            elif value is not None and self._is_json(name):
                value = json.dumps(value)
            row[name] = value
        if self.shared_tables:
            row["tenant"] = self.tenant
        return row

    def _to_log(self, row: Any) -> Log:
        columns: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for name, value in row._mapping.items():
            if value is None:
                continue
            if self._is_json(name):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError as e:
                    raise CorruptRowError(
                        f"Column '{name}' is not valid JSON: {e.msg}", column=name
                    ) from e
            if isinstance(value, datetime) and value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            if name in COLUMN_TO_FIELD:
                columns[name] = value
            else:
                extra[name] = value
        if extra:
            columns["data"] = {**columns.get("data", {}), **extra}
        return Log.model_validate(columns)

    # === AuditAdapter ===

    async def setup(self) -> None:
        table = self.table
        await self._run("setup", lambda conn: table.metadata.create_all(conn))
        logger.info("Audit table ready", table=self.table_name)

    async def create(self, log: Log | dict[str, Any]) -> Log:
        created = await self._insert([log], "create")
        return created[0]

    async def create_batch(self, logs: Sequence[Log | dict[str, Any]]) -> list[Log]:
        if not logs:
            return []
        return await self._insert(logs, "create_batch")

    async def _insert(self, logs: Sequence[Log | dict[str, Any]], operation: str) -> list[Log]:
        batch = len(logs) > 1
        now = datetime.now(timezone.utc)
        prepared = [
            prepare_record(self.schema, log, position=i if batch else None, now=now)
            for i, log in enumerate(logs)
        ]
        ids = [uuid.uuid4().hex for _ in logs]
        rows = [self._to_row(values, log_id) for values, log_id in zip(prepared, ids)]
        table = self.table

        await self._run(operation, lambda conn: conn.execute(insert(table), rows))

        return [
            build_log(values, log_id, self.tenant, self.shared_tables)
            for values, log_id in zip(prepared, ids)
        ]

    async def get_by_id(self, log_id: str) -> Log | None:
        logs = await self._select([Query.equal("id", log_id), Query.limit(1)], "get_by_id")
        return logs[0] if logs else None

    async def find(self, queries: Sequence[Query] = ()) -> list[Log]:
        return await self._select(queries, "find")

    async def _select(self, queries: Sequence[Query], operation: str) -> list[Log]:
        stmt = self._compile(select(self.table), queries)
        rows = await self._run(operation, lambda conn: conn.execute(stmt).all())
        return [self._to_log(row) for row in rows]

    async def count(self, queries: Sequence[Query] = ()) -> int:
        stmt = self._compile(select(func.count()).select_from(self.table), queries, paginate=False)
        result = await self._run("count", lambda conn: conn.execute(stmt).scalar())
        return int(result or 0)

    async def cleanup(self, threshold: datetime) -> bool:
        table = self.table
        stmt = self._scope_tenant(delete(table).where(table.c.time < _naive_utc(threshold)))
        deleted = await self._run("cleanup", lambda conn: conn.execute(stmt).rowcount)
        logger.info("Deleted audit records", records_deleted=deleted)
        return True
