"""
ClickHouse audit adapter.

Composes the schema, compiler, codec and wire client into the AuditAdapter
contract. Every public operation is a single HTTP round trip.

Consistency caveats:
- A create followed immediately by a find may not observe the new row when
  the table is replicated.
- cleanup() issues a lightweight DELETE, which the engine applies as a
  background mutation. Deleted rows can stay visible for a short while.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any

import httpx

from auditkit.core.errors import CorruptRowError, InvalidConfigurationError
from auditkit.core.identifiers import quote_identifier
from auditkit.core.query import Query
from auditkit.core.schema import DEFAULT_SCHEMA, Schema
from auditkit.logging import get_logger, with_log_context
from auditkit.store.base import AuditAdapter
from auditkit.store.clickhouse.client import ClickHouseClient
from auditkit.store.clickhouse.codec import RowCodec
from auditkit.store.clickhouse.compiler import ClickHouseCompiler
from auditkit.store.clickhouse.config import ClickHouseConfig
from auditkit.store.clickhouse.ddl import create_database_sql, create_table_sql
from auditkit.store.models import Log
from auditkit.store.records import build_log

logger = get_logger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


class ClickHouseAdapter(AuditAdapter):
    """
    Audit adapter for the ClickHouse HTTP interface.

    Usage:
        adapter = ClickHouseAdapter(host="clickhouse", password="secret")
        adapter.set_database("audit")
        await adapter.setup()
        await adapter.create({"event": "login", "userAgent": "curl", "ip": "127.0.0.1"})

    Args:
        config: Full connection config; alternatively pass its fields as
            keyword arguments
        schema: Attribute registry; DEFAULT_SCHEMA when omitted
        transport: Optional httpx transport, mainly for tests
    """

    def __init__(
        self,
        config: ClickHouseConfig | None = None,
        *,
        schema: Schema = DEFAULT_SCHEMA,
        transport: httpx.AsyncBaseTransport | None = None,
        **settings: Any,
    ) -> None:
        if config is None:
            config = ClickHouseConfig(**settings)
        elif settings:
            raise InvalidConfigurationError(
                "Pass either a ClickHouseConfig or keyword settings, not both"
            )
        self.config = config
        self.schema = schema
        self.client = ClickHouseClient(config, transport=transport)
        self._ready = False

    @property
    def name(self) -> str:
        return "clickhouse"

    @property
    def is_ready(self) -> bool:
        """Whether setup() has completed in this process."""
        return self._ready

    # === Runtime configuration ===

    def set_database(self, database: str) -> ClickHouseAdapter:
        self.config.set_database(database)
        return self

    def set_namespace(self, namespace: str) -> ClickHouseAdapter:
        self.config.set_namespace(namespace)
        return self

    def set_tenant(self, tenant: int | None) -> ClickHouseAdapter:
        self.config.set_tenant(tenant)
        return self

    def set_shared_tables(self, shared_tables: bool) -> ClickHouseAdapter:
        self.config.set_shared_tables(shared_tables)
        return self

    def set_secure(self, secure: bool) -> ClickHouseAdapter:
        self.config.set_secure(secure)
        return self

    def set_timeout(self, timeout_ms: int) -> ClickHouseAdapter:
        self.config.set_timeout(timeout_ms)
        return self

    def set_compression(self, compression: str) -> ClickHouseAdapter:
        self.config.set_compression(compression)
        return self

    # === Internals ===

    @property
    def table(self) -> str:
        """Quoted `database`.`table` reference."""
        return f"{quote_identifier(self.config.database)}.{quote_identifier(self.config.table_name)}"

    def _compiler(self) -> ClickHouseCompiler:
        return ClickHouseCompiler(
            self.schema,
            shared_tables=self.config.shared_tables,
            tenant=self.config.tenant,
        )

    def _codec(self) -> RowCodec:
        return RowCodec(self.schema, shared_tables=self.config.shared_tables)

    def _scope(self, operation: str) -> AbstractContextManager[None]:
        return with_log_context(
            adapter=self.name,
            operation=operation,
            database=self.config.database,
            namespace=self.config.namespace or None,
            tenant=self.config.tenant,
        )

    # === AuditAdapter ===

    async def setup(self) -> None:
        with self._scope("setup"):
            await self.client.execute(create_database_sql(self.config.database))
            await self.client.execute(
                create_table_sql(
                    self.config.database,
                    self.config.table_name,
                    self.schema,
                    self.config.shared_tables,
                )
            )
            self._ready = True
            logger.info("Audit table ready", table=self.config.table_name)

    async def create(self, log: Log | dict[str, Any]) -> Log:
        created = await self._insert([log], "create")
        return created[0]

    async def create_batch(self, logs: Sequence[Log | dict[str, Any]]) -> list[Log]:
        if not logs:
            return []
        return await self._insert(logs, "create_batch")

    async def _insert(self, logs: Sequence[Log | dict[str, Any]], operation: str) -> list[Log]:
        with self._scope(operation):
            codec = self._codec()
            ids = [new_id() for _ in logs]
            tenant = self.config.tenant if self.config.shared_tables else None
            sql, params, prepared = codec.encode_insert(self.table, logs, ids, tenant)
            await self.client.execute(sql, params)
            return [
                build_log(values, log_id, tenant, self.config.shared_tables)
                for values, log_id in zip(prepared, ids)
            ]

    async def get_by_id(self, log_id: str) -> Log | None:
        logs = await self._select([Query.equal("id", log_id), Query.limit(1)], "get_by_id")
        return logs[0] if logs else None

    async def find(self, queries: Sequence[Query] = ()) -> list[Log]:
        return await self._select(queries, "find")

    async def _select(self, queries: Sequence[Query], operation: str) -> list[Log]:
        with self._scope(operation):
            codec = self._codec()
            compiler = self._compiler()
            compiled = compiler.compile(queries)
            sql = compiler.select_sql(self.table, codec.layout, compiled)
            body = await self.client.execute(sql, compiled.params)
            return codec.decode(body)

    async def count(self, queries: Sequence[Query] = ()) -> int:
        with self._scope("count"):
            compiler = self._compiler()
            compiled = compiler.compile(queries).for_count()
            body = await self.client.execute(compiler.count_sql(self.table, compiled), compiled.params)
            text = body.strip()
            try:
                return int(text)
            except ValueError:
                raise CorruptRowError(f"Count result is not an integer: {text!r}", column="count()") from None

    async def cleanup(self, threshold: datetime) -> bool:
        """
        Delete rows whose time is strictly before threshold.

        The delete is applied asynchronously by the engine; rows may remain
        readable briefly after this returns.
        """
        with self._scope("cleanup"):
            sql, params = self._compiler().delete_before_sql(self.table, threshold)
            await self.client.execute(sql, params)
            return True

    # === Health ===

    async def ping(self) -> bool:
        return await self.client.ping()

    async def server_version(self) -> str | None:
        return await self.client.server_version()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> ClickHouseAdapter:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()
