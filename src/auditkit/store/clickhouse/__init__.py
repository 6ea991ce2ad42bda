"""
ClickHouse backend: config, compiler, row codec, wire client and adapter.
"""

from auditkit.store.clickhouse.adapter import ClickHouseAdapter
from auditkit.store.clickhouse.client import ClickHouseClient
from auditkit.store.clickhouse.codec import (
    LAYOUT_VERSION,
    ColumnLayout,
    RowCodec,
    column_layout,
    format_datetime,
    parse_datetime,
)
from auditkit.store.clickhouse.compiler import ClickHouseCompiler, CompiledQuery
from auditkit.store.clickhouse.config import COMPRESSION_MODES, ClickHouseConfig
from auditkit.store.clickhouse.ddl import create_database_sql, create_table_sql

__all__ = [
    "ClickHouseAdapter",
    "ClickHouseClient",
    "ClickHouseCompiler",
    "ClickHouseConfig",
    "COMPRESSION_MODES",
    "ColumnLayout",
    "CompiledQuery",
    "LAYOUT_VERSION",
    "RowCodec",
    "column_layout",
    "create_database_sql",
    "create_table_sql",
    "format_datetime",
    "parse_datetime",
]
