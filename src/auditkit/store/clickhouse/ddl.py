"""
Table definition statements.

The table holds `id`, every schema attribute in registration order, and a
nullable `tenant` column when tables are shared. It is partitioned by month
of `time` and ordered by (time, id). Indexes become bloom filter skip
indexes.
"""

from auditkit.core.identifiers import quote_identifier
from auditkit.core.schema import AttributeDescriptor, AttributeKind, Schema

_COLUMN_TYPES = {
    AttributeKind.TEXT: "String",
    AttributeKind.JSON: "String",
    AttributeKind.DATETIME: "DateTime64(3)",
}


def column_type(attribute: AttributeDescriptor) -> str:
    """Engine type for an attribute. `time` is never nullable."""
    base = _COLUMN_TYPES[attribute.kind]
    if attribute.name == "time" or attribute.required:
        return base
    return f"Nullable({base})"


def create_database_sql(database: str) -> str:
    return f"CREATE DATABASE IF NOT EXISTS {quote_identifier(database)}"


def create_table_sql(database: str, table: str, schema: Schema, shared_tables: bool) -> str:
    columns = [f"{quote_identifier('id')} String"]
    for attribute in schema.attributes():
        columns.append(f"{quote_identifier(attribute.name)} {column_type(attribute)}")
    if shared_tables:
        columns.append(f"{quote_identifier('tenant')} Nullable(UInt64)")

    for index in schema.indexes():
        covered = ", ".join(quote_identifier(name) for name in index.attributes)
        columns.append(
            f"INDEX {quote_identifier(index.name)} ({covered}) TYPE bloom_filter GRANULARITY 1"
        )

    body = ",\n    ".join(columns)
    return (
        f"CREATE TABLE IF NOT EXISTS {quote_identifier(database)}.{quote_identifier(table)} (\n"
        f"    {body}\n"
        ")\n"
        "ENGINE = MergeTree()\n"
        "ORDER BY (time, id)\n"
        "PARTITION BY toYYYYMM(time)\n"
        "SETTINGS index_granularity = 8192"
    )
