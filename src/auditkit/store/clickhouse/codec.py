"""
Row codec for the ClickHouse HTTP interface.

Encoding turns records into one multi-row INSERT with a bound parameter per
value. Decoding parses a TabSeparated response body back into Log records.

Both directions use the column layout produced by column_layout(), which is
also the SELECT column list, so the two can never disagree on positions.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from auditkit.core.errors import CorruptRowError, TruncatedRowError, UnknownAttributeError
from auditkit.core.identifiers import quote_identifier
from auditkit.core.schema import AttributeKind, Schema
from auditkit.store.models import COLUMN_TO_FIELD, Log
from auditkit.store.records import prepare_record, to_utc

# Bump whenever the column order rule below changes.
LAYOUT_VERSION = 1

NULL = "\\N"

ENGINE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_ESCAPES = {
    "\\": "\\\\",
    "\t": "\\t",
    "\n": "\\n",
    "\r": "\\r",
    "\b": "\\b",
    "\f": "\\f",
    "\0": "\\0",
}
_UNESCAPES = {
    "b": "\b",
    "f": "\f",
    "r": "\r",
    "n": "\n",
    "t": "\t",
    "0": "\0",
    "'": "'",
    "\\": "\\",
}
_ESCAPE_PATTERN = re.compile(r"[\\\t\n\r\b\f\0]")
_UNESCAPE_PATTERN = re.compile(r"\\(.)", re.DOTALL)


def escape_value(value: str) -> str:
    """Escape a string in the TabSeparated escaped form."""
    return _ESCAPE_PATTERN.sub(lambda m: _ESCAPES[m.group(0)], value)


def unescape_value(value: str) -> str:
    """Reverse escape_value. Unknown escapes keep the escaped character."""
    return _UNESCAPE_PATTERN.sub(lambda m: _UNESCAPES.get(m.group(1), m.group(1)), value)


def format_datetime(value: datetime | str) -> str:
    """Format a timestamp as the engine's `YYYY-MM-DD HH:MM:SS.mmm`, in UTC."""
    moment = to_utc(value)
    return f"{moment.strftime(ENGINE_DATETIME_FORMAT)}.{moment.microsecond // 1000:03d}"


def parse_datetime(text: str) -> datetime:
    """Parse the engine's timestamp form into an aware UTC datetime."""
    moment = datetime.fromisoformat(text.strip())
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class ColumnLayout:
    """
    Ordered result columns of a SELECT.

    `id`, then every attribute in registration order except `data`, then
    `data`, then `tenant` when tables are shared.
    """

    columns: tuple[str, ...]
    version: int = LAYOUT_VERSION

    def __len__(self) -> int:
        return len(self.columns)

    def select_list(self) -> str:
        return ", ".join(quote_identifier(c) for c in self.columns)


def column_layout(schema: Schema, shared_tables: bool) -> ColumnLayout:
    columns = ["id"]
    columns.extend(name for name in schema.names() if name != "data")
    if schema.has("data"):
        columns.append("data")
    if shared_tables:
        columns.append("tenant")
    return ColumnLayout(tuple(columns))


class RowCodec:
    """Encode records to INSERT statements and decode TabSeparated rows."""

    def __init__(self, schema: Schema, shared_tables: bool = False) -> None:
        self.schema = schema
        self.shared_tables = shared_tables
        self.layout = column_layout(schema, shared_tables)

    # === Encode ===

    def _placeholder(self, column: str, param: str) -> str:
        if column == "id":
            return f"{{{param}:String}}"
        if column == "tenant":
            return f"{{{param}:Nullable(UInt64)}}"
        attribute = self.schema.lookup(column)
        if attribute is None:
            raise UnknownAttributeError(column, known=self.schema.names())
        if attribute.kind is AttributeKind.DATETIME:
            base = "DateTime64(3)"
        else:
            base = "String"
        if column == "time" or attribute.required:
            return f"{{{param}:{base}}}"
        return f"{{{param}:Nullable({base})}}"

    def _encode_value(self, column: str, value: Any) -> Any:
        if value is None:
            return None
        attribute = self.schema.lookup(column)
        if attribute is None:
            return value
        if attribute.kind is AttributeKind.DATETIME:
            return format_datetime(value)
        if attribute.kind is AttributeKind.JSON:
            return json.dumps(value)
        return value

    def encode_insert(
        self,
        table: str,
        logs: Sequence[Log | Mapping[str, Any]],
        ids: Sequence[str],
        tenant: int | None = None,
    ) -> tuple[str, dict[str, Any], list[dict[str, Any]]]:
        """
        Build one INSERT statement for all records.

        Every record is validated before anything is returned, so a missing
        required attribute fails the whole batch locally.

        Args:
            table: Quoted `database`.`table` reference
            logs: Records to write
            ids: One pre-minted id per record
            tenant: Tenant written when tables are shared

        Returns:
            (sql, params, prepared) where prepared holds the resolved column
            values of each record, in input order

        Raises:
            MissingRequiredAttributeError: Carrying the failing position
            UnknownAttributeError: If a record sets a column the schema lacks
            InvalidAttributeValueError: If a value cannot be encoded for its column
        """
        if len(logs) != len(ids):
            raise ValueError("Exactly one id is required per record")

        batch = len(logs) > 1
        now = datetime.now(timezone.utc)
        prepared = [
            prepare_record(self.schema, log, position=i if batch else None, now=now)
            for i, log in enumerate(logs)
        ]

        columns = list(self.layout.columns)
        params: dict[str, Any] = {}
        rows: list[str] = []
        for position, (values, log_id) in enumerate(zip(prepared, ids)):
            placeholders = []
            for column in columns:
                param = f"{column}_{position}"
                if column == "id":
                    params[param] = log_id
                elif column == "tenant":
                    params[param] = tenant
                else:
                    params[param] = self._encode_value(column, values.get(column))
                placeholders.append(self._placeholder(column, param))
            rows.append(f"({', '.join(placeholders)})")

        sql = (
            f"INSERT INTO {table} ({self.layout.select_list()}) VALUES "
            + ", ".join(rows)
        )
        return sql, params, prepared

    # === Decode ===

    def decode(self, body: str) -> list[Log]:
        """
        Decode a TabSeparated body into Log records.

        Raises:
            TruncatedRowError: If a row has fewer fields than the layout
            CorruptRowError: If a field cannot be parsed
        """
        logs = []
        for number, line in enumerate(body.split("\n"), start=1):
            if not line:
                continue
            logs.append(self.decode_row(line, number))
        return logs

    def decode_row(self, line: str, number: int | None = None) -> Log:
        fields = line.split("\t")
        expected = len(self.layout)
        if len(fields) < expected:
            raise TruncatedRowError(expected, len(fields), line=number)
        if len(fields) > expected:
            raise CorruptRowError(
                f"Row has {len(fields)} fields, expected {expected}",
                line=number,
            )

        columns: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for column, raw in zip(self.layout.columns, fields):
            value = self._decode_field(column, raw, number)
            if value is None:
                continue
            if column in COLUMN_TO_FIELD:
                columns[column] = value
            else:
                extra[column] = value

        if extra:
            columns["data"] = {**columns.get("data", {}), **extra}

        try:
            return Log.model_validate(columns)
        except ValidationError as e:
            raise CorruptRowError(f"Row does not form a valid log: {e}", line=number) from e

    def _decode_field(self, column: str, raw: str, number: int | None) -> Any:
        if column == "id":
            return unescape_value(raw)

        if column == "tenant":
            if raw in (NULL, ""):
                return None
            try:
                return int(raw)
            except ValueError:
                raise CorruptRowError(
                    f"Tenant is not an integer: {raw!r}", column=column, line=number
                ) from None

        attribute = self.schema.lookup(column)
        if attribute is None:
            raise CorruptRowError(
                f"Column '{column}' is not in the schema", column=column, line=number
            )
        if not attribute.required and raw in (NULL, ""):
            return None

        if attribute.kind is AttributeKind.DATETIME:
            try:
                return parse_datetime(raw)
            except ValueError:
                raise CorruptRowError(
                    f"Column '{column}' is not a timestamp: {raw!r}", column=column, line=number
                ) from None

        text = unescape_value(raw)
        if attribute.kind is AttributeKind.JSON:
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise CorruptRowError(
                    f"Column '{column}' is not valid JSON: {e.msg}", column=column, line=number
                ) from e
            if column == "data" and not isinstance(value, dict):
                raise CorruptRowError(
                    f"Column 'data' must hold a JSON object, got {type(value).__name__}",
                    column=column,
                    line=number,
                )
            return value
        return text
