"""
Backend-neutral record preparation.

Turns a Log (or a plain column mapping) into the column values an adapter
writes: schema attributes promoted out of `data`, the resource path
decomposed, `time` defaulted to now, and required attributes checked.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from auditkit.core.errors import (
    InvalidAttributeValueError,
    MissingRequiredAttributeError,
    UnknownAttributeError,
)
from auditkit.core.resource import parse_resource
from auditkit.core.schema import RESOURCE_DECOMPOSITION, AttributeKind, Schema
from auditkit.store.models import COLUMN_TO_FIELD, FIELD_TO_COLUMN, Log

# Columns managed by the adapter rather than the caller.
RESERVED_COLUMNS = frozenset({"id", "tenant"})


def to_utc(value: datetime | str) -> datetime:
    """
    Coerce a datetime or ISO-8601 string to an aware UTC datetime.

    Naive values are taken to be UTC. Accepts the engine form
    "YYYY-MM-DD HH:MM:SS.mmm" and a trailing "Z".
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if not isinstance(value, datetime):
        raise TypeError(f"Expected datetime or ISO-8601 string, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def check_json(name: str, value: Any, position: int | None = None) -> None:
    """Raise InvalidAttributeValueError unless value serializes to JSON."""
    try:
        json.dumps(value)
    except (TypeError, ValueError) as e:
        raise InvalidAttributeValueError(name, str(e), position=position) from e


def record_columns(record: Log | Mapping[str, Any]) -> dict[str, Any]:
    """Column mapping of a record; snake_case keys are renamed to camelCase."""
    if isinstance(record, Log):
        return record.to_columns()
    return {FIELD_TO_COLUMN.get(key, key): value for key, value in record.items()}


def prepare_record(
    schema: Schema,
    record: Log | Mapping[str, Any],
    position: int | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Resolve the values to write for one record.

    Returns a mapping of every schema attribute to its value (None when
    absent). `time` is an aware UTC datetime and `data` is the payload with
    promoted keys removed.

    Raises:
        UnknownAttributeError: If the record sets a column the schema lacks
        MissingRequiredAttributeError: If a required attribute is absent
        InvalidAttributeValueError: If a value cannot be stored in its column
    """
    columns = record_columns(record)
    data = columns.pop("data", None) or {}
    if not isinstance(data, Mapping):
        raise InvalidAttributeValueError(
            "data", f"must be a mapping, got {type(data).__name__}", position=position
        )
    data = dict(data)

    for name, value in columns.items():
        if value is not None and name not in RESERVED_COLUMNS and not schema.has(name):
            raise UnknownAttributeError(name, known=schema.names())

    values: dict[str, Any] = {}
    promoted: set[str] = set()
    for attribute in schema.attributes():
        name = attribute.name
        if name == "data":
            continue
        value = columns.get(name)
        if value is None and data.get(name) is not None:
            value = data[name]
            promoted.add(name)
        values[name] = value

    resource = values.get("resource")
    if resource and any(schema.has(name) for name in RESOURCE_DECOMPOSITION):
        derived = parse_resource(str(resource)).to_columns()
        for name, value in derived.items():
            if schema.has(name) and values.get(name) is None:
                values[name] = value

    if schema.has("time") and values.get("time") is None:
        values["time"] = now or datetime.now(timezone.utc)

    for attribute in schema.attributes():
        name = attribute.name
        value = values.get(name)
        if value is None:
            if attribute.required:
                raise MissingRequiredAttributeError(name, position=position)
        elif attribute.kind is AttributeKind.DATETIME:
            try:
                moment = to_utc(value)
            except (TypeError, ValueError) as e:
                raise InvalidAttributeValueError(name, str(e), position=position) from e
            # Stored with millisecond precision
            values[name] = moment.replace(microsecond=moment.microsecond // 1000 * 1000)
        elif attribute.kind is AttributeKind.JSON:
            check_json(name, value, position)
        elif not isinstance(value, str):
            values[name] = str(value)

    if schema.has("data"):
        values["data"] = {k: v for k, v in data.items() if k not in promoted}
        check_json("data", values["data"], position)
    return values


def build_log(
    values: Mapping[str, Any],
    log_id: str,
    tenant: int | None = None,
    shared_tables: bool = False,
) -> Log:
    """
    Build the Log returned from a create call.

    Attributes that Log has no field for are folded back into `data`,
    mirroring how they are read back.
    """
    columns: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for name, value in values.items():
        if value is None or name == "data":
            continue
        if name in COLUMN_TO_FIELD:
            columns[name] = value
        else:
            extra[name] = value
    columns["data"] = {**(values.get("data") or {}), **extra}
    columns["id"] = log_id
    if shared_tables:
        columns["tenant"] = tenant
    return Log.model_validate(columns)
