"""
Audit log record model.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Log(BaseModel):
    """
    A single audit event: who did what, to what, when, from where.

    Field names are snake_case in Python and camelCase on the wire and in
    queries (``user_id`` <-> ``userId``). Either form is accepted when
    constructing a Log.
    """

    # Assigned by the adapter on creation
    id: str | None = None

    # Required by every schema
    event: str
    user_agent: str
    ip: str

    # Actor and target
    user_id: str | None = None
    resource: str | None = None
    location: str | None = None

    # Timing (defaults to "now" on creation)
    time: datetime | None = None

    # Free-form payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Extension attributes
    user_type: str | None = None
    user_internal_id: str | None = None
    resource_parent: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    resource_internal_id: str | None = None
    country: str | None = None
    project_id: str | None = None
    project_internal_id: str | None = None
    team_id: str | None = None
    team_internal_id: str | None = None
    hostname: str | None = None

    # Shared-tables tenant
    tenant: int | None = None

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_validator("time")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps are taken to be UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def get(self, column: str, default: Any = None) -> Any:
        """Read a value by its camelCase column name."""
        name = COLUMN_TO_FIELD.get(column)
        if name is None:
            return default
        value = getattr(self, name)
        return default if value is None else value

    def to_columns(self) -> dict[str, Any]:
        """Return the camelCase column mapping, omitting unset values."""
        return self.model_dump(by_alias=True, exclude_none=True)


# camelCase column name -> Python field name, and the reverse.
COLUMN_TO_FIELD = {
    (info.alias or name): name for name, info in Log.model_fields.items()
}

FIELD_TO_COLUMN = {field: column for column, field in COLUMN_TO_FIELD.items()}
