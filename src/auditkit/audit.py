"""
Audit facade.

A thin, adapter-agnostic entry point for recording and reading audit
events. Swapping the adapter (ClickHouse, SQLAlchemy) changes nothing at
the call sites.

Example:
    audit = Audit(ClickHouseAdapter(host="clickhouse"))
    await audit.setup()
    await audit.log(
        user_id="u1",
        event="document.update",
        resource="doc/1",
        user_agent=request.headers["user-agent"],
        ip=request.client.host,
        location="DE",
        data={"field": "title"},
    )
    latest = await audit.get_logs_by_user("u1", limit=10)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from auditkit.core.query import Query
from auditkit.store.base import AuditAdapter
from auditkit.store.models import FIELD_TO_COLUMN, Log


class Audit:
    """Record and query audit events through any AuditAdapter."""

    def __init__(self, adapter: AuditAdapter) -> None:
        self.adapter = adapter

    async def setup(self) -> None:
        await self.adapter.setup()

    async def log(
        self,
        user_id: str | None,
        event: str,
        resource: str | None,
        user_agent: str,
        ip: str,
        location: str | None = None,
        data: Mapping[str, Any] | None = None,
        time: datetime | None = None,
        **extra: Any,
    ) -> Log:
        """
        Record one event.

        Extra keyword arguments are merged into `data`; any that name a
        schema attribute (e.g. userType, hostname) are stored in their own
        column.
        """
        payload = {**(data or {}), **{FIELD_TO_COLUMN.get(k, k): v for k, v in extra.items()}}
        return await self.adapter.create(
            {
                "userId": user_id,
                "event": event,
                "resource": resource,
                "userAgent": user_agent,
                "ip": ip,
                "location": location,
                "time": time,
                "data": payload,
            }
        )

    async def log_batch(self, events: Sequence[Log | Mapping[str, Any]]) -> list[Log]:
        """Record many events in one all-or-nothing write."""
        return await self.adapter.create_batch(list(events))  # type: ignore[arg-type]

    async def get_log_by_id(self, log_id: str) -> Log | None:
        return await self.adapter.get_by_id(log_id)

    async def find(self, queries: Sequence[Query] = ()) -> list[Log]:
        return await self.adapter.find(queries)

    async def count(self, queries: Sequence[Query] = ()) -> int:
        return await self.adapter.count(queries)

    async def get_logs_by_user(
        self,
        user_id: str,
        after: datetime | None = None,
        before: datetime | None = None,
        limit: int = 25,
        offset: int = 0,
        ascending: bool = False,
    ) -> list[Log]:
        return await self.adapter.get_by_user(user_id, after, before, limit, offset, ascending)

    async def count_logs_by_user(
        self,
        user_id: str,
        after: datetime | None = None,
        before: datetime | None = None,
    ) -> int:
        return await self.adapter.count_by_user(user_id, after, before)

    async def get_logs_by_resource(
        self,
        resource: str,
        after: datetime | None = None,
        before: datetime | None = None,
        limit: int = 25,
        offset: int = 0,
        ascending: bool = False,
    ) -> list[Log]:
        return await self.adapter.get_by_resource(resource, after, before, limit, offset, ascending)

    async def count_logs_by_resource(
        self,
        resource: str,
        after: datetime | None = None,
        before: datetime | None = None,
    ) -> int:
        return await self.adapter.count_by_resource(resource, after, before)

    async def get_logs_by_user_and_events(
        self,
        user_id: str,
        events: Sequence[str],
        after: datetime | None = None,
        before: datetime | None = None,
        limit: int = 25,
        offset: int = 0,
        ascending: bool = False,
    ) -> list[Log]:
        return await self.adapter.get_by_user_and_events(
            user_id, events, after, before, limit, offset, ascending
        )

    async def count_logs_by_user_and_events(
        self,
        user_id: str,
        events: Sequence[str],
        after: datetime | None = None,
        before: datetime | None = None,
    ) -> int:
        return await self.adapter.count_by_user_and_events(user_id, events, after, before)

    async def get_logs_by_resource_and_events(
        self,
        resource: str,
        events: Sequence[str],
        after: datetime | None = None,
        before: datetime | None = None,
        limit: int = 25,
        offset: int = 0,
        ascending: bool = False,
    ) -> list[Log]:
        return await self.adapter.get_by_resource_and_events(
            resource, events, after, before, limit, offset, ascending
        )

    async def count_logs_by_resource_and_events(
        self,
        resource: str,
        events: Sequence[str],
        after: datetime | None = None,
        before: datetime | None = None,
    ) -> int:
        return await self.adapter.count_by_resource_and_events(resource, events, after, before)

    async def cleanup(self, threshold: datetime) -> bool:
        """Delete events older than threshold. See the adapter for visibility caveats."""
        return await self.adapter.cleanup(threshold)
