"""
Abstract audit adapter interface.

Every storage backend implements the same contract so callers can swap a
transactional store for an analytical column store without changing call
sites. The get_by_* / count_by_* conveniences are defined here once, in
terms of find() and count().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from auditkit.core.query import Query
from auditkit.core.schema import Schema
from auditkit.store.models import Log


def time_queries(after: datetime | str | None, before: datetime | str | None) -> list[Query]:
    """
    Build time-range filters.

    Both bounds produce an inclusive between; a single bound produces a
    strict greaterThan or lessThan.
    """
    if after is not None and before is not None:
        return [Query.between("time", after, before)]
    queries = []
    if after is not None:
        queries.append(Query.greater_than("time", after))
    if before is not None:
        queries.append(Query.less_than("time", before))
    return queries


class AuditAdapter(ABC):
    """
    Abstract base class for audit log storage.

    Implementations:
    - ClickHouseAdapter (analytical column store over HTTP)
    - SQLAlchemyAdapter (any SQLAlchemy-supported database)

    Adapters never enforce authorization; callers are expected to have
    checked permissions already.
    """

    schema: Schema

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable adapter name."""
        ...

    @abstractmethod
    async def setup(self) -> None:
        """
        Create the backing storage if it does not exist.

        Safe to call repeatedly. Never alters an existing table.
        """
        ...

    @abstractmethod
    async def create(self, log: Log | dict[str, Any]) -> Log:
        """Store one record and return it with its assigned id."""
        ...

    @abstractmethod
    async def create_batch(self, logs: Sequence[Log | dict[str, Any]]) -> list[Log]:
        """
        Store many records in one statement.

        All-or-nothing: either every record is written or the call fails.
        """
        ...

    @abstractmethod
    async def get_by_id(self, log_id: str) -> Log | None:
        """Retrieve one record by id, or None when absent."""
        ...

    @abstractmethod
    async def find(self, queries: Sequence[Query] = ()) -> list[Log]:
        """Retrieve records matching the query list."""
        ...

    @abstractmethod
    async def count(self, queries: Sequence[Query] = ()) -> int:
        """Count records matching the filters (ordering and pagination ignored)."""
        ...

    @abstractmethod
    async def cleanup(self, threshold: datetime) -> bool:
        """Delete every record whose time is strictly before threshold."""
        ...

    # === Convenience lookups ===

    def _listing(
        self,
        filters: list[Query],
        after: datetime | str | None,
        before: datetime | str | None,
        limit: int,
        offset: int,
        ascending: bool,
    ) -> list[Query]:
        order = Query.order_asc("time") if ascending else Query.order_desc("time")
        return [
            *filters,
            *time_queries(after, before),
            order,
            Query.limit(limit),
            Query.offset(offset),
        ]

    async def get_by_user(
        self,
        user_id: str,
        after: datetime | str | None = None,
        before: datetime | str | None = None,
        limit: int = 25,
        offset: int = 0,
        ascending: bool = False,
    ) -> list[Log]:
        return await self.find(
            self._listing([Query.equal("userId", user_id)], after, before, limit, offset, ascending)
        )

    async def count_by_user(
        self,
        user_id: str,
        after: datetime | str | None = None,
        before: datetime | str | None = None,
    ) -> int:
        return await self.count([Query.equal("userId", user_id), *time_queries(after, before)])

    async def get_by_resource(
        self,
        resource: str,
        after: datetime | str | None = None,
        before: datetime | str | None = None,
        limit: int = 25,
        offset: int = 0,
        ascending: bool = False,
    ) -> list[Log]:
        return await self.find(
            self._listing([Query.equal("resource", resource)], after, before, limit, offset, ascending)
        )

    async def count_by_resource(
        self,
        resource: str,
        after: datetime | str | None = None,
        before: datetime | str | None = None,
    ) -> int:
        return await self.count([Query.equal("resource", resource), *time_queries(after, before)])

    async def get_by_user_and_events(
        self,
        user_id: str,
        events: Sequence[str],
        after: datetime | str | None = None,
        before: datetime | str | None = None,
        limit: int = 25,
        offset: int = 0,
        ascending: bool = False,
    ) -> list[Log]:
        filters = [Query.equal("userId", user_id), Query.in_("event", events)]
        return await self.find(self._listing(filters, after, before, limit, offset, ascending))

    async def count_by_user_and_events(
        self,
        user_id: str,
        events: Sequence[str],
        after: datetime | str | None = None,
        before: datetime | str | None = None,
    ) -> int:
        return await self.count([
            Query.equal("userId", user_id),
            Query.in_("event", events),
            *time_queries(after, before),
        ])

    async def get_by_resource_and_events(
        self,
        resource: str,
        events: Sequence[str],
        after: datetime | str | None = None,
        before: datetime | str | None = None,
        limit: int = 25,
        offset: int = 0,
        ascending: bool = False,
    ) -> list[Log]:
        filters = [Query.equal("resource", resource), Query.in_("event", events)]
        return await self.find(self._listing(filters, after, before, limit, offset, ascending))

    async def count_by_resource_and_events(
        self,
        resource: str,
        events: Sequence[str],
        after: datetime | str | None = None,
        before: datetime | str | None = None,
    ) -> int:
        return await self.count([
            Query.equal("resource", resource),
            Query.in_("event", events),
            *time_queries(after, before),
        ])
