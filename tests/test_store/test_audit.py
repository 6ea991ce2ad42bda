"""
Tests for the Audit facade.
"""

import json

import pytest

from auditkit import Audit
from auditkit.core.query import Query
from conftest import minutes


@pytest.fixture
def audit(sql_adapter):
    return Audit(sql_adapter)


async def record(audit, **overrides):
    values = {
        "user_id": "u1",
        "event": "document.update",
        "resource": "doc/1",
        "user_agent": "Mozilla/5.0",
        "ip": "10.0.0.1",
        "location": "DE",
        "time": minutes(0),
    }
    values.update(overrides)
    return await audit.log(**values)


class TestAuditLog:
    @pytest.mark.asyncio
    async def test_log_and_read_back(self, audit):
        created = await record(audit, data={"field": "title"})
        assert created.event == "document.update"
        assert await audit.get_log_by_id(created.id) == created

    @pytest.mark.asyncio
    async def test_extra_keywords_merge_into_data(self, audit):
        created = await record(audit, data={"a": 1}, request_id="r-1")
        assert created.data == {"a": 1, "request_id": "r-1"}

    @pytest.mark.asyncio
    async def test_extra_schema_attributes_get_their_column(self, extended_sql_adapter):
        audit = Audit(extended_sql_adapter)
        created = await record(audit, hostname="web-1", user_type="admin")
        assert created.hostname == "web-1"
        assert created.user_type == "admin"
        assert created.data == {}

    @pytest.mark.asyncio
    async def test_log_batch(self, audit):
        logs = await audit.log_batch([
            {"event": "a", "user_agent": "curl", "ip": "::1"},
            {"event": "b", "userAgent": "curl", "ip": "::1"},
        ])
        assert [log.event for log in logs] == ["a", "b"]
        assert await audit.count() == 2


class TestAuditQueries:
    @pytest.mark.asyncio
    async def test_lookups(self, audit):
        await record(audit, event="create", time=minutes(0))
        await record(audit, event="update", time=minutes(1))
        await record(audit, user_id="u2", resource="doc/2", event="create", time=minutes(2))

        assert [log.event for log in await audit.get_logs_by_user("u1")] == ["update", "create"]
        assert await audit.count_logs_by_user("u1") == 2
        assert await audit.count_logs_by_resource("doc/2") == 1
        assert len(await audit.get_logs_by_resource("doc/1", limit=1)) == 1
        assert await audit.count_logs_by_user_and_events("u1", ["create"]) == 1
        assert len(await audit.get_logs_by_user_and_events("u1", ["create", "update"])) == 2
        assert await audit.count_logs_by_resource_and_events("doc/1", ["update"]) == 1
        assert len(await audit.get_logs_by_resource_and_events("doc/2", ["create"])) == 1
        assert len(await audit.find([Query.equal("event", "create")])) == 2

    @pytest.mark.asyncio
    async def test_cleanup(self, audit):
        await record(audit, time=minutes(0))
        await record(audit, time=minutes(5))
        assert await audit.cleanup(minutes(1)) is True
        assert await audit.count() == 1


class TestAuditOverClickHouse:
    @pytest.mark.asyncio
    async def test_same_calls_over_http(self, clickhouse_adapter, fake_clickhouse):
        audit = Audit(clickhouse_adapter)
        created = await record(audit, data={"field": "title"})
        assert created.id == fake_clickhouse.params()["id_0"]
        assert json.loads(fake_clickhouse.params()["data_0"]) == {"field": "title"}
