"""
Tests for the retention policy and manager.
"""

from datetime import timedelta

import pytest

from auditkit.core.errors import InvalidConfigurationError
from auditkit.store.retention import RetentionManager, RetentionPolicy
from conftest import BASE_TIME, make_log, minutes


class TestRetentionPolicy:
    def test_default_is_ninety_days(self):
        assert RetentionPolicy().max_age == timedelta(days=90)

    def test_days(self):
        assert RetentionPolicy.days(7).cutoff(BASE_TIME) == BASE_TIME - timedelta(days=7)

    @pytest.mark.parametrize("max_age", [timedelta(0), timedelta(days=-1)])
    def test_max_age_must_be_positive(self, max_age):
        with pytest.raises(InvalidConfigurationError):
            RetentionPolicy(max_age=max_age)


class TestRetentionManager:
    @pytest.mark.asyncio
    async def test_run_cleanup(self, sql_adapter):
        await sql_adapter.create_batch([
            make_log(event="old", time=BASE_TIME - timedelta(days=10)),
            make_log(event="new", time=minutes(0)),
        ])
        manager = RetentionManager(sql_adapter, RetentionPolicy.days(7))
        result = await manager.run_cleanup(now=BASE_TIME)

        assert result.success
        assert result.cutoff_time == BASE_TIME - timedelta(days=7)
        assert result.duration_ms >= 0
        assert [log.event for log in await sql_adapter.find()] == ["new"]

    @pytest.mark.asyncio
    async def test_failure_reported_in_result(self, clickhouse_adapter, fake_clickhouse):
        fake_clickhouse.queue((500, "Code: 48. Lightweight deletes are disabled"))
        result = await RetentionManager(clickhouse_adapter).run_cleanup(now=BASE_TIME)
        assert not result.success
        assert "Lightweight deletes" in result.error
        assert fake_clickhouse.params()["threshold"] == "2023-12-02 12:00:00.000"
