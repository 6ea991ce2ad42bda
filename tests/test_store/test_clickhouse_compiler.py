"""
Tests for the ClickHouse query compiler.
"""

from datetime import datetime, timezone

import pytest

from auditkit.core.errors import (
    InvalidQueryValuesError,
    UnknownAttributeError,
    UnsupportedMethodError,
)
from auditkit.core.query import Query
from auditkit.core.schema import DEFAULT_SCHEMA, EXTENDED_SCHEMA
from auditkit.store.clickhouse.codec import column_layout
from auditkit.store.clickhouse.compiler import MAX_LIMIT, ClickHouseCompiler

TABLE = "`default`.`audits`"


@pytest.fixture
def compiler():
    return ClickHouseCompiler(DEFAULT_SCHEMA)


@pytest.fixture
def shared_compiler():
    return ClickHouseCompiler(DEFAULT_SCHEMA, shared_tables=True, tenant=7)


class TestFilters:
    def test_equal(self, compiler):
        compiled = compiler.compile([Query.equal("userId", "u1")])
        assert compiled.conditions == ("`userId` = {param0:String}",)
        assert compiled.params == {"param0": "u1"}

    def test_comparisons(self, compiler):
        compiled = compiler.compile([
            Query.less_than("event", "m"),
            Query.greater_than("event", "a"),
        ])
        assert compiled.conditions == (
            "`event` < {param0:String}",
            "`event` > {param1:String}",
        )

    def test_between(self, compiler):
        compiled = compiler.compile([Query.between("resource", "a", "z")])
        assert compiled.conditions == ("`resource` BETWEEN {param0:String} AND {param1:String}",)
        assert compiled.params == {"param0": "a", "param1": "z"}

    def test_in(self, compiler):
        compiled = compiler.compile([Query.in_("event", ["create", "update", "delete"])])
        assert compiled.conditions == (
            "`event` IN ({param0:String}, {param1:String}, {param2:String})",
        )
        assert list(compiled.params.values()) == ["create", "update", "delete"]

    def test_parameter_numbering_spans_queries(self, compiler):
        compiled = compiler.compile([
            Query.equal("userId", "u1"),
            Query.in_("event", ["a", "b"]),
            Query.equal("resource", "doc/1"),
        ])
        assert list(compiled.params) == ["param0", "param1", "param2", "param3"]
        assert compiled.where == (
            " WHERE `userId` = {param0:String} AND `event` IN ({param1:String}, {param2:String})"
            " AND `resource` = {param3:String}"
        )

    def test_equal_null_is_null(self, compiler):
        compiled = compiler.compile([Query.equal("userId", None)])
        assert compiled.conditions == ("`userId` IS NULL",)
        assert compiled.params == {}

    def test_datetime_values_bound_as_engine_timestamps(self, compiler):
        moment = datetime(2024, 3, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)
        compiled = compiler.compile([Query.greater_than("time", moment)])
        assert compiled.conditions == ("`time` > {param0:DateTime64(3)}",)
        assert compiled.params == {"param0": "2024-03-01 12:30:15.123"}

    def test_iso_string_time_values(self, compiler):
        compiled = compiler.compile([Query.less_than("time", "2024-03-01T12:00:00Z")])
        assert compiled.params == {"param0": "2024-03-01 12:00:00.000"}

    def test_values_never_in_sql(self, compiler):
        hostile = "x' OR 1=1 --"
        compiled = compiler.compile([Query.equal("event", hostile)])
        sql = compiler.select_sql(TABLE, column_layout(DEFAULT_SCHEMA, False), compiled)
        assert hostile not in sql

    def test_id_is_always_queryable(self, compiler):
        compiled = compiler.compile([Query.equal("id", "abc")])
        assert compiled.conditions == ("`id` = {param0:String}",)

    def test_non_string_values_stringified(self, compiler):
        compiled = compiler.compile([Query.equal("event", 42)])
        assert compiled.params == {"param0": "42"}

    def test_json_values_serialized(self, compiler):
        compiled = compiler.compile([Query.equal("data", {"a": 1})])
        assert compiled.params == {"param0": '{"a": 1}'}

    def test_json_string_passed_through(self, compiler):
        compiled = compiler.compile([Query.equal("data", '{"a": 1}')])
        assert compiled.params == {"param0": '{"a": 1}'}

    def test_unserializable_json_value(self, compiler):
        with pytest.raises(InvalidQueryValuesError):
            compiler.compile([Query.equal("data", {"a": {1, 2}})])


class TestOrderAndPagination:
    def test_order(self, compiler):
        compiled = compiler.compile([Query.order_desc("time"), Query.order_asc("event")])
        assert compiled.order_by == " ORDER BY `time` DESC, `event` ASC, `id` ASC"

    def test_id_tiebreaker_follows_last_direction(self, compiler):
        compiled = compiler.compile([Query.order_desc("time"), Query.limit(2)])
        assert compiled.orders == ("`time` DESC", "`id` DESC")

    def test_no_tiebreaker_when_ordered_by_id(self, compiler):
        compiled = compiler.compile([Query.order_asc("id"), Query.order_desc("time")])
        assert compiled.orders == ("`id` ASC", "`time` DESC")

    def test_no_tiebreaker_without_order(self, compiler):
        compiled = compiler.compile([Query.limit(2)])
        assert compiled.orders == ()

    def test_limit_and_offset(self, compiler):
        compiled = compiler.compile([Query.limit(10), Query.offset(20)])
        assert compiled.pagination == " LIMIT {limit:UInt64} OFFSET {offset:UInt64}"
        assert compiled.params == {"limit": 10, "offset": 20}

    def test_limit_only(self, compiler):
        compiled = compiler.compile([Query.limit(5)])
        assert compiled.pagination == " LIMIT {limit:UInt64}"
        assert "offset" not in compiled.params

    def test_offset_without_limit(self, compiler):
        compiled = compiler.compile([Query.offset(3)])
        assert compiled.params == {"limit": MAX_LIMIT, "offset": 3}

    def test_last_pagination_wins(self, compiler):
        compiled = compiler.compile([Query.limit(5), Query.limit(7)])
        assert compiled.limit == 7

    @pytest.mark.parametrize("value", [-1, 1.5, "10", True, None])
    def test_invalid_pagination_values(self, compiler, value):
        with pytest.raises(InvalidQueryValuesError):
            compiler.compile([Query.limit(value)])

    def test_for_count_drops_order_and_pagination(self, compiler):
        compiled = compiler.compile([
            Query.equal("userId", "u1"),
            Query.order_desc(),
            Query.limit(5),
            Query.offset(5),
        ]).for_count()
        assert compiled.orders == ()
        assert compiled.pagination == ""
        assert compiled.params == {"param0": "u1"}


class TestValidation:
    def test_unknown_attribute(self, compiler):
        with pytest.raises(UnknownAttributeError) as exc_info:
            compiler.compile([Query.equal("hostname", "web-1")])
        assert exc_info.value.attribute == "hostname"

    def test_unknown_order_attribute(self, compiler):
        with pytest.raises(UnknownAttributeError):
            compiler.compile([Query.order_asc("nope")])

    def test_extended_schema_knows_extension_attributes(self):
        compiled = ClickHouseCompiler(EXTENDED_SCHEMA).compile([Query.equal("hostname", "web-1")])
        assert compiled.conditions == ("`hostname` = {param0:String}",)

    def test_tenant_attribute_requires_shared_tables(self, compiler, shared_compiler):
        with pytest.raises(UnknownAttributeError):
            compiler.compile([Query.equal("tenant", 1)])
        compiled = shared_compiler.compile([Query.equal("tenant", "7")])
        assert compiled.conditions[0] == "`tenant` = {param0:UInt64}"
        assert compiled.params["param0"] == 7

    def test_unsupported_method(self, compiler):
        with pytest.raises(UnsupportedMethodError):
            compiler.compile([Query(method="like", attribute="event", values=("a%",))])

    def test_empty_in(self, compiler):
        with pytest.raises(InvalidQueryValuesError):
            compiler.compile([Query.in_("event", [])])

    @pytest.mark.parametrize(
        "query",
        [
            Query(method="equal", attribute="event", values=()),
            Query(method="equal", attribute="event", values=("a", "b")),
            Query(method="between", attribute="event", values=("a",)),
            Query(method="between", attribute="event", values=("a", None)),
            Query(method="lessThan", attribute="event", values=(None,)),
            Query(method="in", attribute="event", values=("a", None)),
        ],
    )
    def test_arity_and_null_rules(self, compiler, query):
        with pytest.raises(InvalidQueryValuesError):
            compiler.compile([query])

    def test_unparseable_time(self, compiler):
        with pytest.raises(InvalidQueryValuesError):
            compiler.compile([Query.greater_than("time", "yesterday")])


class TestTenantScoping:
    def test_tenant_condition_last(self, shared_compiler):
        compiled = shared_compiler.compile([Query.equal("userId", "u1"), Query.limit(1)])
        assert compiled.conditions == (
            "`userId` = {param0:String}",
            "`tenant` = {tenant:UInt64}",
        )
        assert compiled.params["tenant"] == 7

    def test_no_tenant_condition_without_tenant(self):
        compiled = ClickHouseCompiler(DEFAULT_SCHEMA, shared_tables=True).compile([])
        assert compiled.conditions == ()

    def test_tenant_ignored_when_not_shared(self):
        compiled = ClickHouseCompiler(DEFAULT_SCHEMA, tenant=7).compile([])
        assert compiled.conditions == ()

    def test_tenant_survives_count(self, shared_compiler):
        compiled = shared_compiler.compile([Query.limit(3)]).for_count()
        assert compiled.params == {"tenant": 7}


class TestStatements:
    def test_select_sql(self, compiler):
        layout = column_layout(DEFAULT_SCHEMA, False)
        compiled = compiler.compile([Query.equal("userId", "u1"), Query.order_desc(), Query.limit(2)])
        assert compiler.select_sql(TABLE, layout, compiled) == (
            "SELECT `id`, `userId`, `event`, `resource`, `userAgent`, `ip`, `location`, `time`, `data`"
            " FROM `default`.`audits` WHERE `userId` = {param0:String}"
            " ORDER BY `time` DESC, `id` DESC LIMIT {limit:UInt64} FORMAT TabSeparated"
        )

    def test_count_sql(self, compiler):
        compiled = compiler.compile([Query.equal("event", "login"), Query.limit(2)])
        assert compiler.count_sql(TABLE, compiled) == (
            "SELECT count() FROM `default`.`audits` WHERE `event` = {param0:String} FORMAT TabSeparated"
        )

    def test_delete_before_sql(self, compiler):
        sql, params = compiler.delete_before_sql(TABLE, datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert sql == "DELETE FROM `default`.`audits` WHERE `time` < {threshold:DateTime64(3)}"
        assert params == {"threshold": "2024-01-01 00:00:00.000"}

    def test_delete_before_sql_scoped_to_tenant(self, shared_compiler):
        sql, params = shared_compiler.delete_before_sql(TABLE, "2024-01-01T00:00:00Z")
        assert sql.endswith("AND `tenant` = {tenant:UInt64}")
        assert params["tenant"] == 7
