"""
Property-based tests for the query algebra and compiler using Hypothesis.
"""

import re

from hypothesis import given, settings
from hypothesis import strategies as st

from auditkit.core.query import Query, QueryMethod
from auditkit.core.resource import parse_resource
from auditkit.core.schema import DEFAULT_SCHEMA
from auditkit.store.clickhouse.codec import column_layout, escape_value, unescape_value
from auditkit.store.clickhouse.compiler import ClickHouseCompiler

TEXT_ATTRIBUTES = ["userId", "event", "resource", "userAgent", "ip", "location"]

# === Strategy Definitions ===

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2**53), max_value=2**53),
    st.text(max_size=20),
)


@st.composite
def filter_query_strategy(draw):
    """Generate valid filters over text attributes."""
    attribute = draw(st.sampled_from(TEXT_ATTRIBUTES))
    method = draw(st.sampled_from([
        QueryMethod.EQUAL,
        QueryMethod.LESS_THAN,
        QueryMethod.GREATER_THAN,
        QueryMethod.BETWEEN,
        QueryMethod.IN,
    ]))
    value = st.text(min_size=1, max_size=30)
    if method is QueryMethod.BETWEEN:
        return Query.between(attribute, draw(value), draw(value))
    if method is QueryMethod.IN:
        return Query.in_(attribute, draw(st.lists(value, min_size=1, max_size=5)))
    return Query(method=method.value, attribute=attribute, values=(draw(value),))


# === Query serialization ===


class TestQuerySerialization:
    @given(
        method=st.sampled_from([m.value for m in QueryMethod]),
        attribute=st.sampled_from(["", *TEXT_ATTRIBUTES]),
        values=st.lists(json_scalars, max_size=5),
    )
    def test_parse_inverts_to_string(self, method, attribute, values):
        query = Query(method=method, attribute=attribute, values=values)
        assert Query.parse(query.to_string()) == query


# === Compiler ===


class TestCompilerProperties:
    @given(st.lists(filter_query_strategy(), max_size=6))
    @settings(max_examples=100)
    def test_one_parameter_per_value(self, queries):
        compiled = ClickHouseCompiler(DEFAULT_SCHEMA).compile(queries)
        assert len(compiled.params) == sum(len(q.values) for q in queries)
        assert len(compiled.conditions) == len(queries)

    @given(st.lists(filter_query_strategy(), min_size=1, max_size=6))
    @settings(max_examples=100)
    def test_placeholders_match_parameters(self, queries):
        compiled = ClickHouseCompiler(DEFAULT_SCHEMA).compile(queries)
        names = re.findall(r"\{(param\d+):String\}", compiled.where)
        assert names == list(compiled.params)
        assert names == [f"param{i}" for i in range(len(names))]

    @given(st.lists(filter_query_strategy(), min_size=1, max_size=4), st.integers(0, 2**32))
    def test_tenant_condition_always_last(self, queries, tenant):
        compiled = ClickHouseCompiler(DEFAULT_SCHEMA, shared_tables=True, tenant=tenant).compile(queries)
        assert compiled.conditions[-1] == "`tenant` = {tenant:UInt64}"
        assert compiled.params["tenant"] == tenant

    @given(st.lists(filter_query_strategy(), max_size=4), st.integers(0, 1000), st.integers(0, 1000))
    def test_count_drops_only_pagination(self, queries, limit, offset):
        compiler = ClickHouseCompiler(DEFAULT_SCHEMA)
        paginated = compiler.compile([*queries, Query.limit(limit), Query.offset(offset)]).for_count()
        plain = compiler.compile(queries)
        assert paginated.conditions == plain.conditions
        assert paginated.params == plain.params

    @given(filter_query_strategy())
    def test_select_list_matches_layout(self, query):
        compiler = ClickHouseCompiler(DEFAULT_SCHEMA)
        layout = column_layout(DEFAULT_SCHEMA, shared_tables=False)
        sql = compiler.select_sql("`default`.`audits`", layout, compiler.compile([query]))
        assert sql.startswith(f"SELECT {layout.select_list()} FROM")


# === Wire escaping ===


class TestEscaping:
    @given(st.text())
    def test_unescape_inverts_escape(self, value):
        assert unescape_value(escape_value(value)) == value

    @given(st.text())
    def test_escaped_values_have_no_separators(self, value):
        escaped = escape_value(value)
        assert "\t" not in escaped
        assert "\n" not in escaped


# === Resource paths ===


segment = st.text(alphabet=st.characters(exclude_characters="/"), min_size=1, max_size=10)


class TestResourcePaths:
    @given(st.lists(segment, min_size=2, max_size=6))
    def test_parts_rejoin_to_path(self, segments):
        path = parse_resource("/".join(segments))
        joined = "/".join(p for p in (path.parent, path.type, path.id) if p is not None)
        assert joined == "/".join(segments)
        assert path.id == segments[-1]
        assert path.type == segments[-2]
