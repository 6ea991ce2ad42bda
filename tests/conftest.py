"""
Shared test fixtures.
"""

import re
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine

from auditkit.core.schema import DEFAULT_SCHEMA, EXTENDED_SCHEMA
from auditkit.store.clickhouse import ClickHouseAdapter, ClickHouseConfig
from auditkit.store.sqlalchemy import SQLAlchemyAdapter

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# === Fake ClickHouse HTTP interface ===


def parse_form(request: httpx.Request) -> dict[str, str]:
    """Decode the multipart form fields of a captured request."""
    match = re.search(r"boundary=([^;]+)", request.headers.get("content-type", ""))
    if match is None:
        return {}
    boundary = b"--" + match.group(1).encode()
    fields = {}
    for part in request.content.split(boundary):
        part = part.strip(b"\r\n")
        if not part or part == b"--":
            continue
        head, _, body = part.partition(b"\r\n\r\n")
        name = re.search(rb'name="([^"]+)"', head)
        if name:
            fields[name.group(1).decode()] = body.decode()
    return fields


class FakeClickHouse:
    """
    Records requests and replays queued responses.

    Queue a body string, an (status, body) tuple, or an exception instance.
    Unqueued requests get an empty 200 response.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: list = []

    def queue(self, *responses) -> None:
        self._responses.extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/ping":
            return httpx.Response(200, text="Ok.\n")
        if not self._responses:
            return httpx.Response(200, text="")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, tuple):
            status, body = response
            return httpx.Response(status, text=body)
        return httpx.Response(200, text=response)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def form(self, index: int = -1) -> dict[str, str]:
        return parse_form(self.requests[index])

    def sql(self, index: int = -1) -> str:
        return self.form(index)["query"]

    def params(self, index: int = -1) -> dict[str, str]:
        return {
            k[len("param_"):]: v for k, v in self.form(index).items() if k.startswith("param_")
        }


@pytest.fixture
def fake_clickhouse():
    return FakeClickHouse()


@pytest.fixture
def clickhouse_config():
    return ClickHouseConfig(host="localhost", username="auditor", password="s3cret")


@pytest.fixture
def clickhouse_adapter(fake_clickhouse, clickhouse_config):
    """ClickHouse adapter on the default schema, wired to the fake server."""
    return ClickHouseAdapter(clickhouse_config, transport=fake_clickhouse.transport)


@pytest.fixture
def extended_clickhouse_adapter(fake_clickhouse):
    return ClickHouseAdapter(
        host="localhost",
        schema=EXTENDED_SCHEMA,
        transport=fake_clickhouse.transport,
    )


# === SQLAlchemy on SQLite ===


@pytest.fixture
def engine(tmp_path):
    """File-based SQLite engine, shared safely across executor threads."""
    engine = create_engine(f"sqlite:///{tmp_path / 'audit.db'}")
    yield engine
    engine.dispose()


@pytest_asyncio.fixture
async def sql_adapter(engine):
    adapter = SQLAlchemyAdapter(engine, schema=DEFAULT_SCHEMA)
    await adapter.setup()
    return adapter


@pytest_asyncio.fixture
async def extended_sql_adapter(engine):
    adapter = SQLAlchemyAdapter(engine, schema=EXTENDED_SCHEMA, namespace="ext")
    await adapter.setup()
    return adapter


# === Sample records ===


def make_log(**overrides):
    """Build a minimal valid record as a column mapping."""
    log = {
        "userId": "u1",
        "event": "update",
        "resource": "doc/1",
        "userAgent": "Mozilla/5.0",
        "ip": "127.0.0.1",
        "location": "DE",
        "time": BASE_TIME,
        "data": {},
    }
    log.update(overrides)
    return log


def minutes(n: int) -> datetime:
    return BASE_TIME + timedelta(minutes=n)


@pytest.fixture
def sample_log():
    return make_log(data={"field": "title", "old": "Draft"})
