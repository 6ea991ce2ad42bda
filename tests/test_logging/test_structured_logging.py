"""
Tests for structured logging.
"""

import io
import json
import logging

import pytest

from auditkit.core.errors import TransportError
from auditkit.logging import (
    JSONFormatter,
    LogContext,
    TextFormatter,
    configure_logging,
    get_log_context,
    get_logger,
    with_log_context,
)


@pytest.fixture
def stream():
    output = io.StringIO()
    yield output
    root = logging.getLogger("auditkit")
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)


def lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestLogContext:
    def test_nested_scopes(self):
        assert get_log_context() == {}
        with with_log_context(adapter="clickhouse", operation="find"):
            with with_log_context(tenant=3):
                assert get_log_context() == {
                    "adapter": "clickhouse",
                    "operation": "find",
                    "tenant": 3,
                }
            assert "tenant" not in get_log_context()
        assert get_log_context() == {}

    def test_none_values_skipped(self):
        with with_log_context(adapter="sqlalchemy", namespace=None):
            assert get_log_context() == {"adapter": "sqlalchemy"}

    def test_context_object_replaces(self):
        with with_log_context(adapter="clickhouse"):
            with with_log_context(LogContext(operation="count", extra={"request_id": "r1"})):
                assert get_log_context() == {"operation": "count", "request_id": "r1"}

    def test_reset_on_error(self):
        with pytest.raises(RuntimeError):
            with with_log_context(adapter="clickhouse"):
                raise RuntimeError("boom")
        assert get_log_context() == {}


class TestConfigureLogging:
    def test_json_output_with_context(self, stream):
        configure_logging(level="DEBUG", format="json", output=stream)
        logger = get_logger("auditkit.test")
        with with_log_context(adapter="clickhouse", operation="find", tenant=2):
            logger.debug("Statement executed", statement="select", duration_ms=1.5)

        [entry] = lines(stream)
        assert entry["level"] == "DEBUG"
        assert entry["logger"] == "auditkit.test"
        assert entry["message"] == "Statement executed"
        assert entry["adapter"] == "clickhouse"
        assert entry["tenant"] == 2
        assert entry["duration_ms"] == 1.5
        assert entry["extra"] == {"statement": "select"}

    def test_level_filters(self, stream):
        configure_logging(level="WARNING", output=stream)
        logger = get_logger("auditkit.test")
        logger.info("hidden")
        logger.warning("shown")
        assert [e["message"] for e in lines(stream)] == ["shown"]
        assert not logger.is_enabled_for(logging.INFO)

    def test_text_output(self, stream):
        configure_logging(level="INFO", format="text", output=stream, use_colors=False)
        with with_log_context(adapter="sqlalchemy", operation="cleanup"):
            get_logger("auditkit.test").info("Deleted audit records", duration_ms=4.0)
        line = stream.getvalue()
        assert "INFO" in line
        assert "[adapter=sqlalchemy, operation=cleanup]" in line
        assert line.rstrip().endswith("(4.0ms)")

    def test_exception_serialized(self, stream):
        configure_logging(level="ERROR", output=stream)
        try:
            raise ValueError("bad row")
        except ValueError:
            get_logger("auditkit.test").exception("Decode failed")
        [entry] = lines(stream)
        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "bad row"


class TestAdapterLogging:
    @pytest.mark.asyncio
    async def test_statements_logged_with_scope(self, stream, clickhouse_adapter, fake_clickhouse):
        configure_logging(level="DEBUG", output=stream)
        fake_clickhouse.queue("5\n")
        await clickhouse_adapter.set_tenant(1).set_shared_tables(True).count()

        [entry] = [e for e in lines(stream) if e["message"] == "Statement executed"]
        assert entry["adapter"] == "clickhouse"
        assert entry["operation"] == "count"
        assert entry["database"] == "default"
        assert entry["tenant"] == 1
        assert entry["extra"]["statement"] == "select"
        assert entry["extra"]["param_count"] == 1

    @pytest.mark.asyncio
    async def test_password_never_logged(self, stream, clickhouse_adapter, fake_clickhouse):
        configure_logging(level="DEBUG", output=stream)
        fake_clickhouse.queue((500, "boom"))
        with pytest.raises(TransportError):
            await clickhouse_adapter.find()
        assert "s3cret" not in stream.getvalue()


class TestFormatters:
    def test_json_formatter_stringifies_unserializable_extra(self):
        record = logging.LogRecord("auditkit", logging.INFO, __file__, 1, "msg", None, None)
        record.payload = object()
        entry = json.loads(JSONFormatter().format(record))
        assert isinstance(entry["extra"]["payload"], str)

    def test_text_formatter_colors(self):
        record = logging.LogRecord("auditkit", logging.ERROR, __file__, 1, "msg", None, None)
        assert "\033[31m" in TextFormatter(use_colors=True).format(record)
