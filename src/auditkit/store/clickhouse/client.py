"""
HTTP wire client for ClickHouse.

Statements are POSTed to the root endpoint as multipart form data: the SQL
text in the `query` field and each bound value in a `param_<name>` field.
Values are therefore never spliced into the SQL. Credentials and the active
database travel as headers on every request.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

import httpx

from auditkit.core.errors import QueryTimeoutError, TransportError
from auditkit.logging import get_logger
from auditkit.store.clickhouse.codec import NULL, escape_value
from auditkit.store.clickhouse.config import ClickHouseConfig

logger = get_logger(__name__)

_ACCEPT_ENCODING = {"gzip": "gzip", "deflate": "deflate"}


def format_param(value: Any) -> str:
    """Render a bound value in the escaped text form the engine parses."""
    if value is None:
        return NULL
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    return escape_value(str(value))


def _statement_kind(sql: str) -> str:
    head = sql.lstrip().split(None, 1)
    return head[0].lower() if head else ""


class ClickHouseClient:
    """
    Reusable client for the ClickHouse HTTP interface.

    One httpx.AsyncClient is kept for the life of the object so connections
    are pooled across calls. The config is read on every request, so
    database and timeout changes apply to the next statement.

    Args:
        config: Connection settings
        transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
    """

    def __init__(
        self,
        config: ClickHouseConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ClickHouseClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {
            "X-ClickHouse-User": self.config.username,
            "X-ClickHouse-Key": self.config.password,
            "X-ClickHouse-Database": self.config.database,
        }
        encoding = _ACCEPT_ENCODING.get(self.config.compression)
        if encoding:
            headers["Accept-Encoding"] = encoding
        return headers

    def _url_params(self) -> dict[str, str]:
        if self.config.compression == "none":
            return {}
        return {"enable_http_compression": "1"}

    @property
    def _timeout(self) -> float:
        return self.config.timeout_ms / 1000

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> str:
        """
        Run one statement and return the response body.

        Args:
            sql: Statement text with `{name:Type}` placeholders
            params: Values for the placeholders

        Raises:
            QueryTimeoutError: If the request exceeds the configured timeout
            TransportError: On connection failures and non-2xx responses
        """
        params = params or {}
        fields: dict[str, tuple[None, str]] = {"query": (None, sql)}
        for name, value in params.items():
            fields[f"param_{name}"] = (None, format_param(value))

        kind = _statement_kind(sql)
        started = time.perf_counter()
        try:
            response = await self._client.post(
                self.config.base_url,
                params=self._url_params(),
                headers=self._headers(),
                files=fields,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning(
                "Statement timed out",
                statement=kind,
                timeout_ms=self.config.timeout_ms,
            )
            raise QueryTimeoutError(self.config.timeout_ms, sql=sql) from exc
        except httpx.HTTPError as exc:
            logger.error("Request to ClickHouse failed", statement=kind, error=str(exc))
            raise TransportError(
                f"Request to ClickHouse failed: {exc}",
                sql=sql,
            ) from exc

        duration_ms = (time.perf_counter() - started) * 1000
        if not response.is_success:
            body = response.text
            logger.error(
                "ClickHouse returned an error",
                statement=kind,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
            raise TransportError(
                f"ClickHouse query failed with HTTP {response.status_code}: {body.strip()}",
                status_code=response.status_code,
                body=body,
                sql=sql,
            )

        logger.debug(
            "Statement executed",
            statement=kind,
            param_count=len(params),
            duration_ms=duration_ms,
        )
        return response.text

    async def ping(self) -> bool:
        """Check that the server answers on /ping. Never raises."""
        try:
            response = await self._client.get(
                f"{self.config.base_url}ping",
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Ping failed", error=str(exc))
            return False
        return response.is_success

    async def server_version(self) -> str | None:
        """Return the server version string, or None when unreachable."""
        try:
            body = await self.execute("SELECT version() FORMAT TabSeparated")
        except (TransportError, QueryTimeoutError) as exc:
            logger.warning("Could not read server version", error=exc.message)
            return None
        return body.strip() or None
