"""
ClickHouse connection and runtime configuration.

Connection settings (host, credentials, port, TLS, timeout, compression)
are validated when the config is built. Runtime settings (database,
namespace, tenant, shared tables) are changed through guarded setters that
validate once, at assignment, because they end up interpolated into SQL
text as identifiers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Literal

from auditkit.core.errors import InvalidConfigurationError
from auditkit.core.identifiers import validate_hostname, validate_identifier

CompressionMode = Literal["none", "gzip", "deflate"]

COMPRESSION_MODES: tuple[str, ...] = ("none", "gzip", "deflate")

MIN_TIMEOUT_MS = 1_000
MAX_TIMEOUT_MS = 600_000
DEFAULT_TIMEOUT_MS = 30_000

DEFAULT_PORT = 8123

ENV_PREFIX = "AUDITKIT_CLICKHOUSE_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass
class ClickHouseConfig:
    """
    Settings for a ClickHouseAdapter.

    Attributes:
        host: Hostname or IP literal of the HTTP interface
        username: Sent as X-ClickHouse-User
        password: Sent as X-ClickHouse-Key; never logged or put in errors
        port: HTTP port (1-65535)
        secure: Use https instead of http
        timeout_ms: Per-request timeout in milliseconds
        compression: Response compression mode
        database: Active database, sent per request
        namespace: Optional table-name prefix ("<namespace>_<table>")
        table: Logical collection name
        tenant: Tenant id applied to every statement when shared_tables is on
        shared_tables: Whether one physical table serves several tenants
    """

    host: str
    username: str = "default"
    password: str = ""
    port: int = DEFAULT_PORT
    secure: bool = False
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    compression: CompressionMode = "none"
    database: str = "default"
    namespace: str = ""
    table: str = "audits"
    tenant: int | None = None
    shared_tables: bool = False

    def __post_init__(self) -> None:
        validate_hostname(self.host)
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            raise InvalidConfigurationError(
                f"Port must be between 1 and 65535, got {self.port!r}",
                setting="port",
            )
        self.set_timeout(self.timeout_ms)
        self.set_compression(self.compression)
        self.set_database(self.database)
        self.set_namespace(self.namespace)
        self.table = validate_identifier(self.table, "Table")
        self.set_tenant(self.tenant)

    # === Guarded setters ===

    def set_database(self, database: str) -> None:
        self.database = validate_identifier(database, "Database")

    def set_namespace(self, namespace: str) -> None:
        """Set the table prefix. An empty namespace means no prefix."""
        if namespace:
            validate_identifier(namespace, "Namespace")
        self.namespace = namespace

    def set_tenant(self, tenant: int | None) -> None:
        if tenant is not None and (isinstance(tenant, bool) or not isinstance(tenant, int) or tenant < 0):
            raise InvalidConfigurationError(
                "Tenant must be a non-negative integer or None",
                setting="tenant",
            )
        self.tenant = tenant

    def set_shared_tables(self, shared_tables: bool) -> None:
        self.shared_tables = bool(shared_tables)

    def set_secure(self, secure: bool) -> None:
        self.secure = bool(secure)

    def set_timeout(self, timeout_ms: int) -> None:
        if (
            isinstance(timeout_ms, bool)
            or not isinstance(timeout_ms, int)
            or not MIN_TIMEOUT_MS <= timeout_ms <= MAX_TIMEOUT_MS
        ):
            raise InvalidConfigurationError(
                f"Timeout must be between {MIN_TIMEOUT_MS} and {MAX_TIMEOUT_MS} ms, "
                f"got {timeout_ms!r}",
                setting="timeout_ms",
            )
        self.timeout_ms = timeout_ms

    def set_compression(self, compression: str) -> None:
        if compression not in COMPRESSION_MODES:
            raise InvalidConfigurationError(
                f"Unsupported compression mode {compression!r}. "
                f"Supported: {', '.join(COMPRESSION_MODES)}",
                setting="compression",
            )
        self.compression = compression  # type: ignore[assignment]

    # === Derived values ===

    @property
    def base_url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}:{self.port}/"

    @property
    def table_name(self) -> str:
        """Physical table name, including the namespace prefix."""
        if self.namespace:
            return f"{self.namespace}_{self.table}"
        return self.table

    @property
    def tenant_scoped(self) -> bool:
        """Whether statements carry the implicit tenant condition."""
        return self.shared_tables and self.tenant is not None

    def __repr__(self) -> str:
        return (
            f"ClickHouseConfig(host={self.host!r}, port={self.port}, "
            f"secure={self.secure}, username={self.username!r}, "
            f"database={self.database!r}, table={self.table_name!r}, "
            f"tenant={self.tenant!r}, shared_tables={self.shared_tables})"
        )

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, **overrides: Any) -> ClickHouseConfig:
        """
        Build a config from environment variables.

        Reads <prefix>HOST, USERNAME, PASSWORD, PORT, SECURE, TIMEOUT_MS,
        COMPRESSION, DATABASE, NAMESPACE, TABLE, TENANT and SHARED_TABLES.
        Keyword overrides take precedence over the environment.

        Raises:
            InvalidConfigurationError: If HOST is unset or a value is malformed
        """
        env = {k[len(prefix):].lower(): v for k, v in os.environ.items() if k.startswith(prefix)}
        values: dict[str, Any] = {}

        for key in ("host", "username", "password", "compression", "database", "namespace", "table"):
            if key in env:
                values[key] = env[key]
        for key in ("port", "timeout_ms", "tenant"):
            if env.get(key):
                try:
                    values[key] = int(env[key])
                except ValueError:
                    raise InvalidConfigurationError(
                        f"{prefix}{key.upper()} must be an integer",
                        setting=key,
                    ) from None
        for key in ("secure", "shared_tables"):
            if key in env:
                values[key] = env[key].strip().lower() in _TRUE_VALUES

        values.update(overrides)
        if not values.get("host"):
            raise InvalidConfigurationError(f"{prefix}HOST is not set", setting="host")
        return cls(**values)
