"""
Audit storage: the adapter contract, the Log model and the backends.
"""

from auditkit.store.base import AuditAdapter
from auditkit.store.clickhouse import ClickHouseAdapter, ClickHouseConfig
from auditkit.store.models import Log
from auditkit.store.retention import RetentionManager, RetentionPolicy, RetentionResult
from auditkit.store.sqlalchemy import SQLAlchemyAdapter

__all__ = [
    "AuditAdapter",
    "ClickHouseAdapter",
    "ClickHouseConfig",
    "Log",
    "RetentionManager",
    "RetentionPolicy",
    "RetentionResult",
    "SQLAlchemyAdapter",
]
