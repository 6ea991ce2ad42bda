"""
Audit log retention policy.

Cleanup is one-shot: callers decide when to run it (cron, a task queue, an
admin endpoint). Nothing here starts background work.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from auditkit.core.errors import AuditKitError, InvalidConfigurationError

if TYPE_CHECKING:
    from auditkit.store.base import AuditAdapter

logger = logging.getLogger(__name__)


@dataclass
class RetentionPolicy:
    """
    Configuration for audit log retention.

    Attributes:
        max_age: Records older than this are deleted
    """

    max_age: timedelta = field(default_factory=lambda: timedelta(days=90))

    def __post_init__(self) -> None:
        if self.max_age <= timedelta(0):
            raise InvalidConfigurationError("max_age must be positive", setting="max_age")

    @classmethod
    def days(cls, days: int, **kwargs: Any) -> RetentionPolicy:
        """Create a policy with max_age in days."""
        return cls(max_age=timedelta(days=days), **kwargs)

    def cutoff(self, now: datetime | None = None) -> datetime:
        """Timestamp before which records are expired."""
        return (now or datetime.now(timezone.utc)) - self.max_age


@dataclass
class RetentionResult:
    """
    Result of a retention cleanup run.

    Attributes:
        cutoff_time: The timestamp used as the cutoff
        duration_ms: Time taken to run cleanup in milliseconds
        error: Error message if cleanup failed
    """

    cutoff_time: datetime | None = None
    duration_ms: float = 0.0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class RetentionManager:
    """
    Applies a retention policy to an adapter.

    Usage:
        manager = RetentionManager(adapter, RetentionPolicy.days(30))
        result = await manager.run_cleanup()
        if not result.success:
            ...

    Deletion on the ClickHouse adapter is eventually visible; see
    ClickHouseAdapter.cleanup.
    """

    def __init__(
        self,
        adapter: AuditAdapter,
        policy: RetentionPolicy | None = None,
    ) -> None:
        self.adapter = adapter
        self.policy = policy or RetentionPolicy()

    async def run_cleanup(self, now: datetime | None = None) -> RetentionResult:
        """
        Run a single cleanup pass.

        Failures are reported in the result rather than raised.
        """
        start_time = time.perf_counter()
        cutoff = self.policy.cutoff(now)
        result = RetentionResult(cutoff_time=cutoff)

        try:
            await self.adapter.cleanup(cutoff)
            logger.info(
                "Retention cleanup completed: adapter=%s, cutoff=%s",
                self.adapter.name,
                cutoff.isoformat(),
            )
        except AuditKitError as e:
            result.error = e.message
            logger.error("Retention cleanup failed: %s", e)

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        return result
