"""
数据保留策略服务 (Data Retention Service)

分批删除超过保留期的快照，防止表无限增长。每批独立提交，批次之间短暂暂停，
降低写锁争用；某一批删除 0 行时结束。中途失败时已提交的批次不会回滚，
失败原因与已完成的进度一并通过 RetentionError 报告。

同一截止时间的清理任务不可并发运行，由外部调度保证单实例执行。

Deletes expired snapshots in bounded batches, each committed independently,
pausing briefly between batches. A mid-run failure keeps already-committed
batches and reports the partial progress alongside the error.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from serverpulse.core.exceptions import RetentionError, ValidationError
from serverpulse.schemas.metrics import UTC, CleanupResult, ensure_utc
from serverpulse.services.metric_repository import MetricRepository

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90
BATCH_SIZE = 1000
BATCH_PAUSE_SECONDS = 0.1


class RetentionSweeper:
    """快照保留清理器。"""

    def __init__(
        self,
        repository: MetricRepository,
        batch_size: int = BATCH_SIZE,
        pause_seconds: float = BATCH_PAUSE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Optional[Callable[[], datetime]] = None,
    ):
        if batch_size < 1:
            raise ValidationError("Batch size must be at least 1")
        self.repository = repository
        self.batch_size = batch_size
        self.pause_seconds = pause_seconds
        self._sleep = sleep
        self._now = now or (lambda: datetime.now(UTC))

    def cutoff_for(self, retention_days: int) -> datetime:
        return ensure_utc(self._now()) - timedelta(days=retention_days)

    async def sweep(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> CleanupResult:
        """
        删除 timestamp < now - retention_days 的快照。

        Returns:
            CleanupResult: 删除总数与非空批次数

        Raises:
            ValidationError: retention_days 小于 1
            RetentionError: 某一批删除失败，携带失败前的进度
        """
        if retention_days < 1:
            raise ValidationError("Retention days must be at least 1")

        cutoff = self.cutoff_for(retention_days)
        logger.info(
            "Starting cleanup of metrics older than %d days (before %s)",
            retention_days, cutoff.isoformat(),
        )

        total_deleted = 0
        batch_count = 0
        while True:
            try:
                deleted = await self.repository.delete_older_than_batch(cutoff, self.batch_size)
            except Exception as e:
                logger.error(
                    "Metric cleanup failed after %d batches (%d records deleted): %s",
                    batch_count, total_deleted, e, exc_info=True,
                )
                raise RetentionError(
                    f"Failed to cleanup old metrics: {e}",
                    total_deleted=total_deleted,
                    batch_count=batch_count,
                ) from e

            if deleted <= 0:
                break

            total_deleted += deleted
            batch_count += 1
            logger.debug("Batch %d: deleted %d records (total: %d)", batch_count, deleted, total_deleted)
            # 批次间短暂暂停，减少写锁占用
            await self._sleep(self.pause_seconds)

        if total_deleted:
            logger.info(
                "Cleanup completed: deleted %d records in %d batches (retention %d days)",
                total_deleted, batch_count, retention_days,
            )
        else:
            logger.info("Cleanup: no records older than %d days", retention_days)

        return CleanupResult(
            total_deleted=total_deleted,
            batch_count=batch_count,
            retention_days=retention_days,
            cutoff=cutoff,
        )
