"""
指标清理任务模块。

删除超过保留期的快照，默认保留 90 天，设计为每日由外部调度触发一次。
"""
from typing import Optional

from serverpulse.core.config import Settings, settings
from serverpulse.core.database import async_session
from serverpulse.schemas.metrics import CleanupResult
from serverpulse.services.metric_repository import SqlAlchemyMetricRepository
from serverpulse.services.retention import RetentionSweeper


async def run_cleanup(retention_days: Optional[int] = None, cfg: Settings = settings) -> CleanupResult:
    """执行一次分批清理。

    Args:
        retention_days: 保留天数，为 None 时使用配置值
    """
    if retention_days is None:
        retention_days = cfg.retention_days

    async with async_session() as db:
        sweeper = RetentionSweeper(
            SqlAlchemyMetricRepository(db),
            batch_size=cfg.cleanup_batch_size,
            pause_seconds=cfg.cleanup_batch_pause_seconds,
        )
        return await sweeper.sweep(retention_days)
