"""
指标采集任务模块。

执行一次完整的 SSH 采集周期并写入一条快照，设计为由外部调度（如 cron）每分钟触发。
采集失败时不写入任何数据。
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from serverpulse.core.config import Settings, settings
from serverpulse.core.database import async_session
from serverpulse.core.exceptions import ValidationError
from serverpulse.schemas.metrics import MetricSnapshot
from serverpulse.services.metric_repository import SqlAlchemyMetricRepository
from serverpulse.services.ssh_collector import RemoteMetricsCollector

logger = logging.getLogger(__name__)


async def collect_and_store(
    collector: Optional[RemoteMetricsCollector] = None,
    cfg: Settings = settings,
) -> MetricSnapshot:
    """采集并持久化一条快照。

    Args:
        collector: 采集器实例，为 None 时按配置创建

    Raises:
        ValidationError: SSH 配置不完整
        RemoteConnectionError: 重试耗尽仍采集失败
    """
    if collector is None:
        if not cfg.ssh_configured:
            raise ValidationError(
                "Missing required SSH configuration. Set SSH_HOST, SSH_USERNAME and SSH_PRIVATE_KEY."
            )
        collector = RemoteMetricsCollector.from_settings(cfg)

    metrics = await collector.collect()

    async with async_session() as db:
        snapshot = await SqlAlchemyMetricRepository(db).add(metrics, datetime.now(timezone.utc))

    logger.info(
        "Metrics collected successfully: CPU=%.2f%%, RAM=%.2fGB, Disk=%.2fGB",
        snapshot.cpu_usage_percent, snapshot.ram_usage_gb, snapshot.disk_usage_gb,
    )
    return snapshot
