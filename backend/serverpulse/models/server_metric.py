"""
服务器指标快照模型 (Server Metric Snapshot Model)

每条记录是一次成功采集周期的完整快照：CPU、内存、磁盘三项瞬时值，
以及磁盘 I/O、网络收发四个自开机以来的累计计数器。快照写入后不再修改，
只会被数据保留任务按时间删除。

Each row is the complete snapshot of one successful collection cycle: three
instantaneous values (CPU, RAM, disk) and four counters cumulative since host
boot (disk I/O, network traffic). Snapshots are immutable once written and are
only removed by the retention sweep.
"""
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column

from serverpulse.core.database import Base


class ServerMetric(Base):
    """
    服务器指标表 (Server Metric Table)

    所有字段均为 NOT NULL：缺少任一指标的快照不会被写入。
    """
    __tablename__ = "server_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )  # 采集时间，UTC (Collection Time, UTC)
    # 瞬时指标 (Instantaneous Metrics)
    cpu_usage_percent: Mapped[float] = mapped_column(Float, nullable=False)  # CPU 使用率 0-100 (CPU Usage Percentage)
    ram_usage_gb: Mapped[float] = mapped_column(Float, nullable=False)  # 已用内存 GB (Used RAM in GB)
    disk_usage_gb: Mapped[float] = mapped_column(Float, nullable=False)  # 根分区已用空间 GB (Used Root FS in GB)
    # 累计计数器 (Cumulative Counters)
    io_read_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)  # 累计读取字节 (Total Bytes Read)
    io_write_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)  # 累计写入字节 (Total Bytes Written)
    net_sent_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)  # 累计发送字节 (Total Bytes Sent)
    net_received_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)  # 累计接收字节 (Total Bytes Received)
