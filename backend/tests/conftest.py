"""
ServerPulse 测试基础配置

提供 SQLite in-memory 异步数据库、快照构造工具、伪造的远程命令执行器等通用 fixture。
所有测试使用隔离的 SQLite 数据库，不依赖外部 PostgreSQL 或 SSH 主机。
"""
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# 必须在导入 serverpulse 之前设置环境变量，避免读取真实配置
import os
os.environ["POSTGRES_HOST"] = "localhost"
os.environ["POSTGRES_PORT"] = "5432"
os.environ["SSH_HOST"] = ""
os.environ["SSH_USERNAME"] = ""
os.environ["SSH_PRIVATE_KEY"] = ""

from serverpulse.core.database import Base
from serverpulse.models.server_metric import ServerMetric
from serverpulse.services.metric_repository import SqlAlchemyMetricRepository

UTC = timezone.utc
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ── 远程命令样例输出 ──────────────────────────────────────────────────

LOADAVG_OUTPUT = "2.00 1.50 1.00 3/512 12345\n"

MEMINFO_OUTPUT = """MemTotal:       16777216 kB
MemFree:         1048576 kB
MemAvailable:    8388608 kB
Buffers:          524288 kB
Cached:          4194304 kB
"""

DF_USED_OUTPUT = "53687091200\n"  # 50 GB

DF_TABLE_OUTPUT = """Filesystem        1B-blocks         Used    Available Use% Mounted on
/dev/sda1      107374182400  21474836480  85899345920  20% /
"""

DISKSTATS_OUTPUT = """   7       0 loop0 100 0 2000 10 0 0 0 0 0 10 10 0 0 0 0
   8       0 sda 5000 100 200000 3000 8000 200 400000 9000 0 10000 12000 0 0 0 0
   8       1 sda1 4000 90 100000 2500 7000 150 300000 8000 0 9000 10500 0 0 0 0
   1       0 ram0 0 0 5000 0 0 0 5000 0 0 0 0 0 0 0 0
 259       0 nvme0n1 1000 0 50000 500 2000 0 60000 700 0 800 1200 0 0 0 0
"""

NETDEV_OUTPUT = """Inter-|   Receive                                                |  Transmit
 face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets errs drop fifo colls carrier compressed
    lo: 9999999    1000    0    0    0     0          0         0  9999999    1000    0    0    0     0       0          0
  eth0: 1000000    2000    0    0    0     0          0         0   500000    1500    0    0    0     0       0          0
  eth1:  250000     300    0    0    0     0          0         0   125000     200    0    0    0     0       0          0
"""


class FakeRunner:
    """按命令前缀返回预设输出的远程命令执行器，记录调用顺序。"""

    def __init__(self, outputs: Optional[dict] = None):
        self.outputs = {
            "cat /proc/loadavg": LOADAVG_OUTPUT,
            "nproc": "4\n",
            "cat /proc/meminfo": MEMINFO_OUTPUT,
            "df -B1 / 2>/dev/null | awk": DF_USED_OUTPUT,
            "df -B1 / 2>/dev/null | tail": DF_TABLE_OUTPUT,
            "cat /proc/diskstats": DISKSTATS_OUTPUT,
            "cat /proc/net/dev": NETDEV_OUTPUT,
        }
        if outputs:
            self.outputs.update(outputs)
        self.calls: list[str] = []

    async def __call__(self, command: str) -> Optional[str]:
        self.calls.append(command)
        for prefix, output in self.outputs.items():
            if command.startswith(prefix):
                return output
        return None


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


# ── 数据库 ────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine():
    """每个测试独立的内存数据库。"""
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """提供一个干净的数据库会话。"""
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def repository(db_session) -> SqlAlchemyMetricRepository:
    return SqlAlchemyMetricRepository(db_session)


def make_metric(timestamp: datetime, **overrides) -> ServerMetric:
    """构造一条 ORM 快照，未指定的字段使用固定值。"""
    values = {
        "cpu_usage_percent": 10.0,
        "ram_usage_gb": 4.0,
        "disk_usage_gb": 50.0,
        "io_read_bytes": 1000,
        "io_write_bytes": 2000,
        "net_sent_bytes": 3000,
        "net_received_bytes": 4000,
    }
    values.update(overrides)
    return ServerMetric(timestamp=timestamp, **values)


@pytest_asyncio.fixture
async def seed_metrics(db_session):
    """批量写入快照：传入 ServerMetric 列表。"""
    async def _seed(metrics: list[ServerMetric]) -> None:
        db_session.add_all(metrics)
        await db_session.commit()
    return _seed


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


def minutes_before(now: datetime, minutes: float) -> datetime:
    return now - timedelta(minutes=minutes)
