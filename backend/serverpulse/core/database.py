"""
数据库连接模块 (Database Connection Module)

基于 SQLAlchemy 2.0 异步模式创建数据库引擎和会话工厂，为快照存储提供持久化支持。

Creates the database engine and session factory based on SQLAlchemy 2.0 async
mode, providing persistence for the snapshot store.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from serverpulse.core.config import settings

# 创建异步数据库引擎 (Create Async Database Engine)
engine = create_async_engine(
    settings.database_url,
    echo=False  # 关闭 SQL 日志输出 (Disable SQL logging)
)

# 创建异步会话工厂 (Create Async Session Factory)
# 提交后不过期对象，便于读取已保存的数据
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """
    ORM 模型基类 (ORM Model Base Class)

    所有数据模型都继承此类。
    """
    pass


async def init_db() -> None:
    """创建所有表结构（已存在的表会被跳过）。"""
    # 导入模型以确保表注册到 metadata
    from serverpulse.models import ServerMetric  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
