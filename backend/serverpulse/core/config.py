"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理 ServerPulse 的所有配置项，支持从 .env 文件和环境变量读取。
涵盖数据库连接、SSH 采集目标、重试策略和数据保留策略。

Uses Pydantic Settings to manage all ServerPulse configuration items, read from
.env files and environment variables. Covers the database connection, the SSH
collection target, the retry policy and the data retention policy.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），如 SSH_HOST、SSH_PRIVATE_KEY。

    Field names map to same-named environment variables (case insensitive),
    e.g. SSH_HOST, SSH_PRIVATE_KEY.
    """

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"  # PostgreSQL 主机地址 (PostgreSQL Host)
    postgres_port: int = 5432  # PostgreSQL 端口号 (PostgreSQL Port)
    postgres_db: str = "serverpulse"  # 数据库名称 (Database Name)
    postgres_user: str = "serverpulse"  # 数据库用户名 (Database Username)
    postgres_password: str = "serverpulse_dev_password"  # 数据库密码 (Database Password)

    # SSH 采集目标 (SSH Collection Target)
    ssh_host: str = ""  # 被监控主机地址 (Monitored Host)
    ssh_port: int = 22  # SSH 端口 (SSH Port)
    ssh_username: str = ""  # SSH 用户名 (SSH Username)
    ssh_private_key: str = ""  # 私钥，PEM 文本或 base64 编码的 PEM (PEM text or base64-encoded PEM)
    ssh_known_hosts: str | None = None  # known_hosts 路径，未设置时不校验主机密钥 (known_hosts path)

    # 采集与重试 (Collection and Retry)
    ssh_timeout_seconds: float = 30.0  # 单次尝试超时 (Per-attempt Timeout)
    collect_max_retries: int = 3  # 最大尝试次数 (Max Attempts per Cycle)
    collect_retry_base_delay: float = 2.0  # 指数退避底数，第 n 次失败后等待 base**n 秒 (Backoff Base)
    collection_interval_seconds: int = 60  # 期望采集间隔 (Expected Collection Interval)

    # 数据保留 (Data Retention)
    retention_days: int = 90  # 快照保留天数 (Snapshot Retention Days)
    cleanup_batch_size: int = 1000  # 每批删除行数 (Rows per Delete Batch)
    cleanup_batch_pause_seconds: float = 0.1  # 批次间暂停 (Pause Between Batches)

    @property
    def database_url(self) -> str:
        """
        构造 PostgreSQL 异步连接 URL (Build PostgreSQL Async Connection URL)

        生成适用于 asyncpg 驱动的连接字符串，用于 SQLAlchemy 异步会话创建。
        """
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def ssh_configured(self) -> bool:
        """SSH 必填项是否齐全。"""
        return bool(self.ssh_host and self.ssh_username and self.ssh_private_key)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}  # Pydantic 配置：自动加载 .env 文件 (Auto-load .env file)


# 全局配置实例 (Global Configuration Instance)
settings = Settings()
