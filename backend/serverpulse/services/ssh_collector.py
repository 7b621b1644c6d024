"""
SSH 远程指标采集服务 (Remote Metrics Collector)

每个采集周期通过 SSH 连接被监控主机，依次执行五类只读诊断命令（CPU、内存、磁盘、
I/O、网络），解析后返回一份完整的 CollectedMetrics。整个周期要么全部成功，要么失败：
任一指标解析失败都会放弃本次尝试，不会产生残缺快照。

失败时整周期重试，最多 3 次，第 n 次失败后等待 base**n 秒（2s、4s）。等待使用
asyncio.sleep，可被取消，不阻塞其他协程。SSH 连接的生命周期限定在单次尝试内，
成功、解析失败、超时或取消时都会关闭。

Connects to the monitored host once per attempt, runs the five diagnostic
command groups sequentially over one connection and returns one atomic result.
The whole cycle is retried with exponential backoff; the connection is always
released when an attempt ends.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import Awaitable, Callable, Optional

import asyncssh

from serverpulse.core.config import Settings, settings
from serverpulse.core.exceptions import RemoteConnectionError
from serverpulse.schemas.metrics import CollectedMetrics
from serverpulse.services.metric_parsers import (
    MetricKind,
    parse_cpu,
    parse_disk,
    parse_disk_primary,
    parse_io,
    parse_network,
    parse_ram,
)

logger = logging.getLogger(__name__)

# 远程诊断命令 (Remote diagnostic commands)
LOADAVG_COMMAND = "cat /proc/loadavg"
NPROC_COMMAND = "nproc"
MEMINFO_COMMAND = "cat /proc/meminfo"
DISK_PRIMARY_COMMAND = "df -B1 / 2>/dev/null | awk 'NR==2 {print $3}'"
DISK_FALLBACK_COMMAND = "df -B1 / 2>/dev/null | tail -n 1"
DISKSTATS_COMMAND = "cat /proc/diskstats"
NETDEV_COMMAND = "cat /proc/net/dev"

CommandRunner = Callable[[str], Awaitable[Optional[str]]]


class SshCommandRunner:
    """在已建立的 SSH 连接上执行命令；非零退出码视为无输出。"""

    def __init__(self, conn: asyncssh.SSHClientConnection) -> None:
        self._conn = conn

    async def __call__(self, command: str) -> Optional[str]:
        result = await self._conn.run(command, check=False)
        if result.exit_status not in (0, None):
            logger.debug("Command %r exited with status %s", command, result.exit_status)
            return None
        stdout = result.stdout
        if isinstance(stdout, bytes):
            stdout = stdout.decode(errors="replace")
        return stdout


# ── 按指标类型采集 ───────────────────────────────────────────────────

async def _collect_cpu(run: CommandRunner) -> dict:
    loadavg = await run(LOADAVG_COMMAND)
    nproc = await run(NPROC_COMMAND)
    return {"cpu_usage_percent": parse_cpu(loadavg, nproc)}


async def _collect_ram(run: CommandRunner) -> dict:
    return {"ram_usage_gb": parse_ram(await run(MEMINFO_COMMAND))}


async def _collect_disk(run: CommandRunner) -> dict:
    primary = await run(DISK_PRIMARY_COMMAND)
    fallback = None
    if parse_disk_primary(primary) is None:
        logger.debug("Primary df output unusable (%r), falling back to df table", primary)
        fallback = await run(DISK_FALLBACK_COMMAND)
    return {"disk_usage_gb": parse_disk(primary, fallback)}


async def _collect_io(run: CommandRunner) -> dict:
    counters = parse_io(await run(DISKSTATS_COMMAND))
    return {"io_read_bytes": counters.read_bytes, "io_write_bytes": counters.write_bytes}


async def _collect_network(run: CommandRunner) -> dict:
    counters = parse_network(await run(NETDEV_COMMAND))
    return {"net_sent_bytes": counters.sent_bytes, "net_received_bytes": counters.received_bytes}


KIND_COLLECTORS: dict[MetricKind, Callable[[CommandRunner], Awaitable[dict]]] = {
    MetricKind.CPU: _collect_cpu,
    MetricKind.RAM: _collect_ram,
    MetricKind.DISK: _collect_disk,
    MetricKind.IO: _collect_io,
    MetricKind.NETWORK: _collect_network,
}


async def collect_from_runner(run: CommandRunner) -> CollectedMetrics:
    """按 MetricKind 顺序逐类采集（共享同一通道，必须串行），任一失败即中止。"""
    values: dict = {}
    for kind in MetricKind:
        values.update(await KIND_COLLECTORS[kind](run))
    return CollectedMetrics(**values)


def load_private_key(material: str) -> asyncssh.SSHKey:
    """
    加载私钥，支持 PEM 文本或 base64 编码的 PEM。

    Raises:
        ValueError: base64 解码失败
        asyncssh.KeyImportError: 私钥格式无法识别
    """
    text = material.strip()
    if not text.startswith("-----BEGIN"):
        try:
            text = base64.b64decode(text, validate=True).decode()
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValueError("Failed to decode base64 private key") from e
    return asyncssh.import_private_key(text)


class RemoteMetricsCollector:
    """单目标 SSH 指标采集器，带整周期重试和指数退避。"""

    def __init__(
        self,
        host: str,
        username: str,
        private_key: str,
        port: int = 22,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 2.0,
        known_hosts: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.private_key = private_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_base_delay = retry_base_delay
        self.known_hosts = known_hosts
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "RemoteMetricsCollector":
        return cls(
            host=cfg.ssh_host,
            port=cfg.ssh_port,
            username=cfg.ssh_username,
            private_key=cfg.ssh_private_key,
            timeout=cfg.ssh_timeout_seconds,
            max_retries=cfg.collect_max_retries,
            retry_base_delay=cfg.collect_retry_base_delay,
            known_hosts=cfg.ssh_known_hosts,
        )

    def backoff_delay(self, attempt: int) -> float:
        """第 attempt 次失败后的等待秒数。"""
        return self.retry_base_delay ** attempt

    async def collect(self) -> CollectedMetrics:
        """
        执行一个完整采集周期。

        Returns:
            CollectedMetrics: 七项指标齐全的采集结果

        Raises:
            RemoteConnectionError: 所有尝试均失败，__cause__ 为最后一次的底层异常
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(self._collect_once(), timeout=self.timeout)
            except Exception as e:
                last_error = e
                if attempt < self.max_retries:
                    delay = self.backoff_delay(attempt)
                    logger.warning(
                        "SSH collection attempt %d/%d failed for %s:%d: %s. Retrying in %.0f seconds...",
                        attempt, self.max_retries, self.host, self.port, _describe(e), delay,
                    )
                    await self._sleep(delay)

        logger.error(
            "Failed to collect metrics from %s:%d after %d attempts: %s",
            self.host, self.port, self.max_retries, _describe(last_error),
        )
        raise RemoteConnectionError(
            self.host,
            self.port,
            self.max_retries,
            f"Failed to collect metrics from {self.host}:{self.port} "
            f"after {self.max_retries} attempts: {_describe(last_error)}",
        ) from last_error

    async def _collect_once(self) -> CollectedMetrics:
        key = load_private_key(self.private_key)
        async with asyncssh.connect(
            self.host,
            port=self.port,
            username=self.username,
            client_keys=[key],
            known_hosts=self.known_hosts,
            connect_timeout=self.timeout,
        ) as conn:
            return await collect_from_runner(SshCommandRunner(conn))


def _describe(exc: Optional[BaseException]) -> str:
    if exc is None:
        return "Unknown error"
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    return str(exc) or exc.__class__.__name__
