"""
指标解析模块 (Metric Parsers)

把远程诊断命令的原始文本输出解析为类型化的指标值，纯函数，不做任何 I/O。
数据源为 Linux /proc 文件系统和 df 命令，格式脆弱，因此每个必填字段都做校验：
缺失或非数值一律抛出带来源标记的 ParseError，除文档约定的默认值外不做静默替换。

Pure functions turning raw command output into typed metric values. Sources
are the Linux /proc filesystem and df; every required field is validated and a
missing or non-numeric value raises a ParseError tagged with its source.
"""
import enum
import math
import re
from typing import NamedTuple, Optional

from serverpulse.core.exceptions import ParseError

SECTOR_SIZE = 512
BYTES_PER_GB = 1024 ** 3

_MEMINFO_RE = re.compile(r"^(MemTotal|MemAvailable):\s+(\d+)\s*kB$")
_DIGITS_RE = re.compile(r"^\d+$")

# 跳过的虚拟块设备前缀 (Virtual block devices that are skipped)
_SKIPPED_DEVICE_PREFIXES = ("loop", "ram")
_LOOPBACK_INTERFACE = "lo"


class MetricKind(str, enum.Enum):
    """五类指标来源，采集器按此枚举逐一分派。"""
    CPU = "cpu"
    RAM = "ram"
    DISK = "disk"
    IO = "io"
    NETWORK = "network"


class IoCounters(NamedTuple):
    read_bytes: int
    write_bytes: int


class NetworkCounters(NamedTuple):
    sent_bytes: int
    received_bytes: int


def _require_output(source: MetricKind, output: Optional[str], what: str) -> str:
    if output is None or not output.strip():
        raise ParseError(source.value, f"No output from {what}")
    return output


def _to_int(source: MetricKind, value: str, field: str) -> int:
    if not _DIGITS_RE.match(value):
        raise ParseError(source.value, f"Non-numeric {field}: {value!r}")
    return int(value)


def bytes_to_gb(value: float) -> float:
    return round(value / BYTES_PER_GB, 2)


# ── CPU ──────────────────────────────────────────────────────────────

def parse_core_count(output: Optional[str]) -> int:
    """解析 nproc 输出；无法读取或小于 1 时按 1 核处理。"""
    if not output:
        return 1
    try:
        cores = int(output.strip())
    except ValueError:
        return 1
    return cores if cores >= 1 else 1


def parse_cpu(loadavg_output: Optional[str], nproc_output: Optional[str]) -> float:
    """
    由 1 分钟负载和核数估算 CPU 使用率。

    usage = min(100, load / cores * 100)，保留两位小数。

    Args:
        loadavg_output: /proc/loadavg 内容，首个字段为 1 分钟负载
        nproc_output: nproc 输出

    Raises:
        ParseError: 负载字段缺失、非数值或为负
    """
    text = _require_output(MetricKind.CPU, loadavg_output, "/proc/loadavg")
    token = text.split()[0]
    try:
        load = float(token)
    except ValueError:
        raise ParseError(MetricKind.CPU.value, f"Invalid load average: {token!r}") from None
    if not math.isfinite(load) or load < 0:
        raise ParseError(MetricKind.CPU.value, f"Invalid load average: {token!r}")

    cores = parse_core_count(nproc_output)
    return round(min(100.0, load / cores * 100.0), 2)


# ── RAM ──────────────────────────────────────────────────────────────

def parse_ram(meminfo_output: Optional[str]) -> float:
    """从 /proc/meminfo 计算已用内存（GB）：MemTotal - MemAvailable。"""
    text = _require_output(MetricKind.RAM, meminfo_output, "/proc/meminfo")

    values: dict[str, int] = {}
    for line in text.splitlines():
        match = _MEMINFO_RE.match(line.strip())
        if match:
            values[match.group(1)] = int(match.group(2)) * 1024  # kB -> bytes

    if "MemTotal" not in values or "MemAvailable" not in values:
        raise ParseError(MetricKind.RAM.value, "Missing MemTotal or MemAvailable in /proc/meminfo")

    used = values["MemTotal"] - values["MemAvailable"]
    if used < 0:
        raise ParseError(MetricKind.RAM.value, "MemAvailable exceeds MemTotal")
    return bytes_to_gb(used)


# ── Disk ─────────────────────────────────────────────────────────────

def parse_disk_primary(output: Optional[str]) -> Optional[int]:
    """解析单字段输出（根分区已用字节数），缺失或非数值返回 None 以触发回退。"""
    if output is None:
        return None
    value = output.strip()
    if not _DIGITS_RE.match(value):
        return None
    return int(value)


def parse_disk_table(output: Optional[str]) -> Optional[int]:
    """
    回退路径：解析 df 表格的最后一行。

    格式：Filesystem 1B-blocks Used Available Use% Mounted，Used 位于第 3 列。
    """
    if output is None:
        return None
    lines = [line for line in output.strip().splitlines() if line.strip()]
    if not lines:
        return None
    parts = lines[-1].split()
    if len(parts) < 4 or not _DIGITS_RE.match(parts[2]):
        return None
    return int(parts[2])


def parse_disk(primary_output: Optional[str], fallback_output: Optional[str] = None) -> float:
    """根分区已用空间（GB）。主路径失败时使用 df 表格回退，两者都失败抛出 ParseError。"""
    used = parse_disk_primary(primary_output)
    if used is None:
        used = parse_disk_table(fallback_output)
    if used is None or used < 0:
        raise ParseError(MetricKind.DISK.value, "Failed to parse disk usage from df output")
    return bytes_to_gb(used)


# ── I/O ──────────────────────────────────────────────────────────────

def parse_io(diskstats_output: Optional[str]) -> IoCounters:
    """
    汇总 /proc/diskstats 中所有物理块设备的累计读写字节。

    字段：major minor name reads merged sectors_read ms writes merged sectors_written ...
    扇区按 512 字节换算，loop/ram 设备跳过，字段不足 14 个的行忽略。
    """
    text = _require_output(MetricKind.IO, diskstats_output, "/proc/diskstats")

    read_total = 0
    write_total = 0
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 14:
            continue
        if parts[2].startswith(_SKIPPED_DEVICE_PREFIXES):
            continue
        read_total += _to_int(MetricKind.IO, parts[5], f"sectors read for {parts[2]}") * SECTOR_SIZE
        write_total += _to_int(MetricKind.IO, parts[9], f"sectors written for {parts[2]}") * SECTOR_SIZE

    return IoCounters(read_bytes=read_total, write_bytes=write_total)


# ── Network ──────────────────────────────────────────────────────────

def parse_network(netdev_output: Optional[str]) -> NetworkCounters:
    """
    汇总 /proc/net/dev 中除 lo 外所有网卡的累计收发字节。

    每行格式 "iface: rx_bytes rx_packets ... tx_bytes tx_packets ..."，
    接收字节为数据段第 1 个字段，发送字节为第 9 个字段。
    """
    text = _require_output(MetricKind.NETWORK, netdev_output, "/proc/net/dev")

    sent_total = 0
    received_total = 0
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("Inter-") or ":" not in line:
            continue
        name, data = line.split(":", 1)
        name = name.strip()
        if name == _LOOPBACK_INTERFACE:
            continue
        parts = data.split()
        if len(parts) < 16:
            continue
        received_total += _to_int(MetricKind.NETWORK, parts[0], f"received bytes for {name}")
        sent_total += _to_int(MetricKind.NETWORK, parts[8], f"sent bytes for {name}")

    return NetworkCounters(sent_bytes=sent_total, received_bytes=received_total)
