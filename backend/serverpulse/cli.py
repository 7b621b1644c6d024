"""
ServerPulse 命令行入口模块。

提供 CLI 命令：采集（collect）、清理（cleanup）、建表（init-db）以及各查询命令，
每个命令完成一次有界的工作后退出，适合由 cron 等外部调度器触发。
"""
import asyncio
import json
import logging
import sys

import click

from serverpulse import __version__
from serverpulse.core.config import settings
from serverpulse.core.database import async_session, engine, init_db
from serverpulse.core.exceptions import BusinessError, RemoteConnectionError, error_payload
from serverpulse.services.metric_repository import SqlAlchemyMetricRepository
from serverpulse.services.metrics_service import MetricsService

logger = logging.getLogger("serverpulse")


def _echo_json(data) -> None:
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


async def _disposing(coro):
    try:
        return await coro
    finally:
        await engine.dispose()


def _run(coro):
    """运行协程；失败时输出结构化错误并以非零状态退出。"""
    try:
        return asyncio.run(_disposing(coro))
    except (BusinessError, RemoteConnectionError) as e:
        click.echo(json.dumps(error_payload(e), ensure_ascii=False), err=True)
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error")
        click.echo(json.dumps(error_payload(e), ensure_ascii=False), err=True)
        sys.exit(1)


async def _query(method: str, **kwargs):
    async with async_session() as db:
        service = MetricsService(
            SqlAlchemyMetricRepository(db),
            collection_interval_seconds=settings.collection_interval_seconds,
        )
        return await getattr(service, method)(**kwargs)


def range_options(func):
    """命名范围与自定义起止时间的公共选项。"""
    func = click.option("--end", default=None, help="Custom end time (ISO 8601, UTC)")(func)
    func = click.option("--start", default=None, help="Custom start time (ISO 8601, UTC)")(func)
    func = click.option("--range", "range_name", default="24h", show_default=True,
                        help="Named range: 1h, 6h, 24h, 7d, 30d")(func)
    return func


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, verbose):
    """ServerPulse - 单主机 SSH 指标采集。"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # 未指定子命令时，显示基本信息
    if ctx.invoked_subcommand is None:
        click.echo(f"ServerPulse v{__version__}")
        click.echo(f"Target: {settings.ssh_username or '?'}@{settings.ssh_host or '?'}:{settings.ssh_port}")
        click.echo("Use --help for available commands")


@cli.command("init-db")
def init_db_command():
    """创建数据表。"""
    _run(init_db())
    click.echo("Database tables created")


@cli.command()
def collect():
    """通过 SSH 采集一次指标并写入数据库。"""
    from serverpulse.tasks.collect_metrics import collect_and_store

    logger.info("Connecting to %s:%d and collecting metrics...", settings.ssh_host, settings.ssh_port)
    _echo_json(_run(collect_and_store()))


@cli.command()
@click.option("--retention-days", "-r", type=int, default=None,
              help=f"Number of days to retain (default: {settings.retention_days})")
def cleanup(retention_days):
    """分批删除超过保留期的快照。"""
    from serverpulse.tasks.metric_cleanup import run_cleanup

    _echo_json(_run(run_cleanup(retention_days)))


@cli.command()
@range_options
def metrics(range_name, start, end):
    """查询时间序列（跨度 ≥ 7 天自动聚合）。"""
    _echo_json(_run(_query("get_metrics", range_name=range_name, start=start, end=end)))


@cli.command()
def latest():
    """最新一条快照。"""
    snapshot = _run(_query("get_latest"))
    _echo_json(snapshot if snapshot is not None else {"data": None})


@cli.command()
@range_options
def stats(range_name, start, end):
    """区间统计。"""
    _echo_json(_run(_query("get_statistics", range_name=range_name, start=start, end=end)))


@cli.command()
@range_options
def rates(range_name, start, end):
    """网络速率与 I/O 增量序列。"""
    _echo_json(_run(_query("get_rates", range_name=range_name, start=start, end=end)))


@cli.command()
def status():
    """采集状态。"""
    _echo_json(_run(_query("get_status")))


def main():
    """CLI 入口函数。"""
    cli()


if __name__ == "__main__":
    main()
