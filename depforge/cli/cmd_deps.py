"""CLI - 依赖解析与安装命令"""

from __future__ import annotations

import json

import click

from depforge.cli import handle_errors


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(resolve)
    group.add_command(checks)


@click.command()
@click.option("--root", default=".", help="工作区根目录")
@handle_errors
def install(root: str) -> None:
    """解析、拉取依赖并生成构建描述"""
    from depforge.core.dep_manager import DepManager
    dm = DepManager(root)
    report = dm.install()
    for r in report.resolved:
        kind = "直接" if r.direct else "间接"
        click.echo(f"  [{kind}] {r.dependency.package}@{r.dependency.version} -> {r.dependency.package_dir}")
    click.echo(f"已生成: {dm.output_dir}")


@click.command()
@click.option("--root", default=".", help="工作区根目录")
@click.option("--json", "as_json", is_flag=True, help="输出注册中心原始响应")
@handle_errors
def resolve(root: str, as_json: bool) -> None:
    """只解析依赖，不下载"""
    from depforge.core.dep_manager import DepManager
    dm = DepManager(root)
    resolved = dm.resolve()
    if as_json:
        click.echo(json.dumps(dm.config.dependency_tree, indent=2, ensure_ascii=False))
        return
    if not resolved:
        click.echo("没有需要解析的依赖。")
        return
    for r in resolved:
        d = r.dependency
        kind = "直接" if r.direct else "间接"
        click.echo(f"  {str(d.package):40s} {str(d.version):12s} [{kind}] md5={d.md5}")


@click.command()
@click.option("--root", default=".", help="工作区根目录")
@handle_errors
def checks(root: str) -> None:
    """列出工作区声明的平台/特性检查"""
    from depforge.core.workspace import Config
    cfg = Config.from_directory(root)
    c = cfg.checks
    for title, items in (
        ("functions", c.functions),
        ("includes", c.includes),
        ("types", c.types),
        ("libraries", c.libraries),
    ):
        if items:
            click.echo(f"{title}:")
            for item in sorted(items):
                click.echo(f"  {item}")
    if c.symbols:
        click.echo("symbols:")
        for symbol, headers in sorted(c.symbols.items()):
            click.echo(f"  {symbol}: {', '.join(sorted(headers))}")
