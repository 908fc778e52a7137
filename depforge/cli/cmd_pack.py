"""CLI - 打包命令"""

from __future__ import annotations

from pathlib import Path

import click

from depforge.cli import handle_errors


def register(group: click.Group) -> None:
    group.add_command(pack)


@click.command()
@click.argument("dest")
@click.option("--root", default=".", help="工作区根目录")
@click.option("--project", default="", help="多项目工作区中要打包的项目")
@click.option("--no-type-check", is_flag=True, help="跳过 MIME 类型检查")
@handle_errors
def pack(dest: str, root: str, project: str, no_type_check: bool) -> None:
    """检查项目文件并写出可复现的 tar.gz 归档"""
    from depforge.core.dep_manager import DepManager
    dm = DepManager(root)
    complete = dm.pack(Path(dest), project=project, check_types=not no_type_check)
    if not complete:
        click.echo("警告: 部分文件缺失，已跳过", err=True)
    click.echo(f"归档已写出: {dest}")
