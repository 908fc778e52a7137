"""depforge 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import functools
import os
from typing import Any, Callable

import click

from depforge import __version__
from depforge.core.exceptions import DepforgeError
from depforge.core.settings import init_settings
from depforge.utils.logger import setup_logging


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """业务异常转为 click 错误输出，退出码 1"""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except DepforgeError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e

    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.option("--settings", "settings_file", default=None, help="设置文件路径（默认 ~/.depforge/settings.yml）")
def main(settings_file: str | None) -> None:
    """depforge - C/C++ 源码包依赖管理与构建描述生成"""
    setup_logging(
        level=os.getenv("DEPFORGE_LOG_LEVEL", "INFO"),
        json_output=os.getenv("DEPFORGE_LOG_JSON", "") == "1",
    )
    init_settings(settings_file)


# 注册各领域子命令
from depforge.cli.cmd_deps import register as _reg_deps  # noqa: E402
from depforge.cli.cmd_pack import register as _reg_pack  # noqa: E402

_reg_deps(main)
_reg_pack(main)
