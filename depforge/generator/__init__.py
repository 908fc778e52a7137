"""构建描述生成

- descriptor.py: 与构建系统无关的描述数据类
- package.py: 单包描述
- workspace.py: 汇总器、元描述、检查描述
- cmake.py: CMake 文本渲染与写出
"""

from depforge.generator.cmake import render_helpers, render_meta, render_package, write_file
from depforge.generator.package import GeneratorOptions, generate_package, version_aliases
from depforge.generator.workspace import WorkspaceAccumulator, generate_helpers, generate_meta

__all__ = [
    "GeneratorOptions",
    "WorkspaceAccumulator",
    "generate_helpers",
    "generate_meta",
    "generate_package",
    "render_helpers",
    "render_meta",
    "render_package",
    "version_aliases",
    "write_file",
]
