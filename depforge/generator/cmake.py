"""CMake 渲染器

把描述对象渲染为 CMake 文本。文件只在内容变化时写入，避免触发无谓的重新配置。
"""

from __future__ import annotations

import logging
from pathlib import Path

from depforge.core.exceptions import StorageError
from depforge.generator.descriptor import (
    BINARY_DIR_INCLUDE,
    HelperDescriptor,
    Insertion,
    MetaDescriptor,
    PackageDescriptor,
    Scoped,
    TargetKind,
)
from depforge.utils.yaml_io import write_if_different

logger = logging.getLogger(__name__)

PACKAGE_FILENAME = "CMakeLists.txt"
META_FILENAME = "CMakeLists.txt"
HELPERS_FILENAME = "helpers.cmake"

DELIMITER = "#" * 80
_INDENT = "    "


class Context:
    """按行累积文本，支持缩进与空行折叠"""

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._indent = 0

    def add_line(self, text: str = "") -> None:
        if not text:
            self._lines.append("")
            return
        for line in text.split("\n"):
            self._lines.append(_INDENT * self._indent + line if line else "")

    def increase_indent(self) -> None:
        self._indent += 1

    def decrease_indent(self) -> None:
        self._indent = max(0, self._indent - 1)

    def empty_lines(self, n: int = 1) -> None:
        """保证末尾恰好有 n 个空行"""
        while self._lines and self._lines[-1] == "":
            self._lines.pop()
        self._lines.extend([""] * n)

    def section(self, title: str) -> None:
        self.add_line(DELIMITER)
        self.add_line("#")
        self.add_line(f"# {title}")
        self.add_line("#")
        self.add_line(DELIMITER)
        self.add_line()

    def block(self, head: str, items: list[str]) -> None:
        self.add_line(head)
        self.increase_indent()
        for item in items:
            self.add_line(item)
        self.decrease_indent()
        self.add_line(")")

    def text(self) -> str:
        return "\n".join(self._lines).rstrip("\n") + "\n"


def _header(ctx: Context, *lines: str) -> None:
    ctx.add_line("#")
    ctx.add_line("# depforge")
    for line in lines:
        ctx.add_line(f"# {line}")
    ctx.add_line("#")
    ctx.add_line()


def _scoped(items: list[Scoped]) -> list[str]:
    return [f"{i.scope} {i.value}" for i in items]


def _guarded(ctx: Context, guard: str | None, body) -> None:
    if guard is None:
        body()
        return
    ctx.add_line(f'if (LIBRARY_TYPE STREQUAL "{guard}")')
    ctx.increase_indent()
    body()
    ctx.decrease_indent()
    ctx.add_line("endif()")


def _insertions(ctx: Context, title: str, items: list[Insertion]) -> None:
    ctx.section(title)
    for ins in items:
        _guarded(ctx, ins.guard, lambda: ctx.add_line(ins.text))
        ctx.empty_lines(1)


# =========================================================================
# 单包
# =========================================================================


def render_package(desc: PackageDescriptor) -> str:
    ctx = Context()
    target = desc.target_name
    _header(ctx, f"package: {desc.package}", f"version: {desc.version}")

    ctx.section("settings")
    ctx.add_line(f"set(LIBRARY_TYPE {desc.library_kind.value})")
    if not desc.library_kind_locked:
        ctx.add_line(f"if (LIBRARY_TYPE_{desc.variable_name})")
        ctx.increase_indent()
        ctx.add_line(f"set(LIBRARY_TYPE ${{LIBRARY_TYPE_{desc.variable_name}}})")
        ctx.decrease_indent()
        ctx.add_line("endif()")
    ctx.empty_lines(1)

    _insertions(ctx, "pre sources", desc.insertions["pre_sources"])

    if desc.has_sources:
        ctx.section("sources")
        if desc.build_files is None:
            ctx.add_line('file(GLOB_RECURSE src "*")')
        else:
            ctx.block("set(src", [f"${{CMAKE_CURRENT_SOURCE_DIR}}/{f}" for f in desc.build_files])
        ctx.add_line()

    if desc.exclude:
        ctx.section("exclude files")
        for f in desc.exclude:
            ctx.add_line(f'list(REMOVE_ITEM src "${{CMAKE_CURRENT_SOURCE_DIR}}/{f}")')
        ctx.empty_lines(1)

    _insertions(ctx, "post sources", desc.insertions["post_sources"])

    for d in desc.link_directories:
        ctx.add_line(f"link_directories({d})")
    ctx.empty_lines(1)

    ctx.section(f"target: {target}")
    if desc.kind is TargetKind.EXECUTABLE:
        ctx.add_line(f"add_executable                ({target} ${{src}})")
    elif desc.kind is TargetKind.INTERFACE:
        ctx.add_line(f"add_library                   ({target} INTERFACE)")
    else:
        ctx.add_line(f"add_library                   ({target} ${{LIBRARY_TYPE}} ${{src}})")

    includes = _scoped(desc.include_directories)
    if desc.expose_binary_dir:
        includes.append(f"{desc.default_scope} {BINARY_DIR_INCLUDE}")
    if includes:
        ctx.block(f"target_include_directories    ({target}", includes)

    ctx.block(f"target_link_libraries         ({target}", _scoped(desc.link_libraries))

    if desc.folder:
        ctx.block(
            f"set_target_properties         ({target} PROPERTIES",
            [f'FOLDER "{desc.folder}"'],
        )
    ctx.empty_lines(1)

    for level in desc.levels:
        def body(level=level) -> None:
            if level.definitions:
                ctx.block(f"target_compile_definitions    ({target}", _scoped(level.definitions))
            if level.include_directories:
                ctx.block(f"target_include_directories    ({target}", _scoped(level.include_directories))
            if level.link_libraries:
                ctx.block(f"target_link_libraries         ({target}", _scoped(level.link_libraries))
        _guarded(ctx, level.guard, body)
        ctx.empty_lines(1)

    ctx.add_line(f"set(lib {target})")
    ctx.add_line(f"set(target {target})")
    ctx.empty_lines(1)

    _insertions(ctx, "post target", desc.insertions["post_target"])

    if desc.aliases:
        ctx.section("aliases")
        for alias in desc.aliases:
            ctx.add_line(f"add_library({alias} ALIAS {target})")
        ctx.add_line()

    ctx.section("export")
    ctx.add_line(f"export(TARGETS {target} APPEND FILE {desc.export_file})")
    ctx.empty_lines(1)

    _insertions(ctx, "post alias", desc.insertions["post_alias"])

    ctx.add_line(DELIMITER)
    return ctx.text()


# =========================================================================
# 工作区
# =========================================================================


def render_meta(meta: MetaDescriptor) -> str:
    ctx = Context()
    _header(ctx, "meta config file")
    ctx.add_line("cmake_minimum_required(VERSION 3.0.0)")
    ctx.add_line()
    ctx.add_line(f"include(${{CMAKE_CURRENT_LIST_DIR}}/{meta.helpers_file})")
    ctx.add_line()

    ctx.section("variables")
    ctx.add_line('set(USES_DEPFORGE 1 CACHE STRING "depforge is turned on")')
    ctx.add_line()
    ctx.add_line("set(DEPFORGE_SOURCE_DIR ${CMAKE_CURRENT_SOURCE_DIR})")
    ctx.add_line("set(DEPFORGE_BINARY_DIR ${CMAKE_CURRENT_BINARY_DIR})")
    ctx.add_line()
    ctx.add_line("set(CMAKE_POSITION_INDEPENDENT_CODE ON)")
    ctx.add_line()

    for title, subs in (("direct dependencies", meta.direct), ("indirect dependencies", meta.indirect)):
        if not subs:
            continue
        ctx.section(title)
        for s in subs:
            ctx.add_line(f"add_subdirectory({s.source_dir} {s.binary_dir})")
        ctx.add_line()

    ctx.section("main library")
    ctx.add_line(f"add_library                   ({meta.umbrella} INTERFACE)")
    if meta.links:
        ctx.block(
            f"target_link_libraries         ({meta.umbrella}",
            [f"INTERFACE {t}" for t in meta.links],
        )
        ctx.add_line()
    ctx.add_line(f"export(TARGETS {meta.umbrella} APPEND FILE {meta.export_file})")
    ctx.empty_lines(1)
    ctx.add_line(DELIMITER)
    return ctx.text()


def _if_definition(ctx: Context, target: str, variable: str, *aliases: str) -> None:
    ctx.add_line(f"if ({variable})")
    ctx.increase_indent()
    ctx.block(
        f"target_compile_definitions({target}",
        [f"INTERFACE {v}" for v in (variable, *aliases)],
    )
    ctx.decrease_indent()
    ctx.add_line("endif()")
    ctx.add_line()


def render_helpers(helpers: HelperDescriptor) -> str:
    ctx = Context()
    target = helpers.target
    _header(ctx, "helper routines")

    ctx.section("cmake setup")
    ctx.add_line("# Use solution folders.")
    ctx.add_line("set_property(GLOBAL PROPERTY USE_FOLDERS ON)")
    ctx.add_line()

    ctx.section("cmake includes")
    for module in (
        "CheckCXXSymbolExists", "CheckFunctionExists", "CheckIncludeFiles",
        "CheckLibraryExists", "CheckTypeSize", "TestBigEndian",
    ):
        ctx.add_line(f"include({module})")
    ctx.add_line()

    ctx.section("common checks")
    ctx.add_line(f"test_big_endian({helpers.endian_variable})")
    for alias in helpers.endian_aliases:
        ctx.add_line(
            f'set({alias} ${{{helpers.endian_variable}}} CACHE STRING "endianness alias")',
        )
    ctx.add_line()

    ctx.section("checks")
    for c in helpers.checks:
        if c.command == "find_library":
            ctx.add_line(f"find_library({c.variable} {c.subject})")
        elif c.headers:
            ctx.add_line(f'{c.command}("{c.subject}" "{";".join(c.headers)};" {c.variable})')
        else:
            ctx.add_line(f'{c.command}("{c.subject}" {c.variable})')
    ctx.empty_lines(1)

    for have, size_of, sizeof in helpers.size_aliases:
        ctx.add_line(f"if ({have})")
        ctx.increase_indent()
        ctx.add_line(f"set({size_of} ${{{have}}})")
        ctx.add_line(f"set({sizeof} ${{{have}}})")
        ctx.decrease_indent()
        ctx.add_line("endif()")
        ctx.add_line()

    ctx.section("library")
    ctx.add_line(f"add_library({target} INTERFACE)")
    ctx.add_line()
    ctx.block(f"target_compile_definitions({target}", ["INTERFACE DEPFORGE"])
    ctx.add_line()
    ctx.add_line("if (WIN32)")
    ctx.block(f"target_link_libraries({target}", ["INTERFACE Ws2_32"])
    ctx.add_line("else()")
    ctx.block(f"target_link_libraries({target}", ["INTERFACE pthread"])
    ctx.add_line("endif()")
    ctx.add_line()
    # 第一个写入导出文件的目标，不使用 APPEND
    ctx.add_line(f"export(TARGETS {target} FILE {helpers.export_file})")
    ctx.empty_lines(1)

    ctx.section("global definitions")
    if helpers.global_definitions:
        ctx.block(
            f"target_compile_definitions({target}",
            [f"INTERFACE {d}" for d in helpers.global_definitions],
        )
        ctx.add_line()

    ctx.section("definitions")
    _if_definition(ctx, target, helpers.endian_variable, *helpers.endian_aliases)
    for variable in helpers.definitions:
        _if_definition(ctx, target, variable)

    ctx.section("depforge regenerator")
    anchor = f"${{PROJECT_SOURCE_DIR}}/{helpers.description_file}"
    ctx.block("add_custom_target(run-depforge", [
        "COMMAND depforge install",
        "WORKING_DIRECTORY ${PROJECT_SOURCE_DIR}",
        f"DEPENDS {anchor}",
        f"SOURCES {anchor}",
    ])
    ctx.block("set_target_properties(run-depforge PROPERTIES", ['FOLDER "depforge"'])
    ctx.add_line()
    ctx.add_line(DELIMITER)
    return ctx.text()


def write_file(path: Path, content: str) -> bool:
    """内容变化时写入，返回是否实际写入"""
    try:
        changed = write_if_different(path, content)
    except OSError as e:
        raise StorageError(f"无法写入文件: {path}: {e}", path=str(path)) from e
    if changed:
        logger.info("已生成: %s", path)
    else:
        logger.debug("未变化: %s", path)
    return changed
