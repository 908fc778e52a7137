"""单包构建描述生成

generate_package() 只读已解析的包配置与依赖事实，唯一的共享写入
（检查集合、全局定义）经 WorkspaceAccumulator 加锁完成，因此可以并行调用。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from depforge.core.models import (
    INSERTION_HOOKS,
    Dependency,
    OptionBlock,
    OptionLevel,
    PackageInfo,
    Project,
    Visibility,
)
from depforge.core.workspace import Config
from depforge.generator.descriptor import (
    BINARY_DIR_INCLUDE,
    HELPERS_TARGET,
    Insertion,
    LevelBlock,
    LibraryKind,
    PackageDescriptor,
    Scoped,
    TargetKind,
)
from depforge.generator.workspace import WorkspaceAccumulator

logger = logging.getLogger(__name__)

_VISIBILITY_ORDER = {v: i for i, v in enumerate(Visibility)}


@dataclass
class GeneratorOptions:
    """库类型的全局开关与按包覆盖（键为 variable_name）"""

    build_shared_libs: bool = False
    library_types: dict[str, str] = field(default_factory=dict)


def version_aliases(dep: Dependency) -> list[str]:
    """完整版本之外的别名：name-major.minor、name-major、name；分支版本没有别名"""
    if dep.version.is_branch() or dep.version.is_any():
        return []
    name = str(dep.package)
    target = PackageInfo.from_dependency(dep).target_name
    aliases = [
        f"{name}-{dep.version.truncated(2)}",
        f"{name}-{dep.version.truncated(1)}",
        name,
    ]
    return [a for a in dict.fromkeys(aliases) if a != target]


def _library_kind(project: Project, info: PackageInfo, options: GeneratorOptions) -> tuple[LibraryKind, bool]:
    if project.static_only:
        return LibraryKind.STATIC, True
    if project.shared_only:
        return LibraryKind.SHARED, True
    override = options.library_types.get(info.variable_name, "")
    if override:
        try:
            return LibraryKind(override.upper()), False
        except ValueError:
            logger.warning("忽略非法的库类型覆盖: %s=%s", info.variable_name, override)
    if options.build_shared_libs:
        return LibraryKind.SHARED, False
    return LibraryKind.STATIC, False


def _target_kind(project: Project, dep: Dependency) -> TargetKind:
    if dep.is_executable:
        return TargetKind.EXECUTABLE
    if dep.is_header_only or project.header_only:
        return TargetKind.INTERFACE
    return TargetKind.LIBRARY


def _scope(visibility: Visibility, header_only: bool) -> str:
    return "INTERFACE" if header_only else visibility.value.upper()


def _level_block(level: OptionLevel, block: OptionBlock, header_only: bool) -> LevelBlock:
    default = "INTERFACE" if header_only else "PUBLIC"
    definitions = sorted(block.definitions, key=lambda d: (_VISIBILITY_ORDER[d[0]], d[1]))
    return LevelBlock(
        level=level,
        definitions=[Scoped(_scope(vis, header_only), text) for vis, text in definitions],
        include_directories=[Scoped(default, d) for d in sorted(block.include_directories)],
        link_libraries=[Scoped(default, lib) for lib in sorted(block.link_libraries)],
    )


def _insertions(pkg_config: Config, project: Project) -> dict[str, list[Insertion]]:
    """每个注入点依次为：工作区片段（仅多项目时）、项目片段、各选项级别片段"""
    result: dict[str, list[Insertion]] = {}
    multi = len(pkg_config.projects) > 1
    for hook in INSERTION_HOOKS:
        items: list[Insertion] = []
        if multi and pkg_config.bs_insertions.get(hook):
            items.append(Insertion(pkg_config.bs_insertions.get(hook)))
        if project.bs_insertions.get(hook):
            items.append(Insertion(project.bs_insertions.get(hook)))
        for level, block in project.iter_options():
            text = block.bs_insertions.get(hook)
            if not text:
                continue
            guard = None if level is OptionLevel.ANY else level.value.upper()
            items.append(Insertion(text, guard))
        result[hook] = items
    return result


def _dependency_links(project: Project, dep: Dependency, header_only: bool) -> list[Scoped]:
    links = [Scoped("INTERFACE" if header_only else "PUBLIC", HELPERS_TARGET)]
    for key, constraint in project.dependencies.items():
        fact = dep.dependencies.get(key)
        if fact is not None and fact.is_executable:
            continue
        target = PackageInfo.from_dependency(constraint).target_name
        if header_only:
            scope = "INTERFACE"
        elif constraint.is_private:
            scope = "PRIVATE"
        else:
            scope = "PUBLIC"
        links.append(Scoped(scope, target))
    return links


def generate_package(
    pkg_config: Config,
    dep: Dependency,
    accumulator: WorkspaceAccumulator,
    options: GeneratorOptions | None = None,
) -> PackageDescriptor:
    """为一个已解析的包生成构建描述

    参数:
        pkg_config: 包目录中加载的配置
        dep: 注册中心返回的依赖事实（版本、flags、闭包）
        accumulator: 工作区汇总器
        options: 库类型开关
    """
    options = options or GeneratorOptions()
    project = pkg_config.find_project(dep.package)
    info = PackageInfo.from_dependency(dep)

    accumulator.merge_checks(pkg_config.checks)

    kind = _target_kind(project, dep)
    header_only = kind is TargetKind.INTERFACE
    library_kind, locked = _library_kind(project, info, options)

    desc = PackageDescriptor(
        package=str(dep.package),
        version=str(dep.version),
        target_name=info.target_name,
        variable_name=info.variable_name,
        kind=kind,
        library_kind=library_kind,
        library_kind_locked=locked,
    )

    if not header_only:
        desc.build_files = [f.replace("\\", "/") for f in project.build_files] or None
        desc.exclude = sorted(f.replace("\\", "/") for f in project.exclude_from_build)
        desc.folder = f"depforge/{dep.package}/{dep.version}"

    inc = project.include_directories
    desc.include_directories = [Scoped(desc.default_scope, d) for d in sorted(inc.public)]
    if not header_only:
        desc.include_directories += [Scoped("PRIVATE", d) for d in sorted(inc.private)]
    desc.expose_binary_dir = BINARY_DIR_INCLUDE not in inc.public

    desc.link_libraries = _dependency_links(project, dep, header_only)

    for level, block in project.iter_options():
        desc.link_directories.extend(sorted(block.link_directories))
        lb = _level_block(level, block, header_only)
        if not lb.is_empty():
            desc.levels.append(lb)
        accumulator.add_global_definitions(level, block.global_definitions)

    desc.insertions = _insertions(pkg_config, project)
    desc.aliases = version_aliases(dep)

    logger.debug("已生成包描述: %s (%s)", info.target_name, kind.value)
    return desc
