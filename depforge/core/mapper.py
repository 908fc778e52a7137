"""结构化配置映射器

把 PyYAML 解析出的通用节点树映射为 Project / Dependency / OptionBlock 等
类型化模型。只做映射，不访问文件系统或网络。

依赖声明支持三种形态:

  dependencies: org.zlib                      # 单个名称
  dependencies: [org.zlib, org.png]           # 名称列表
  dependencies:                               # 映射
    public:  {org.zlib: 1.2.8}
    private: {org.png: {version: 1.6, package_dir: local, patches: [a.patch]}}
"""

from __future__ import annotations

import logging
import posixpath
from typing import TYPE_CHECKING, Any, Callable

from depforge.core.exceptions import SchemaError
from depforge.core.models import (
    DESCRIPTION_FILENAME,
    INSERTION_HOOKS,
    BuildInsertions,
    Dependency,
    OptionBlock,
    OptionLevel,
    PackagesDirType,
    Project,
    ProjectFlags,
    ProjectPath,
    Version,
    Visibility,
)
from depforge.core.schema import (
    Node,
    NodeKind,
    as_string,
    get_map,
    get_scalar,
    get_sequence,
    get_sequence_of,
    get_sequence_set,
    get_variety,
    has_key,
    iterate_map,
    node_kind,
)

if TYPE_CHECKING:
    from depforge.core.workspace import Config

logger = logging.getLogger(__name__)

NameResolver = Callable[[str], ProjectPath]

_DEPENDENCY_DETAIL_KEYS = ("version", "package_dir", "patches")


# =========================================================================
# 插入片段 / 选项
# =========================================================================


def load_insertions(node: Node) -> BuildInsertions:
    """读取四个注入点的原始片段，去掉块标量末尾的换行"""
    ins = BuildInsertions()
    for hook in INSERTION_HOOKS:
        value = get_scalar(node, hook)
        if value.endswith("\n"):
            value = value[:-1]
        setattr(ins, hook, value)
    return ins


def load_options(node: Node) -> dict[OptionLevel, OptionBlock]:
    options: dict[OptionLevel, OptionBlock] = {}
    for level_name, body in iterate_map(node, "options"):
        level = OptionLevel.from_string(level_name)
        if node_kind(body) is not NodeKind.MAP:
            raise SchemaError(f"'{level_name}' 应为映射", key=level_name)

        block = OptionBlock()
        defs = body.get("definitions")
        if node_kind(defs) not in (NodeKind.MISSING, NodeKind.MAP):
            raise SchemaError("'definitions' 应为映射", key="definitions")
        for vis in Visibility:
            for d in get_sequence(defs, vis.value):
                block.definitions.add((vis, d))

        block.include_directories = get_sequence_set(body, "include_directories")
        block.link_directories = get_sequence_set(body, "link_directories")
        block.link_libraries = get_sequence_set(body, "link_libraries")
        block.global_definitions = get_sequence_set(body, "global_definitions")
        block.bs_insertions = load_insertions(body)
        options[level] = block
    return options


# =========================================================================
# 依赖
# =========================================================================


def _dependency_from(name: str, detail: Node, to_absolute: NameResolver) -> Dependency:
    dep = Dependency(package=to_absolute(name))
    kind = node_kind(detail)
    if kind is NodeKind.MISSING:
        return dep
    if kind is NodeKind.SCALAR:
        dep.version = Version(as_string(detail))
        return dep
    if kind is not NodeKind.MAP:
        raise SchemaError(f"依赖 '{name}' 应为标量或映射", key=name)

    for raw_key, value in detail.items():
        key = as_string(raw_key)
        if key == "version":
            dep.version = Version(as_string(value))
        elif key == "package_dir":
            dep.package_dir_type = PackagesDirType.from_string(as_string(value))
        elif key == "patches":
            dep.patches = get_sequence_of(value)
        else:
            raise SchemaError(
                f"依赖 '{name}' 中的未知键: {key}，可选 {list(_DEPENDENCY_DETAIL_KEYS)}",
                key=key,
            )
    return dep


def load_dependencies(node: Node, to_absolute: NameResolver) -> dict[str, Dependency]:
    """读取 dependencies 字段，三种形态得到等价的依赖表"""
    deps: dict[str, Dependency] = {}

    def add_name(n: Node) -> None:
        if node_kind(n) is not NodeKind.SCALAR:
            raise SchemaError("依赖名应为标量", key="dependencies")
        dep = Dependency(package=to_absolute(as_string(n)))
        deps[dep.key] = dep

    def add_sequence(seq: list[Node]) -> None:
        for n in seq:
            add_name(n)

    def add_map(m: dict[str, Node]) -> None:
        private: dict[str, Dependency] = {}
        for name, detail in iterate_map(m, "private"):
            dep = _dependency_from(name, detail, to_absolute)
            private[dep.key] = dep
        for name, detail in iterate_map(m, "public"):
            dep = _dependency_from(name, detail, to_absolute)
            deps[dep.key] = dep

        for key, dep in private.items():
            dep.flags |= ProjectFlags.PRIVATE
            deps.setdefault(key, dep)

        # 既无 public 也无 private 条目 → 按平铺形态重新解释
        if not deps and not private:
            for raw_name, detail in m.items():
                dep = _dependency_from(as_string(raw_name), detail, to_absolute)
                deps[dep.key] = dep

    get_variety(node, "dependencies", add_name, add_sequence, add_map)
    return deps


# =========================================================================
# 项目
# =========================================================================


def _presence_flag(node: Node, key: str) -> bool:
    """标志键：出现即为真（`empty:` 空值也算），显式 false 除外"""
    return has_key(node, key) and node[key] is not False


def _read_sources(node: Node, key: str) -> list[str]:
    """files / build: 标量、序列、或 {组名: 序列 | {root, files}} 映射"""
    result: list[str] = []
    n = node.get(key) if isinstance(node, dict) else None
    kind = node_kind(n)
    if kind in (NodeKind.SCALAR, NodeKind.SEQUENCE):
        result.extend(get_sequence_of(n))
    elif kind is NodeKind.MAP:
        for raw_group, body in n.items():
            group = as_string(raw_group)
            body_kind = node_kind(body)
            if body_kind is NodeKind.SEQUENCE:
                result.extend(get_sequence_of(body))
            elif body_kind is NodeKind.MAP:
                root = get_scalar(body, "root")
                for f in get_sequence(body, "files"):
                    result.append(posixpath.join(root, f) if root else f)
            else:
                raise SchemaError(f"分组 '{group}' 不能是标量", key=group)
    return list(dict.fromkeys(result))


def _check_root_directory(value: str) -> str:
    norm = posixpath.normpath(value.replace("\\", "/"))
    if posixpath.isabs(norm) or norm == ".." or norm.startswith("../"):
        raise SchemaError(
            f"'root_directory' 不能超出项目目录: {value}", key="root_directory",
        )
    return "" if norm == "." else norm


def load_project(node: Node, to_absolute: NameResolver) -> Project:
    p = Project()

    p.empty = _presence_flag(node, "empty")
    p.shared_only = _presence_flag(node, "shared_only")
    p.static_only = _presence_flag(node, "static_only")
    if p.shared_only and p.static_only:
        raise SchemaError("项目不能同时为 static_only 与 shared_only", key="static_only")

    p.license = get_scalar(node, "license")
    root_dir = get_scalar(node, "root_directory")
    if root_dir:
        p.root_directory = _check_root_directory(root_dir)

    inc = get_map(node, "include_directories")
    if inc is not None:
        p.include_directories.public = get_sequence_set(inc, "public")
        p.include_directories.private = get_sequence_set(inc, "private")
    if not p.include_directories.public:
        p.include_directories.public.add("include")

    p.exclude_from_build = get_sequence_set(node, "exclude_from_build")
    p.bs_insertions = load_insertions(node)
    p.options = load_options(node)
    p.dependencies = load_dependencies(node, to_absolute)

    p.sources = set(_read_sources(node, "files"))
    p.build_files = _read_sources(node, "build")
    return p


# =========================================================================
# 工作区公共键
# =========================================================================


def load_common(config: Config, root: Node) -> None:
    """host / storage_dir / proxy / packages_dir / check_* / 工作区插入片段"""
    config.host = get_scalar(root, "host", config.host)
    storage_dir = get_scalar(root, "storage_dir")
    if storage_dir:
        config.storage_dir = config.root_directory / storage_dir
    root_project = get_scalar(root, "root_project")
    if root_project:
        config.root_project = ProjectPath(root_project)

    proxy = get_map(root, "proxy")
    if proxy is not None:
        config.proxy.host = get_scalar(proxy, "host", config.proxy.host)
        config.proxy.user = get_scalar(proxy, "user", config.proxy.user)

    packages_dir = get_scalar(root, "packages_dir")
    if packages_dir:
        config.packages_dir_type = PackagesDirType.from_string(packages_dir)

    checks = config.checks
    checks.functions.update(get_sequence(root, "check_function_exists"))
    checks.includes.update(get_sequence(root, "check_include_exists"))
    checks.types.update(get_sequence(root, "check_type_size"))
    checks.libraries.update(get_sequence(root, "check_library_exists"))

    for symbol, headers in iterate_map(root, "check_symbol_exists"):
        kind = node_kind(headers)
        if kind not in (NodeKind.SCALAR, NodeKind.SEQUENCE):
            raise SchemaError(
                f"符号 '{symbol}' 的头文件应为标量或序列", key="check_symbol_exists",
            )
        checks.symbols.setdefault(symbol, set()).update(get_sequence_of(headers))

    config.bs_insertions = load_insertions(root)


def load_workspace(config: Config, root: dict[str, Any], description_file: str = DESCRIPTION_FILENAME) -> None:
    """读取完整描述：公共键 + projects 映射（或根节点本身作为单个项目）"""
    load_common(config, root)

    def set_project(project: Project, name: str) -> None:
        project.description_file = description_file
        project.package = config.relative_name_to_absolute(name)
        config.projects.append(project)

    projects = get_map(root, "projects")
    if projects is not None:
        for name, body in projects.items():
            if node_kind(body) is not NodeKind.MAP:
                raise SchemaError(f"项目 '{name}' 应为映射", key=as_string(name))
            set_project(load_project(body, config.relative_name_to_absolute), as_string(name))
    else:
        set_project(load_project(root, config.relative_name_to_absolute), "")
    logger.debug("已映射 %d 个项目", len(config.projects))
