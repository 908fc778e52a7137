"""核心数据模型

项目描述被映射成的类型化模型集中定义于此:
ProjectPath / Version / Dependency / Project / OptionBlock / PackageInfo。
工作区聚合根 Config 见 depforge.core.workspace。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from functools import total_ordering
from pathlib import Path
from typing import Iterator, Sequence

from depforge.core.exceptions import SchemaError

DESCRIPTION_FILENAME = "depforge.yml"

# 注册中心的顶级命名空间；不以其开头的包名视为相对名
ROOT_NAMESPACES = ("com", "org", "pvt", "loc")


# =========================================================================
# 包路径 / 版本
# =========================================================================


@total_ordering
class ProjectPath:
    """层级包标识，如 org.boost.filesystem（也接受 / 分隔）"""

    __slots__ = ("segments",)

    def __init__(self, value: str | Sequence[str] = "") -> None:
        if isinstance(value, str):
            parts = [p for p in re.split(r"[./\\]", value.strip()) if p]
        else:
            parts = list(value)
        self.segments: tuple[str, ...] = tuple(parts)

    def is_relative(self) -> bool:
        return bool(self.segments) and self.segments[0] not in ROOT_NAMESPACES

    def is_absolute(self) -> bool:
        return bool(self.segments) and not self.is_relative()

    def to_filesystem_path(self) -> str:
        return "/".join(self.segments)

    @property
    def name(self) -> str:
        return self.segments[-1] if self.segments else ""

    def __truediv__(self, other: ProjectPath | str) -> ProjectPath:
        if isinstance(other, str):
            other = ProjectPath(other)
        return ProjectPath(self.segments + other.segments)

    def __bool__(self) -> bool:
        return bool(self.segments)

    def __str__(self) -> str:
        return ".".join(self.segments)

    def __repr__(self) -> str:
        return f"ProjectPath({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProjectPath):
            return NotImplemented
        return self.segments == other.segments

    def __lt__(self, other: ProjectPath) -> bool:
        return self.segments < other.segments

    def __hash__(self) -> int:
        return hash(self.segments)


_NUMERIC_VERSION_RE = re.compile(r"^(\d+)(?:\.(\d+|\*))?(?:\.(\d+|\*))?$")


class Version:
    """数字版本 major.minor.patch、任意版本 "*"、或分支名

    未设置的分量记为 -1，渲染时省略。分支版本从不参与数值比较。
    """

    __slots__ = ("major", "minor", "patch", "branch")

    def __init__(self, value: str | int | float | None = "*") -> None:
        self.major = self.minor = self.patch = -1
        self.branch = ""
        s = "*" if value is None else str(value).strip()
        if not s or s == "*":
            return
        m = _NUMERIC_VERSION_RE.match(s)
        if m is None:
            self.branch = s
            return
        parts = [int(g) if g and g != "*" else -1 for g in m.groups()]
        self.major, self.minor, self.patch = parts
        if self.minor < 0:
            self.patch = -1

    def is_branch(self) -> bool:
        return bool(self.branch)

    def is_any(self) -> bool:
        return not self.branch and self.major < 0

    def to_any_version(self) -> str:
        if self.branch:
            return self.branch
        parts = [p for p in (self.major, self.minor, self.patch) if p >= 0]
        if not parts:
            return "*"
        return ".".join(str(p) for p in parts)

    def truncated(self, keep: int) -> Version:
        """保留前 keep 个数字分量，其余置为未设置"""
        v = Version(self.to_any_version())
        if v.branch:
            return v
        if keep < 3:
            v.patch = -1
        if keep < 2:
            v.minor = -1
        if keep < 1:
            v.major = -1
        return v

    def _key(self) -> tuple[object, ...]:
        return (self.branch, self.major, self.minor, self.patch)

    def __str__(self) -> str:
        return self.to_any_version()

    def __repr__(self) -> str:
        return f"Version({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())


# =========================================================================
# 枚举
# =========================================================================


class ProjectFlags(IntFlag):
    """注册中心响应中 flags 字段的位定义"""

    NONE = 0
    HEADER_ONLY = 1 << 0
    EXECUTABLE = 1 << 1
    PRIVATE = 1 << 2
    DIRECT_DEPENDENCY = 1 << 3


class PackagesDirType(str, Enum):
    """包存储目录作用域"""

    LOCAL = "local"
    USER = "user"
    SYSTEM = "system"

    @classmethod
    def from_string(cls, value: str) -> PackagesDirType:
        try:
            return cls(value)
        except ValueError:
            raise SchemaError(
                f"未知的 'packages_dir': {value}，可选值 [local, user, system]",
                key="packages_dir",
            ) from None


class OptionLevel(str, Enum):
    """选项作用级别：任意 / 仅静态库 / 仅动态库"""

    ANY = "any"
    STATIC = "static"
    SHARED = "shared"

    @classmethod
    def from_string(cls, value: str) -> OptionLevel:
        try:
            return cls(value)
        except ValueError:
            raise SchemaError(
                f"错误的选项级别: '{value}'，可选值 [any, static, shared]",
                key="options",
            ) from None


OPTION_LEVEL_ORDER = (OptionLevel.ANY, OptionLevel.STATIC, OptionLevel.SHARED)


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    INTERFACE = "interface"


# =========================================================================
# 构建选项
# =========================================================================

INSERTION_HOOKS = ("pre_sources", "post_sources", "post_target", "post_alias")


@dataclass
class BuildInsertions:
    """原样插入到生成描述中的构建脚本片段（四个注入点）"""

    pre_sources: str = ""
    post_sources: str = ""
    post_target: str = ""
    post_alias: str = ""

    def get(self, hook: str) -> str:
        if hook not in INSERTION_HOOKS:
            raise KeyError(hook)
        value: str = getattr(self, hook)
        return value


@dataclass
class OptionBlock:
    """某一选项级别下的预处理定义、包含目录、链接目录和库"""

    definitions: set[tuple[Visibility, str]] = field(default_factory=set)
    include_directories: set[str] = field(default_factory=set)
    link_directories: set[str] = field(default_factory=set)
    link_libraries: set[str] = field(default_factory=set)
    global_definitions: set[str] = field(default_factory=set)
    bs_insertions: BuildInsertions = field(default_factory=BuildInsertions)


@dataclass
class IncludeDirectories:
    public: set[str] = field(default_factory=set)
    private: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not self.public and not self.private


# =========================================================================
# 依赖 / 项目
# =========================================================================


@dataclass
class Dependency:
    """依赖约束（加载时）或解析事实（注册中心响应）

    解析阶段就地更新约束的 version 与 package_dir，不会产生重复键。
    dependencies 为按值复制的传递闭包快照。
    """

    package: ProjectPath
    version: Version = field(default_factory=Version)
    flags: ProjectFlags = ProjectFlags.NONE
    package_dir: Path | None = None
    package_dir_type: PackagesDirType | None = None
    dependencies: dict[str, Dependency] = field(default_factory=dict)
    patches: list[str] = field(default_factory=list)
    md5: str = ""

    @property
    def key(self) -> str:
        return str(self.package)

    @property
    def is_private(self) -> bool:
        return bool(self.flags & ProjectFlags.PRIVATE)

    @property
    def is_executable(self) -> bool:
        return bool(self.flags & ProjectFlags.EXECUTABLE)

    @property
    def is_header_only(self) -> bool:
        return bool(self.flags & ProjectFlags.HEADER_ONLY)

    @property
    def is_direct(self) -> bool:
        return bool(self.flags & ProjectFlags.DIRECT_DEPENDENCY)

    def get_package_dir_type(self, default: PackagesDirType) -> PackagesDirType:
        return self.package_dir_type or default


@dataclass
class Project:
    """一个可构建单元"""

    package: ProjectPath = field(default_factory=ProjectPath)
    description_file: str = DESCRIPTION_FILENAME
    root_directory: str = ""
    files: set[str] = field(default_factory=set)
    sources: set[str] = field(default_factory=set)
    build_files: list[str] = field(default_factory=list)
    exclude_from_build: set[str] = field(default_factory=set)
    include_directories: IncludeDirectories = field(default_factory=IncludeDirectories)
    dependencies: dict[str, Dependency] = field(default_factory=dict)
    options: dict[OptionLevel, OptionBlock] = field(default_factory=dict)
    bs_insertions: BuildInsertions = field(default_factory=BuildInsertions)
    license: str = ""
    empty: bool = False
    static_only: bool = False
    shared_only: bool = False
    header_only: bool = False

    def iter_options(self) -> Iterator[tuple[OptionLevel, OptionBlock]]:
        """按 any / static / shared 的固定顺序遍历已声明的选项级别"""
        for level in OPTION_LEVEL_ORDER:
            if level in self.options:
                yield level, self.options[level]


@dataclass
class PackageInfo:
    """由 (包, 版本) 推导的目标名与变量名，不持久化"""

    dependency: Dependency
    target_name: str
    variable_name: str

    @classmethod
    def from_dependency(cls, dep: Dependency) -> PackageInfo:
        v = dep.version.to_any_version()
        name = str(dep.package)
        target = name if v == "*" else f"{name}-{v}"
        variable = f"{name}_" + ("" if v == "*" else f"_{v}")
        variable = re.sub(r"[^0-9A-Za-z]", "_", variable)
        return cls(dependency=dep, target_name=target, variable_name=variable)
