"""构建描述数据类

生成器先产出与构建系统无关的描述对象，再由 cmake.py 渲染为文本:
- PackageDescriptor: 单个依赖包的目标、源文件、可见性、选项级别、别名、插入片段
- MetaDescriptor: 工作区元描述（子目录 + 总目标 depforge）
- HelperDescriptor: 平台/特性检查与全局定义
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from depforge.core.models import INSERTION_HOOKS, OptionLevel

UMBRELLA_TARGET = "depforge"
HELPERS_TARGET = "depforge-helpers"
EXPORT_FILE = "${CMAKE_BINARY_DIR}/depforge.cmake"
BINARY_DIR_INCLUDE = "${CMAKE_CURRENT_BINARY_DIR}"


class TargetKind(str, Enum):
    EXECUTABLE = "executable"
    INTERFACE = "interface"
    LIBRARY = "library"


class LibraryKind(str, Enum):
    STATIC = "STATIC"
    SHARED = "SHARED"


@dataclass(frozen=True)
class Scoped:
    """带可见性的条目，scope 为 PUBLIC / PRIVATE / INTERFACE"""

    scope: str
    value: str


@dataclass
class LevelBlock:
    """一个选项级别产出的内容；static / shared 级别受 LIBRARY_TYPE 守卫"""

    level: OptionLevel
    definitions: list[Scoped] = field(default_factory=list)
    include_directories: list[Scoped] = field(default_factory=list)
    link_libraries: list[Scoped] = field(default_factory=list)

    @property
    def guard(self) -> str | None:
        if self.level is OptionLevel.ANY:
            return None
        return self.level.value.upper()

    def is_empty(self) -> bool:
        return not (self.definitions or self.include_directories or self.link_libraries)


@dataclass(frozen=True)
class Insertion:
    text: str
    guard: str | None = None


def _empty_insertions() -> dict[str, list[Insertion]]:
    return {hook: [] for hook in INSERTION_HOOKS}


@dataclass
class PackageDescriptor:
    package: str
    version: str
    target_name: str
    variable_name: str
    kind: TargetKind = TargetKind.LIBRARY
    library_kind: LibraryKind = LibraryKind.STATIC
    # 项目声明了 static_only / shared_only 时不允许再被覆盖
    library_kind_locked: bool = False

    # None 表示递归 glob；header-only 目标两者都不渲染
    build_files: list[str] | None = None
    exclude: list[str] = field(default_factory=list)

    include_directories: list[Scoped] = field(default_factory=list)
    expose_binary_dir: bool = True
    link_libraries: list[Scoped] = field(default_factory=list)
    link_directories: list[str] = field(default_factory=list)
    levels: list[LevelBlock] = field(default_factory=list)
    insertions: dict[str, list[Insertion]] = field(default_factory=_empty_insertions)

    aliases: list[str] = field(default_factory=list)
    folder: str | None = None
    export_file: str = EXPORT_FILE

    @property
    def has_sources(self) -> bool:
        return self.kind is not TargetKind.INTERFACE

    @property
    def default_scope(self) -> str:
        return "INTERFACE" if self.kind is TargetKind.INTERFACE else "PUBLIC"


@dataclass(frozen=True)
class Subdirectory:
    source_dir: str
    binary_dir: str


@dataclass
class MetaDescriptor:
    direct: list[Subdirectory] = field(default_factory=list)
    indirect: list[Subdirectory] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    umbrella: str = UMBRELLA_TARGET
    helpers_file: str = "helpers.cmake"
    export_file: str = EXPORT_FILE


@dataclass(frozen=True)
class Check:
    """一项检查：command(subject ... variable)"""

    command: str
    subject: str
    variable: str
    headers: tuple[str, ...] = ()


@dataclass
class HelperDescriptor:
    checks: list[Check] = field(default_factory=list)
    # (HAVE_ 变量, SIZE_OF_ 别名, SIZEOF_ 别名)
    size_aliases: list[tuple[str, str, str]] = field(default_factory=list)
    endian_variable: str = "WORDS_BIGENDIAN"
    endian_aliases: tuple[str, ...] = ("BIGENDIAN", "BIG_ENDIAN", "HOST_BIG_ENDIAN")
    global_definitions: list[str] = field(default_factory=list)
    definitions: list[str] = field(default_factory=list)
    description_file: str = "depforge.yml"
    target: str = HELPERS_TARGET
    export_file: str = EXPORT_FILE
