"""工作区配置聚合根

Config 以项目根目录为单位构造一次:
  1. 从 Settings 播种默认值（注册中心、存储目录、内置类型检查 size_t / void *）
  2. 从 depforge.yml 加载项目与依赖约束
  3. 依赖解析时被就地更新（约束的版本 / 存储目录、间接依赖、包信息）
  4. 生成器消费后丢弃，不持久化
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator

import yaml

from depforge.core.exceptions import ResolutionError, SchemaError, StorageError
from depforge.core.mapper import load_workspace
from depforge.core.models import (
    DESCRIPTION_FILENAME,
    BuildInsertions,
    Dependency,
    OptionBlock,
    OptionLevel,
    PackageInfo,
    PackagesDirType,
    Project,
    ProjectPath,
)
from depforge.core.schema import load_description, parse_description
from depforge.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

BUILTIN_CHECK_TYPES = ("size_t", "void *")


@dataclass
class ProxySettings:
    host: str = ""
    user: str = ""

    def url(self) -> str:
        if not self.host:
            return ""
        if self.user and "://" in self.host:
            scheme, rest = self.host.split("://", 1)
            return f"{scheme}://{self.user}@{rest}"
        return self.host


@dataclass
class CheckRegistry:
    """平台/特性检查集合，工作区级别去重汇总"""

    functions: set[str] = field(default_factory=set)
    includes: set[str] = field(default_factory=set)
    types: set[str] = field(default_factory=set)
    libraries: set[str] = field(default_factory=set)
    symbols: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def with_builtins(cls) -> CheckRegistry:
        return cls(types=set(BUILTIN_CHECK_TYPES))

    def merge(self, other: CheckRegistry) -> None:
        """并集合并，不覆盖已有条目"""
        self.functions |= other.functions
        self.includes |= other.includes
        self.types |= other.types
        self.libraries |= other.libraries
        for symbol, headers in other.symbols.items():
            self.symbols.setdefault(symbol, set()).update(headers)


@dataclass
class Config:
    """工作区配置"""

    root_directory: Path = field(default_factory=lambda: Path("."))
    settings: Settings = field(default_factory=Settings)
    description_file: str = DESCRIPTION_FILENAME

    host: str = ""
    storage_dir: Path = field(default_factory=lambda: Path("."))
    proxy: ProxySettings = field(default_factory=ProxySettings)
    packages_dir_type: PackagesDirType = PackagesDirType.USER
    root_project: ProjectPath = field(default_factory=ProjectPath)

    projects: list[Project] = field(default_factory=list)
    checks: CheckRegistry = field(default_factory=CheckRegistry.with_builtins)
    bs_insertions: BuildInsertions = field(default_factory=BuildInsertions)

    # 解析结果
    packages: dict[str, PackageInfo] = field(default_factory=dict)
    indirect_dependencies: dict[str, Dependency] = field(default_factory=dict)
    global_options: dict[OptionLevel, OptionBlock] = field(default_factory=dict)
    dependency_tree: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # 构造
    # ------------------------------------------------------------------

    @classmethod
    def create(cls, root_directory: str | Path = ".", settings: Settings | None = None) -> Config:
        """按设置播种默认值的空配置"""
        s = settings or get_settings()
        cfg = cls(root_directory=Path(root_directory), settings=s)
        cfg.host = s.host
        cfg.storage_dir = Path(s.storage_dir).expanduser()
        cfg.proxy = ProxySettings(host=s.proxy_host, user=s.proxy_user)
        cfg.packages_dir_type = PackagesDirType.from_string(s.packages_dir)
        if s.root_project:
            cfg.root_project = ProjectPath(s.root_project)
        return cfg

    @classmethod
    def from_directory(
        cls,
        directory: str | Path,
        settings: Settings | None = None,
        description_file: str = DESCRIPTION_FILENAME,
    ) -> Config:
        """加载目录中的项目描述（工作区根目录或已解包的依赖包目录）"""
        cfg = cls.create(directory, settings)
        cfg.load(Path(directory) / description_file)
        return cfg

    def load(self, path: str | Path) -> None:
        p = Path(path)
        if not p.is_file():
            raise StorageError(f"项目描述文件不存在: {p}", path=str(p))
        try:
            root = load_description(p)
        except yaml.YAMLError as e:
            raise SchemaError(f"项目描述解析失败: {p}: {e}") from e
        self.description_file = p.name
        load_workspace(self, root, p.name)
        logger.info("已加载项目描述: %s (%d 个项目)", p, len(self.projects))

    def load_text(self, text: str) -> None:
        """从字符串加载描述（不经过文件）"""
        load_workspace(self, parse_description(text), self.description_file)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def relative_name_to_absolute(self, name: str) -> ProjectPath:
        """相对包名拼接到 root_project 下；未配置 root_project 时报错"""
        if not name:
            return ProjectPath(self.root_project.segments)
        package = ProjectPath(name)
        if package.is_relative():
            if not self.root_project:
                raise SchemaError(
                    f"使用了相对包名 '{name}'，但未配置 'root_project'",
                    key="root_project",
                )
            return self.root_project / package
        return package

    def packages_dir(self, kind: PackagesDirType) -> Path:
        return self.settings.packages_dir_for(kind, self.root_directory)

    def iter_dependencies(self) -> Iterator[tuple[Project, Dependency]]:
        """按声明顺序遍历所有项目的直接依赖约束"""
        for project in self.projects:
            for dep in project.dependencies.values():
                yield project, dep

    def find_project(self, package: ProjectPath) -> Project:
        """单项目直接返回；多项目按包路径精确匹配"""
        if not self.projects:
            raise SchemaError("项目描述中没有任何项目")
        if len(self.projects) == 1:
            return self.projects[0]
        for p in self.projects:
            if p.package == package:
                return p
        raise SchemaError(f"依赖列表中不存在项目 '{package}'", key=str(package))

    def add_package(self, info: PackageInfo) -> None:
        """登记直接依赖包信息；不同 (包, 版本) 推导出相同变量名视为缺陷"""
        check_name_collisions([*self.packages.values(), info])
        self.packages[info.dependency.key] = info


def check_name_collisions(infos: Iterable[PackageInfo]) -> None:
    """不同 (包, 版本) 推导出相同的变量名时报错"""
    seen: dict[str, Dependency] = {}
    for info in infos:
        b = info.dependency
        a = seen.setdefault(info.variable_name, b)
        if a.package != b.package or a.version != b.version:
            raise ResolutionError(
                f"包名推导冲突: {a.package}@{a.version} 与 "
                f"{b.package}@{b.version} 都映射为 '{info.variable_name}'",
            )
