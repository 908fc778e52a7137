"""依赖解析器

职责:
- 汇总工作区全部项目的直接依赖约束，一次性提交注册中心
- 把响应中的扁平包表与声明的约束对账:
    直接依赖 → 精确匹配，否则按声明顺序取第一个前缀模式匹配，就地更新约束
    间接依赖 → 记入工作区 indirect_dependencies，存放在默认存储根目录
- 按 id 列表按值复制每个包的依赖闭包
- 对账后检查全部解析结果（直接与间接）的变量名推导冲突，早于拉取与生成

前缀模式匹配是首个命中而非最佳命中：两个声明共享公共前缀时，
结果会记到声明顺序靠前的那个约束上。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from depforge.core.dep.models import (
    DEFAULT_DATA_DIR,
    RemotePackage,
    ResolutionResponse,
    ResolvedPackage,
)
from depforge.core.dep.registry import RegistryClient
from depforge.core.exceptions import ResolutionError
from depforge.core.models import (
    Dependency,
    PackageInfo,
    Project,
    ProjectFlags,
    ProjectPath,
    Version,
)
from depforge.core.workspace import Config, check_name_collisions

logger = logging.getLogger(__name__)


def _prefix_matches(constraint_key: str, name: str) -> bool:
    return re.fullmatch(re.escape(constraint_key) + ".*", name) is not None


def _to_dependency(entry: RemotePackage) -> Dependency:
    return Dependency(
        package=ProjectPath(entry.package),
        version=Version(entry.version),
        flags=ProjectFlags(entry.flags),
        md5=entry.md5,
    )


class DependencyResolver:
    """注册中心响应与声明约束的对账器"""

    def __init__(self, config: Config, client: RegistryClient) -> None:
        self.config = config
        self.client = client
        self.data_dir = DEFAULT_DATA_DIR

    def build_request(self) -> dict[str, dict[str, str]]:
        """{包路径: {"version": 约束}}，跳过未能绝对化的本地包"""
        request: dict[str, dict[str, str]] = {}
        for _, dep in self.config.iter_dependencies():
            if dep.package.is_relative():
                continue
            request[dep.key] = {"version": str(dep.version)}
        return request

    def resolve(self) -> list[ResolvedPackage]:
        request = self.build_request()
        if not request:
            logger.info("没有需要解析的依赖")
            return []

        response = self.client.find_dependencies(request)
        self.config.dependency_tree = response.raw
        self.data_dir = response.data_dir
        resolved = self.reconcile(response)
        check_name_collisions(PackageInfo.from_dependency(r.dependency) for r in resolved)
        logger.info(
            "解析完成: %d 个直接依赖, %d 个间接依赖",
            sum(1 for r in resolved if r.direct),
            sum(1 for r in resolved if not r.direct),
        )
        return resolved

    def reconcile(self, response: ResolutionResponse) -> list[ResolvedPackage]:
        by_id = response.by_id()
        resolved: list[ResolvedPackage] = []
        for entry in response.packages:
            dep = _to_dependency(entry)
            dep.dependencies = self._closure(entry, by_id)

            if dep.is_direct:
                storage_root = self._match_direct(dep)
            else:
                storage_root = self.config.storage_dir
            dep.package_dir = storage_root / dep.key / str(dep.version)

            if not dep.is_direct:
                self.config.indirect_dependencies[dep.key] = dep
            resolved.append(ResolvedPackage(dependency=dep, direct=dep.is_direct))
        return resolved

    @staticmethod
    def _closure(entry: RemotePackage, by_id: dict[int, RemotePackage]) -> dict[str, Dependency]:
        closure: dict[str, Dependency] = {}
        for dep_id in entry.dependency_ids:
            ref = by_id.get(dep_id)
            if ref is None:
                raise ResolutionError(
                    f"包 '{entry.package}' 引用了不存在的依赖 id: {dep_id}",
                )
            d = _to_dependency(ref)
            closure[d.key] = d
        return closure

    @staticmethod
    def _find_constraint(project: Project, dep: Dependency) -> Dependency | None:
        exact = project.dependencies.get(dep.key)
        if exact is not None:
            return exact
        for key, constraint in project.dependencies.items():
            if _prefix_matches(key, dep.key):
                logger.debug("前缀匹配: %s -> %s", dep.key, key)
                return constraint
        return None

    def _match_direct(self, dep: Dependency) -> Path:
        """更新所有声明了该依赖的项目约束，返回存储根目录"""
        storage_root: Path | None = None
        for project in self.config.projects:
            constraint = self._find_constraint(project, dep)
            if constraint is None:
                continue
            root = self.config.packages_dir(
                constraint.get_package_dir_type(self.config.packages_dir_type),
            )
            constraint.version = dep.version
            constraint.md5 = dep.md5
            constraint.package_dir = root / dep.key / str(dep.version)
            storage_root = root

        if storage_root is None:
            raise ResolutionError(f"注册中心返回了未声明的直接依赖: {dep.package}")
        return storage_root
