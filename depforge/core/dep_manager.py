"""依赖管理器

串起一次完整的安装流程:

  1. load:     读取工作区根目录的 depforge.yml
  2. resolve:  一次请求取回完整依赖图，与声明约束对账
  3. fetch:    并行下载 / 校验 / 解包（本地缓存优先）
  4. generate: 为每个包写出 CMakeLists.txt，再写出工作区元描述与检查描述

以及打包：对工作区项目做文件检查后写出可复现归档。

用法:
    from depforge.core.dep_manager import DepManager

    dm = DepManager(".")
    dm.install()
    dm.pack(Path("dist/lib.tar.gz"))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from depforge.core.dep import (
    DependencyResolver,
    PackageCache,
    PackageFetcher,
    RegistryClient,
    ResolvedPackage,
)
from depforge.core.exceptions import StorageError
from depforge.core.models import DESCRIPTION_FILENAME, PackageInfo
from depforge.core.packager import write_archive
from depforge.core.settings import Settings, get_settings
from depforge.core.sources import find_sources, manifest_entries
from depforge.core.workspace import Config
from depforge.generator import (
    GeneratorOptions,
    WorkspaceAccumulator,
    generate_helpers,
    generate_meta,
    generate_package,
    render_helpers,
    render_meta,
    render_package,
    write_file,
)
from depforge.generator.cmake import HELPERS_FILENAME, META_FILENAME, PACKAGE_FILENAME
from depforge.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


@dataclass
class InstallReport:
    """一次安装的结果摘要"""

    resolved: list[ResolvedPackage] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)

    @property
    def direct(self) -> list[ResolvedPackage]:
        return [r for r in self.resolved if r.direct]

    @property
    def indirect(self) -> list[ResolvedPackage]:
        return [r for r in self.resolved if not r.direct]


class DepManager:
    """工作区依赖管理入口"""

    def __init__(
        self,
        root_dir: str | Path = ".",
        settings: Settings | None = None,
        *,
        client: RegistryClient | None = None,
        description_file: str = DESCRIPTION_FILENAME,
    ) -> None:
        self.root_dir = Path(root_dir)
        self.settings = settings or get_settings()
        self.description_file = description_file
        self.config = Config.from_directory(self.root_dir, self.settings, description_file)
        self.client = client or RegistryClient(
            self.config.host,
            proxy=self.config.proxy.url(),
            timeout=self.settings.request_timeout,
        )
        self.resolver = DependencyResolver(self.config, self.client)
        self.fetcher = PackageFetcher(
            self.client, PackageCache(), max_workers=self.settings.max_workers,
        )

    @property
    def output_dir(self) -> Path:
        return self.root_dir / self.settings.local_dir

    # ------------------------------------------------------------------
    # 安装
    # ------------------------------------------------------------------

    def resolve(self) -> list[ResolvedPackage]:
        return self.resolver.resolve()

    def install(self) -> InstallReport:
        """解析 → 拉取 → 生成，返回安装摘要"""
        report = InstallReport(resolved=self.resolve())
        self.fetcher.materialize_all(report.resolved, self.resolver.data_dir)

        accumulator = WorkspaceAccumulator(self.config)
        options = GeneratorOptions(
            build_shared_libs=self.settings.build_shared_libs,
            library_types=dict(self.settings.library_types),
        )
        for r in report.resolved:
            report.written.append(self._generate_package(r, accumulator, options))

        report.written.extend(self.write_workspace_files())
        logger.info(
            "安装完成: %d 个直接依赖, %d 个间接依赖",
            len(report.direct), len(report.indirect),
        )
        return report

    def _generate_package(
        self,
        resolved: ResolvedPackage,
        accumulator: WorkspaceAccumulator,
        options: GeneratorOptions,
    ) -> Path:
        dep = resolved.dependency
        if dep.package_dir is None:
            raise StorageError(f"包 '{dep.package}' 未分配存储目录")
        pkg_config = Config.from_directory(dep.package_dir, self.settings)
        # header_only 由包内实际文件推导；已发布的包不再做 MIME 检查
        for project in pkg_config.projects:
            if project.sources and not project.empty:
                find_sources(project, dep.package_dir, check_types=False)
        desc = generate_package(pkg_config, dep, accumulator, options)

        target = dep.package_dir / PACKAGE_FILENAME
        write_file(target, render_package(desc))
        if resolved.direct:
            self.config.add_package(PackageInfo.from_dependency(dep))
        return target

    def write_workspace_files(self) -> list[Path]:
        """写出元描述与检查描述"""
        meta_path = self.output_dir / META_FILENAME
        helpers_path = self.output_dir / HELPERS_FILENAME
        write_file(meta_path, render_meta(generate_meta(self.config)))
        write_file(helpers_path, render_helpers(generate_helpers(self.config)))
        return [meta_path, helpers_path]

    # ------------------------------------------------------------------
    # 打包
    # ------------------------------------------------------------------

    def pack(
        self,
        dest: Path,
        *,
        project: str = "",
        check_types: bool = True,
        executor: CommandExecutor | None = None,
    ) -> bool:
        """对项目做文件检查并写出归档；返回 False 表示有缺失文件被跳过"""
        if project:
            target = self.config.find_project(self.config.relative_name_to_absolute(project))
        else:
            target = self.config.find_project(self.config.root_project)
        find_sources(target, self.root_dir, check_types=check_types, executor=executor)
        return write_archive(manifest_entries(target, self.root_dir), dest)
