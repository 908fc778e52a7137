"""依赖包拉取器

职责:
- 缓存有效（目录存在 + md5 标记一致）时直接复用
- 否则下载归档 → 校验 md5 → 解包到临时目录 → 原子替换到版本目录 → 写标记
- 多个包并行拉取；同一包路径的不同版本共用标记文件，串行处理

任何一步失败都不会留下半解包的版本目录。
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from depforge.core.dep.cache import PackageCache
from depforge.core.dep.models import ResolvedPackage
from depforge.core.dep.registry import RegistryClient
from depforge.core.exceptions import DepforgeError, IntegrityError, StorageError
from depforge.core.models import Dependency

logger = logging.getLogger(__name__)


class PackageFetcher:
    """依赖包拉取器 - 本地缓存优先 + 远程下载

    归档 md5 必须与注册中心声明的一致；声明为空同样视为校验失败。
    """

    def __init__(
        self,
        client: RegistryClient,
        cache: PackageCache | None = None,
        max_workers: int = 4,
    ) -> None:
        self.client = client
        self.cache = cache or PackageCache()
        self.max_workers = max(1, max_workers)

    def materialize(self, dep: Dependency, data_dir: str) -> Path:
        """确保 dep.package_dir 下是与 dep.md5 一致的解包内容，返回该目录"""
        if dep.package_dir is None:
            raise StorageError(f"包 '{dep.package}' 未分配存储目录")
        version_dir = dep.package_dir

        if self.cache.is_valid(version_dir, dep.md5):
            logger.info("本地缓存命中: %s@%s -> %s", dep.package, dep.version, version_dir)
            return version_dir

        self.cache.discard(version_dir)
        parent = version_dir.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"无法创建目录: {parent}: {e}", path=str(parent)) from e

        url = self.client.archive_url(data_dir, dep.package, dep.version)
        logger.info("下载: %s@%s <- %s", dep.package, dep.version, url)

        fd, tmp = tempfile.mkstemp(dir=str(parent), suffix=".tar.gz")
        os.close(fd)
        archive = Path(tmp)
        try:
            try:
                actual = self.client.download_archive(url, archive)
            except ConnectionError as e:
                raise StorageError(f"无法获取归档: {e}", path=str(version_dir)) from e
            if actual != dep.md5:
                raise IntegrityError(str(dep.package), dep.md5, actual)
            self._unpack(archive, version_dir)
            self.cache.write_marker(version_dir, actual)
        finally:
            archive.unlink(missing_ok=True)

        logger.info("已落地: %s@%s -> %s", dep.package, dep.version, version_dir)
        return version_dir

    @staticmethod
    def _unpack(archive: Path, version_dir: Path) -> None:
        """解包到同级临时目录，成功后原子替换到 version_dir"""
        staging: Path | None = None
        try:
            staging = Path(tempfile.mkdtemp(dir=str(version_dir.parent), prefix=".unpack-"))
            with tarfile.open(archive, "r:gz") as tar:
                tar.extractall(staging, filter="data")
            os.replace(staging, version_dir)
        except (tarfile.TarError, OSError) as e:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)
            raise StorageError(f"解包失败: {archive}: {e}", path=str(version_dir)) from e

    def _materialize_serial(self, deps: list[Dependency], data_dir: str) -> list[Path]:
        return [self.materialize(d, data_dir) for d in deps]

    def materialize_all(self, resolved: list[ResolvedPackage], data_dir: str) -> list[Path]:
        """并行落地全部解析结果，全部任务结束后抛出第一个错误"""
        groups: dict[str, list[Dependency]] = {}
        for r in resolved:
            groups.setdefault(r.dependency.key, []).append(r.dependency)
        if not groups:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                (key, executor.submit(self._materialize_serial, deps, data_dir))
                for key, deps in groups.items()
            ]
            paths: list[Path] = []
            first_error: DepforgeError | None = None
            for key, future in futures:
                try:
                    paths.extend(future.result())
                except DepforgeError as e:
                    logger.error("拉取失败: %s: %s", key, e)
                    if first_error is None:
                        first_error = e
        if first_error is not None:
            raise first_error
        return paths
