"""本地包缓存

目录布局:
  {存储根}/{包路径}/{版本}/     解包后的内容
  {存储根}/{包路径}/archive.md5  最近一次落地的归档 md5

同一包的所有版本共用一个 md5 标记文件，因此拉取器对同一包路径串行处理。
标记在目录提交之后写入，标记存在即表示对应目录完整。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from depforge.core.dep.models import MD5_FILENAME
from depforge.core.exceptions import StorageError
from depforge.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)


class PackageCache:
    """版本目录 + md5 标记"""

    @staticmethod
    def marker_path(version_dir: Path) -> Path:
        return version_dir.parent / MD5_FILENAME

    def read_marker(self, version_dir: Path) -> str:
        marker = self.marker_path(version_dir)
        if not marker.is_file():
            return ""
        try:
            return marker.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise StorageError(f"无法读取 md5 标记: {marker}: {e}", path=str(marker)) from e

    def write_marker(self, version_dir: Path, md5: str) -> None:
        marker = self.marker_path(version_dir)
        try:
            atomic_write(marker, md5)
        except OSError as e:
            raise StorageError(f"无法写入 md5 标记: {marker}: {e}", path=str(marker)) from e

    def is_valid(self, version_dir: Path, md5: str) -> bool:
        """目录存在且标记与期望 md5 一致"""
        if not md5 or not version_dir.is_dir():
            return False
        stored = self.read_marker(version_dir)
        return bool(stored) and stored == md5

    def discard(self, version_dir: Path) -> None:
        if not version_dir.exists():
            return
        logger.info("清理失效缓存: %s", version_dir)
        try:
            shutil.rmtree(version_dir)
        except OSError as e:
            raise StorageError(f"无法删除目录: {version_dir}: {e}", path=str(version_dir)) from e
