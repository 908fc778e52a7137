"""项目源文件发现

files 中的条目先按字面路径匹配，剩余条目作为正则表达式匹配项目根目录下
每个普通文件的相对路径（POSIX 分隔符）。随后推导 header_only 并校验 license。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from depforge.core.exceptions import FileTypeError, SchemaError, StorageError
from depforge.core.models import Project
from depforge.core.packager import LICENSE_MAX_SIZE, check_file_types, is_valid_source
from depforge.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


def project_root(project: Project, base_dir: Path) -> Path:
    return base_dir / project.root_directory if project.root_directory else base_dir


def find_sources(
    project: Project,
    base_dir: Path,
    *,
    check_types: bool = True,
    executor: CommandExecutor | None = None,
) -> set[str]:
    """填充 project.files 并推导 project.header_only，返回文件集合"""
    root = project_root(project, base_dir)
    files: set[str] = set(project.files)
    patterns: list[str] = []
    for s in sorted(project.sources):
        if (root / s).is_file():
            files.add(s)
        else:
            patterns.append(s)

    if not patterns and not files and not project.empty:
        raise SchemaError("'files' 必须声明", key="files")

    try:
        rgxs = [re.compile(p) for p in patterns]
    except re.error as e:
        raise SchemaError(f"'files' 中的模式非法: {e}", key="files") from e

    if rgxs and root.is_dir():
        for f in root.rglob("*"):
            if not f.is_file():
                continue
            rel = f.relative_to(root).as_posix()
            if any(r.fullmatch(rel) for r in rgxs):
                files.add(rel)

    if not files and not project.empty:
        raise SchemaError(f"未找到任何文件: {root}", key="files")

    if check_types:
        check_file_types(files, root, executor=executor)

    project.header_only = not any(is_valid_source(f) for f in files)

    if project.license:
        lic = root / project.license
        if not lic.is_file():
            raise StorageError(f"license 文件不存在: {lic}", path=str(lic))
        if lic.stat().st_size > LICENSE_MAX_SIZE:
            raise FileTypeError(
                f"license 非法（应为纯文本且小于 {LICENSE_MAX_SIZE // 1024} KB）: {lic}",
            )
        files.add(project.license)

    project.files = files
    logger.debug(
        "项目 %s: %d 个文件, header_only=%s",
        project.package, len(files), project.header_only,
    )
    return files


def manifest_entries(project: Project, base_dir: Path) -> list[tuple[str, Path]]:
    """打包清单：项目文件（相对项目根）+ 描述文件（始终包含）"""
    root = project_root(project, base_dir)
    entries = [(f, root / f) for f in sorted(project.files)]
    anchor = base_dir / project.description_file
    if anchor.is_file():
        entries.append((project.description_file, anchor))
    return entries
