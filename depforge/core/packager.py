"""归档打包器

把项目的文件清单打成可复现的 tar.gz:
  - 条目按归档名排序，mtime / uid / gid 归零，权限统一 0644
  - gzip 头部 mtime 归零，同样输入得到逐字节相同的输出
  - 缺失文件跳过并返回 False，不中断整个归档

打包源码项目前做文件检查（文件名字符 → MIME 类型 / 扩展名），
违规项汇总后一次性报告。
"""

from __future__ import annotations

import gzip
import logging
import mimetypes
import os
import re
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import Iterable

from depforge.core.exceptions import FileTypeError, StorageError
from depforge.utils.shell import CommandExecutor, get_executor

logger = logging.getLogger(__name__)

SOURCE_MIME_TYPES = frozenset({
    "text/x-asm",
    "text/x-c",
    "text/x-c++",
    "text/plain",
    "text/html",
    "text/tex",
})

HEADER_FILE_EXTENSIONS = frozenset({".h", ".hh", ".hpp", ".hxx", ".h++", ".HPP"})
SOURCE_FILE_EXTENSIONS = frozenset({".c", ".cc", ".cpp", ".cxx", ".c++", ".CPP"})
OTHER_SOURCE_FILE_EXTENSIONS = frozenset({".s", ".S", ".asm", ".ipp"})

LICENSE_MAX_SIZE = 512 * 1024

_PROHIBITED_RE = re.compile(r"[^A-Za-z0-9_\-+./ ]")


def _suffix(path: str | Path) -> str:
    return PurePosixPath(str(path).replace("\\", "/")).suffix


def is_allowed_file_extension(path: str | Path) -> bool:
    e = _suffix(path)
    return (
        e in HEADER_FILE_EXTENSIONS
        or e in SOURCE_FILE_EXTENSIONS
        or e in OTHER_SOURCE_FILE_EXTENSIONS
    )


def is_valid_source(path: str | Path) -> bool:
    """是否为需要编译的源文件"""
    return _suffix(path) in SOURCE_FILE_EXTENSIONS


def check_filename(name: str) -> bool:
    return not _PROHIBITED_RE.search(name)


def file_type_error(path: str, mime_output: str, *, check_ext: bool = True) -> str | None:
    """返回违规描述；合法时返回 None"""
    mime = mime_output.split(";", 1)[0].strip()
    if mime in SOURCE_MIME_TYPES:
        return None
    if check_ext and is_allowed_file_extension(path):
        return None
    return f"不支持的文件: {path}, mime: {mime}"


def _guess_mime_type(path: Path) -> str:
    """按扩展名推断；源码扩展名映射到允许列表中的名字"""
    if _suffix(path) in {".s", ".S", ".asm"}:
        return "text/x-asm"
    if is_allowed_file_extension(path):
        return "text/x-c"
    return mimetypes.guess_type(str(path))[0] or "application/octet-stream"


def detect_mime_types(
    paths: list[Path], executor: CommandExecutor | None = None,
) -> list[str]:
    """一次调用 `file` 探测全部文件的 MIME 类型，顺序与 paths 一致"""
    if not paths:
        return []
    executor = executor or get_executor()
    try:
        r = executor.execute(["file", "-b", "--mime-type", *[str(p) for p in paths]])
    except FileNotFoundError:
        logger.warning("未找到 file 命令，按扩展名推断 MIME 类型")
        return [_guess_mime_type(p) for p in paths]
    lines = [ln for ln in r.stdout.splitlines() if ln.strip()]
    if not r.success or len(lines) != len(paths):
        raise FileTypeError(
            f"文件类型检查出错 (rc={r.returncode}): {r.stderr.strip()[:300]}",
        )
    return lines


def check_filenames(files: Iterable[str], root: Path) -> None:
    errors = [
        f"文件 '{root / f}' 含有禁用字符"
        for f in sorted(files) if not check_filename(f)
    ]
    if errors:
        raise FileTypeError("项目源文件未通过文件名检查:", details=errors)


def check_file_types(
    files: Iterable[str],
    root: Path,
    *,
    check_ext: bool = True,
    executor: CommandExecutor | None = None,
) -> None:
    """文件名检查先行，通过后再逐个检查 MIME 类型，违规项汇总报告"""
    ordered = sorted(files)
    if not ordered:
        return
    check_filenames(ordered, root)

    mimes = detect_mime_types([root / f for f in ordered], executor)
    errors = []
    for f, mime in zip(ordered, mimes):
        err = file_type_error(f, mime, check_ext=check_ext)
        if err:
            errors.append(err)
    if errors:
        raise FileTypeError("项目未通过文件类型检查:", details=errors)


def write_archive(entries: Iterable[tuple[str, Path]], dest: Path) -> bool:
    """写出 tar.gz；entries 为 (归档名, 实际路径)。

    返回 False 表示有文件缺失被跳过，归档本身仍然完整写出。
    """
    ok = True
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(dest.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as raw, \
                gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0) as gz, \
                tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for arcname, real in sorted(set(entries)):
                if not real.is_file():
                    logger.warning("跳过缺失文件: %s", real)
                    ok = False
                    continue
                info = tarfile.TarInfo(arcname)
                info.size = real.stat().st_size
                info.mode = 0o644
                info.mtime = 0
                info.uid = info.gid = 0
                info.uname = info.gname = ""
                with open(real, "rb") as f:
                    tar.addfile(info, f)
        os.replace(tmp, str(dest))
    except OSError as e:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise StorageError(f"无法写出归档: {dest}: {e}", path=str(dest)) from e
    logger.info("归档已写出: %s", dest)
    return ok
