"""工作区级描述生成

WorkspaceAccumulator 在各包生成时汇总检查集合与全局定义（加锁），
全部包生成完成后据此产出元描述与检查描述。
"""

from __future__ import annotations

import hashlib
import re
import threading
from pathlib import Path

from depforge.core.models import OPTION_LEVEL_ORDER, OptionBlock, OptionLevel
from depforge.core.workspace import CheckRegistry, Config
from depforge.generator.descriptor import (
    Check,
    HelperDescriptor,
    MetaDescriptor,
    Subdirectory,
)

_NON_ALNUM_RE = re.compile(r"[^0-9A-Za-z]")


# =========================================================================
# 检查名 → 变量名
# =========================================================================


def convert_function(name: str) -> str:
    return "HAVE_" + name.upper()


def convert_include(name: str) -> str:
    return _NON_ALNUM_RE.sub("_", "HAVE_" + name.upper())


def convert_type(name: str, prefix: str = "HAVE_") -> str:
    return _NON_ALNUM_RE.sub("_", (prefix + name.upper()).replace("*", "P"))


def convert_library(name: str) -> str:
    return _NON_ALNUM_RE.sub("_", "HAVE_LIB" + name.upper())


# =========================================================================
# 汇总器
# =========================================================================


class WorkspaceAccumulator:
    """写共享的工作区聚合：检查集合并集 + 各级别全局定义"""

    def __init__(self, config: Config) -> None:
        self.config = config
        self._lock = threading.Lock()

    def merge_checks(self, checks: CheckRegistry) -> None:
        with self._lock:
            self.config.checks.merge(checks)

    def add_global_definitions(self, level: OptionLevel, definitions: set[str]) -> None:
        if not definitions:
            return
        with self._lock:
            block = self.config.global_options.setdefault(level, OptionBlock())
            block.global_definitions |= definitions


# =========================================================================
# 元描述 / 检查描述
# =========================================================================


def binary_dir_for(package_dir: Path) -> str:
    """子目录构建目录名：sha1("<包目录名>/<版本>") 前 6 位"""
    key = f"{package_dir.parent.name}/{package_dir.name}"
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:6]  # nosec B324


def _subdirectory(package_dir: Path | None) -> Subdirectory | None:
    if package_dir is None:
        return None
    return Subdirectory(
        source_dir=package_dir.as_posix(),
        binary_dir=binary_dir_for(package_dir),
    )


def generate_meta(config: Config) -> MetaDescriptor:
    meta = MetaDescriptor()
    for info in config.packages.values():
        sub = _subdirectory(info.dependency.package_dir)
        if sub is not None:
            meta.direct.append(sub)
        if not info.dependency.is_executable:
            meta.links.append(info.target_name)
    for dep in config.indirect_dependencies.values():
        sub = _subdirectory(dep.package_dir)
        if sub is not None:
            meta.indirect.append(sub)
    return meta


def generate_helpers(config: Config) -> HelperDescriptor:
    checks = config.checks
    helpers = HelperDescriptor(description_file=config.description_file)

    functions = sorted(checks.functions)
    symbols = sorted(checks.symbols.items())
    includes = sorted(checks.includes)
    types = sorted(checks.types)
    libraries = sorted(checks.libraries)

    helpers.checks.extend(
        Check("check_function_exists", f, convert_function(f)) for f in functions
    )
    helpers.checks.extend(
        Check("check_cxx_symbol_exists", s, convert_function(s), tuple(sorted(h)))
        for s, h in symbols
    )
    helpers.checks.extend(
        Check("check_include_files", i, convert_include(i)) for i in includes
    )
    helpers.checks.extend(
        Check("check_type_size", t, convert_type(t)) for t in types
    )
    helpers.checks.extend(
        Check("find_library", lib, convert_library(lib)) for lib in libraries
    )

    helpers.size_aliases = [
        (convert_type(t), convert_type(t, "SIZE_OF_"), convert_type(t, "SIZEOF_"))
        for t in types
    ]

    for level in OPTION_LEVEL_ORDER:
        block = config.global_options.get(level)
        if block is not None:
            helpers.global_definitions.extend(sorted(block.global_definitions))

    helpers.global_definitions = list(dict.fromkeys(helpers.global_definitions))
    helpers.definitions = [c.variable for c in helpers.checks]
    return helpers
