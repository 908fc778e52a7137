"""工作区元描述与检查描述测试"""

from __future__ import annotations

import hashlib
import threading
from pathlib import Path

from depforge.core.models import (
    Dependency,
    OptionBlock,
    OptionLevel,
    PackageInfo,
    ProjectFlags,
    ProjectPath,
    Version,
)
from depforge.core.settings import Settings
from depforge.core.workspace import CheckRegistry, Config
from depforge.generator.workspace import (
    WorkspaceAccumulator,
    binary_dir_for,
    convert_function,
    convert_include,
    convert_library,
    convert_type,
    generate_helpers,
    generate_meta,
)


def _config() -> Config:
    return Config.create(Path("/ws"), Settings())


def _dep(name: str, version: str, package_dir: Path, flags=ProjectFlags.DIRECT_DEPENDENCY) -> Dependency:
    return Dependency(
        package=ProjectPath(name), version=Version(version),
        flags=flags, package_dir=package_dir,
    )


class TestNameConversion:
    def test_function(self) -> None:
        assert convert_function("memcpy") == "HAVE_MEMCPY"

    def test_include(self) -> None:
        assert convert_include("sys/types.h") == "HAVE_SYS_TYPES_H"

    def test_type(self) -> None:
        assert convert_type("void *") == "HAVE_VOID_P"
        assert convert_type("long long", "SIZEOF_") == "SIZEOF_LONG_LONG"

    def test_library(self) -> None:
        assert convert_library("z") == "HAVE_LIBZ"


class TestBinaryDir:
    def test_sha1_prefix(self) -> None:
        expected = hashlib.sha1(b"org.zlib/1.2.8").hexdigest()[:6]
        assert binary_dir_for(Path("/store/org.zlib/1.2.8")) == expected

    def test_independent_of_storage_root(self) -> None:
        assert binary_dir_for(Path("/a/org.z/1")) == binary_dir_for(Path("/b/c/org.z/1"))


class TestMeta:
    def test_direct_and_indirect(self) -> None:
        cfg = _config()
        lib = _dep("org.lib", "1.0", Path("/s/org.lib/1.0"))
        gen = _dep("org.gen", "2", Path("/s/org.gen/2"), ProjectFlags.EXECUTABLE | ProjectFlags.DIRECT_DEPENDENCY)
        cfg.add_package(PackageInfo.from_dependency(lib))
        cfg.add_package(PackageInfo.from_dependency(gen))
        cfg.indirect_dependencies["org.zlib"] = _dep("org.zlib", "1.2.8", Path("/s/org.zlib/1.2.8"), ProjectFlags.NONE)

        meta = generate_meta(cfg)

        assert [s.source_dir for s in meta.direct] == ["/s/org.lib/1.0", "/s/org.gen/2"]
        assert [s.source_dir for s in meta.indirect] == ["/s/org.zlib/1.2.8"]
        assert meta.links == ["org.lib-1.0"]

    def test_empty(self) -> None:
        meta = generate_meta(_config())
        assert meta.direct == [] and meta.indirect == [] and meta.links == []


class TestHelpers:
    def test_check_order_and_definitions(self) -> None:
        cfg = _config()
        cfg.checks.merge(CheckRegistry(
            functions={"strlcpy", "memcpy"},
            includes={"unistd.h"},
            libraries={"z"},
            symbols={"snprintf": {"stdio.h", "cstdio"}},
        ))

        helpers = generate_helpers(cfg)

        assert [(c.command, c.subject) for c in helpers.checks] == [
            ("check_function_exists", "memcpy"),
            ("check_function_exists", "strlcpy"),
            ("check_cxx_symbol_exists", "snprintf"),
            ("check_include_files", "unistd.h"),
            ("check_type_size", "size_t"),
            ("check_type_size", "void *"),
            ("find_library", "z"),
        ]
        assert helpers.checks[2].headers == ("cstdio", "stdio.h")
        assert helpers.definitions == [c.variable for c in helpers.checks]
        assert helpers.size_aliases[0] == ("HAVE_SIZE_T", "SIZE_OF_SIZE_T", "SIZEOF_SIZE_T")

    def test_global_definitions_by_level(self) -> None:
        cfg = _config()
        cfg.global_options[OptionLevel.SHARED] = OptionBlock(global_definitions={"DLL", "COMMON"})
        cfg.global_options[OptionLevel.ANY] = OptionBlock(global_definitions={"COMMON"})
        assert generate_helpers(cfg).global_definitions == ["COMMON", "DLL"]


class TestAccumulatorConcurrency:
    def test_parallel_merges(self) -> None:
        cfg = _config()
        acc = WorkspaceAccumulator(cfg)

        def work(i: int) -> None:
            acc.merge_checks(CheckRegistry(functions={f"f{i}"}))
            acc.add_global_definitions(OptionLevel.ANY, {f"D{i}"})

        threads = [threading.Thread(target=work, args=(i,)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cfg.checks.functions) == 16
        assert len(cfg.global_options[OptionLevel.ANY].global_definitions) == 16
