"""依赖解析对账测试"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from depforge.core.dep.registry import parse_response
from depforge.core.dep.resolver import DependencyResolver
from depforge.core.exceptions import ResolutionError
from depforge.core.models import ProjectFlags, Version
from depforge.core.settings import Settings
from depforge.core.workspace import Config

DIRECT = int(ProjectFlags.DIRECT_DEPENDENCY)


def _config(tmp_path: Path, text: str) -> Config:
    settings = Settings(
        storage_dir=str(tmp_path / "user"),
        system_storage_dir=str(tmp_path / "system"),
    )
    cfg = Config.create(tmp_path / "ws", settings)
    cfg.load_text(text)
    return cfg


def _resolver(cfg: Config, raw: dict) -> tuple[DependencyResolver, MagicMock]:
    client = MagicMock()
    client.find_dependencies.return_value = parse_response(raw)
    return DependencyResolver(cfg, client), client


def _entry(id_: int, version: str, flags: int = DIRECT, deps=None, md5: str = "") -> dict:
    return {
        "id": id_, "version": version, "flags": flags,
        "md5": md5 or f"md5-{id_}", "dependencies": deps or [],
    }


class TestRequest:
    def test_request_covers_all_projects(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, (
            "root_project: org.demo\n"
            "projects:\n"
            "  app:\n    dependencies:\n      org.lib: 1.2\n"
            "  tool:\n    dependencies: [org.zlib]\n"
        ))
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {}})
        assert resolver.build_request() == {
            "org.lib": {"version": "1.2"},
            "org.zlib": {"version": "*"},
        }

    def test_no_dependencies_no_request(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "files: a.c\n")
        resolver, client = _resolver(cfg, {"api": 1, "packages": {}})
        assert resolver.resolve() == []
        client.find_dependencies.assert_not_called()


class TestReconcile:
    def test_direct_exact_match(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "dependencies:\n  org.lib: 1.2\n")
        resolver, _ = _resolver(cfg, {
            "api": 1, "packages": {"org.lib": _entry(1, "1.2.0")},
        })
        [r] = resolver.resolve()
        assert r.direct
        constraint = cfg.projects[0].dependencies["org.lib"]
        assert constraint.version == Version("1.2.0")
        assert constraint.package_dir == tmp_path / "user" / "org.lib" / "1.2.0"
        assert r.dependency.package_dir == constraint.package_dir
        assert r.dependency.md5 == "md5-1"
        assert cfg.dependency_tree["api"] == 1

    def test_local_packages_dir_override(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "dependencies:\n  org.lib:\n    version: 1\n    package_dir: local\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {"org.lib": _entry(1, "1.0.0")}})
        [r] = resolver.resolve()
        assert r.dependency.package_dir == tmp_path / "ws" / "depforge" / "org.lib" / "1.0.0"

    def test_workspace_packages_dir_type(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "packages_dir: system\ndependencies: org.lib\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {"org.lib": _entry(1, "3.0")}})
        [r] = resolver.resolve()
        assert r.dependency.package_dir == tmp_path / "system" / "org.lib" / "3.0"

    def test_indirect_under_storage_dir(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "packages_dir: local\ndependencies: org.lib\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {
            "org.lib": _entry(1, "1.0.0", deps=[2]),
            "org.zlib": _entry(2, "1.2.8", flags=0),
        }})
        resolved = resolver.resolve()
        assert [r.direct for r in resolved] == [True, False]
        indirect = cfg.indirect_dependencies["org.zlib"]
        assert indirect.package_dir == tmp_path / "user" / "org.zlib" / "1.2.8"

    def test_closure_copied_by_value(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "dependencies: org.lib\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {
            "org.lib": _entry(1, "1.0.0", deps=[2]),
            "org.gen": _entry(2, "0.1", flags=int(ProjectFlags.EXECUTABLE)),
        }})
        lib, gen = resolver.resolve()
        sub = lib.dependency.dependencies["org.gen"]
        assert sub.is_executable
        assert sub is not gen.dependency
        assert sub.dependencies == {}

    def test_unknown_dependency_id(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "dependencies: org.lib\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {"org.lib": _entry(1, "1", deps=[9])}})
        with pytest.raises(ResolutionError, match="不存在的依赖 id"):
            resolver.resolve()

    def test_indirect_name_collision(self, tmp_path: Path) -> None:
        """间接依赖之间的变量名冲突在对账阶段即报错"""
        cfg = _config(tmp_path, "dependencies: org.top\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {
            "org.top": _entry(1, "1.0", deps=[2, 3]),
            "org.a_b": _entry(2, "1.0", flags=0),
            "org.a.b": _entry(3, "1.0", flags=0),
        }})
        with pytest.raises(ResolutionError, match="org_a_b__1_0"):
            resolver.resolve()

    def test_same_name_different_versions_allowed(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "dependencies: org.top\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {
            "org.top": _entry(1, "1.0", deps=[2]),
            "org.a_b": _entry(2, "1.0", flags=0),
            "org.a.b": _entry(3, "2.0", flags=0),
        }})
        assert len(resolver.resolve()) == 3

    def test_unmatched_direct(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "dependencies: org.lib\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {"com.other": _entry(1, "1")}})
        with pytest.raises(ResolutionError, match="未声明的直接依赖"):
            resolver.resolve()


class TestPrefixMatch:
    def test_prefix_fallback(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "dependencies:\n  org.boost: 1.60\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {"org.boost.filesystem": _entry(1, "1.60.0")}})
        [r] = resolver.resolve()
        assert cfg.projects[0].dependencies["org.boost"].version == Version("1.60.0")
        assert r.dependency.package_dir == tmp_path / "user" / "org.boost.filesystem" / "1.60.0"

    def test_first_match_in_declaration_order(self, tmp_path: Path) -> None:
        """两个声明共享前缀时，结果记到先声明的那个约束上"""
        cfg = _config(tmp_path, "dependencies:\n  org.li: 1\n  org.lib: 2\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {"org.lib.core": _entry(1, "5.0")}})
        resolver.resolve()
        deps = cfg.projects[0].dependencies
        assert deps["org.li"].version == Version("5.0")
        assert deps["org.lib"].version == Version("2")

    def test_exact_match_wins_over_prefix(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path, "dependencies:\n  org.li: 1\n  org.lib: 2\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {"org.lib": _entry(1, "2.1")}})
        resolver.resolve()
        deps = cfg.projects[0].dependencies
        assert deps["org.lib"].version == Version("2.1")
        assert deps["org.li"].version == Version("1")

    def test_prefix_is_literal(self, tmp_path: Path) -> None:
        """声明名中的点按字面匹配"""
        cfg = _config(tmp_path, "dependencies:\n  org.a: 1\n")
        resolver, _ = _resolver(cfg, {"api": 1, "packages": {"orgxa": _entry(1, "1")}})
        with pytest.raises(ResolutionError):
            resolver.resolve()
