"""YAML 读写工具测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from depforge.utils import yaml_io
from depforge.utils.yaml_io import atomic_write, load_yaml, write_if_different


class TestLoadYaml:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_yaml(tmp_path / "none.yml") == {}

    def test_non_mapping(self, tmp_path: Path) -> None:
        p = tmp_path / "list.yml"
        p.write_text("- a\n- b\n", encoding="utf-8")
        assert load_yaml(p) == {}

    def test_too_large(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        p = tmp_path / "big.yml"
        p.write_text("a: 1\n", encoding="utf-8")
        monkeypatch.setattr(yaml_io, "MAX_YAML_SIZE", 2)
        with pytest.raises(ValueError, match="YAML 文件过大"):
            load_yaml(p)


class TestWrite:
    def test_atomic_write_leaves_no_temp(self, tmp_path: Path) -> None:
        atomic_write(tmp_path / "out.txt", "内容")
        assert [p.name for p in tmp_path.iterdir()] == ["out.txt"]

    def test_write_if_different(self, tmp_path: Path) -> None:
        p = tmp_path / "CMakeLists.txt"
        assert write_if_different(p, "a\n") is True
        mtime = p.stat().st_mtime_ns
        assert write_if_different(p, "a\n") is False
        assert p.stat().st_mtime_ns == mtime
        assert write_if_different(p, "b\n") is True
        assert p.read_text(encoding="utf-8") == "b\n"
