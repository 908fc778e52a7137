"""节点访问工具测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from depforge.core.exceptions import SchemaError
from depforge.core.schema import (
    NodeKind,
    get_map,
    get_scalar,
    get_sequence,
    get_variety,
    get_variety_and_iterate,
    iterate_map,
    load_description,
    node_kind,
    parse_description,
)


class TestDescriptionLoader:
    def test_version_numbers_stay_strings(self) -> None:
        """1.10 不能变成浮点 1.1"""
        root = parse_description("dependencies:\n  org.lib: 1.10\n")
        assert root["dependencies"]["org.lib"] == "1.10"

    def test_integers_stay_strings(self) -> None:
        assert parse_description("v: 2\n")["v"] == "2"

    def test_booleans_still_parsed(self) -> None:
        assert parse_description("empty: true\n")["empty"] is True

    def test_empty_document(self) -> None:
        assert parse_description("") == {}

    def test_non_map_root_rejected(self) -> None:
        with pytest.raises(SchemaError, match="必须是映射"):
            parse_description("- a\n- b\n")

    def test_load_from_file(self, tmp_path: Path) -> None:
        f = tmp_path / "depforge.yml"
        f.write_text("root_project: org.demo\n", encoding="utf-8")
        assert load_description(f) == {"root_project": "org.demo"}


class TestScalar:
    def test_missing_returns_default(self) -> None:
        assert get_scalar({}, "host", "h") == "h"

    def test_null_returns_default(self) -> None:
        assert get_scalar({"host": None}, "host", "h") == "h"

    def test_non_scalar_names_key(self) -> None:
        with pytest.raises(SchemaError, match="'host'") as exc:
            get_scalar({"host": [1]}, "host")
        assert exc.value.key == "host"

    def test_bool_rendered_lowercase(self) -> None:
        assert get_scalar({"x": False}, "x") == "false"


class TestSequence:
    def test_missing_is_empty(self) -> None:
        assert get_sequence({}, "files") == []

    def test_scalar_is_single_element(self) -> None:
        assert get_sequence({"files": "a.c"}, "files") == ["a.c"]

    def test_sequence(self) -> None:
        assert get_sequence({"files": ["a.c", "b.c"]}, "files") == ["a.c", "b.c"]

    def test_map_rejected(self) -> None:
        with pytest.raises(SchemaError, match="应为序列"):
            get_sequence({"files": {"a": 1}}, "files")


class TestMap:
    def test_missing_is_none(self) -> None:
        assert get_map({}, "proxy") is None

    def test_scalar_rejected(self) -> None:
        with pytest.raises(SchemaError, match="应为映射"):
            get_map({"proxy": "x"}, "proxy")

    def test_iterate_stringifies_keys(self) -> None:
        assert list(iterate_map({"m": {1: "a"}}, "m")) == [("1", "a")]


class TestVariety:
    @pytest.mark.parametrize("value, expected", [
        ("a", "scalar"),
        (["a"], "sequence"),
        ({"a": 1}, "map"),
    ])
    def test_dispatch(self, value, expected: str) -> None:
        seen: list[str] = []
        get_variety(
            {"k": value}, "k",
            lambda n: seen.append("scalar"),
            lambda n: seen.append("sequence"),
            lambda n: seen.append("map"),
        )
        assert seen == [expected]

    def test_missing_calls_nothing(self) -> None:
        seen: list[str] = []
        get_variety({}, "k", seen.append, seen.append, seen.append)
        assert seen == []

    def test_iterate_sequence_calls_scalar_handler(self) -> None:
        scalars: list[str] = []
        items: list[tuple[str, object]] = []
        get_variety_and_iterate(["a", "b"], scalars.append, lambda k, v: items.append((k, v)))
        get_variety_and_iterate({"c": 1}, scalars.append, lambda k, v: items.append((k, v)))
        assert scalars == ["a", "b"]
        assert items == [("c", 1)]

    def test_node_kind(self) -> None:
        assert node_kind(None) is NodeKind.MISSING
        assert node_kind("x") is NodeKind.SCALAR
        assert node_kind([]) is NodeKind.SEQUENCE
        assert node_kind({}) is NodeKind.MAP
