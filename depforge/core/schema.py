"""结构化文档节点访问

项目描述由 PyYAML 解析为通用的 标量 / 序列 / 映射 树，本模块在其上提供
统一的三种访问模式，出错时抛出带键名的 SchemaError:

  - scalar-or-default: 缺失 → 默认值；存在但非标量 → 错误
  - sequence:          缺失 → 空列表；单个标量视为单元素序列
  - variety:           标量 / 序列 / 映射 三选一分派到调用方处理函数
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator

import yaml

from depforge.core.exceptions import SchemaError

Node = Any


class NodeKind(Enum):
    MISSING = "missing"
    SCALAR = "scalar"
    SEQUENCE = "sequence"
    MAP = "map"


class DescriptionLoader(yaml.SafeLoader):
    """数值标量保持原文，版本号 1.10 不会被解析成浮点数 1.1"""


DescriptionLoader.yaml_implicit_resolvers = {
    first: [
        (tag, regexp) for tag, regexp in resolvers
        if tag not in ("tag:yaml.org,2002:int", "tag:yaml.org,2002:float")
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_description(path: str | Path) -> dict[str, Any]:
    """读取项目描述文件，根节点必须是映射"""
    with open(path, encoding="utf-8") as f:
        root = yaml.load(f, Loader=DescriptionLoader)  # noqa: S506
    if root is None:
        return {}
    if not isinstance(root, dict):
        raise SchemaError(f"项目描述根节点必须是映射: {path}")
    return root


def parse_description(text: str) -> dict[str, Any]:
    """从字符串解析项目描述（测试与内存场景）"""
    root = yaml.load(text, Loader=DescriptionLoader)  # noqa: S506
    if root is None:
        return {}
    if not isinstance(root, dict):
        raise SchemaError("项目描述根节点必须是映射")
    return root


def node_kind(node: Node) -> NodeKind:
    if node is None:
        return NodeKind.MISSING
    if isinstance(node, dict):
        return NodeKind.MAP
    if isinstance(node, list):
        return NodeKind.SEQUENCE
    return NodeKind.SCALAR


def as_string(node: Node) -> str:
    """标量转字符串；布尔值按 YAML 原文小写"""
    if isinstance(node, bool):
        return "true" if node else "false"
    return str(node)


def _child(node: Node, key: str) -> Node:
    if not isinstance(node, dict):
        return None
    return node.get(key)


def has_key(node: Node, key: str) -> bool:
    """键是否出现（值为空也算出现，用于 empty / static_only 这类标志）"""
    return isinstance(node, dict) and key in node


def get_scalar(node: Node, key: str, default: str = "") -> str:
    n = _child(node, key)
    kind = node_kind(n)
    if kind is NodeKind.MISSING:
        return default
    if kind is not NodeKind.SCALAR:
        raise SchemaError(f"'{key}' 应为标量", key=key)
    return as_string(n)


def get_sequence_of(node: Node) -> list[str]:
    """对节点本身取序列；缺失或映射时返回空"""
    kind = node_kind(node)
    if kind is NodeKind.SCALAR:
        return [as_string(node)]
    if kind is NodeKind.SEQUENCE:
        return [as_string(v) for v in node]
    return []


def get_sequence(node: Node, key: str) -> list[str]:
    n = _child(node, key)
    if node_kind(n) not in (NodeKind.MISSING, NodeKind.SCALAR, NodeKind.SEQUENCE):
        raise SchemaError(f"'{key}' 应为序列", key=key)
    return get_sequence_of(n)


def get_sequence_set(node: Node, key: str) -> set[str]:
    return set(get_sequence(node, key))


def get_map(node: Node, key: str) -> dict[str, Any] | None:
    n = _child(node, key)
    kind = node_kind(n)
    if kind is NodeKind.MISSING:
        return None
    if kind is not NodeKind.MAP:
        raise SchemaError(f"'{key}' 应为映射", key=key)
    result: dict[str, Any] = n
    return result


def iterate_map(node: Node, key: str) -> Iterator[tuple[str, Node]]:
    m = get_map(node, key)
    if not m:
        return
    for k, v in m.items():
        yield as_string(k), v


def get_string_map(node: Node, key: str) -> dict[str, str]:
    return {k: as_string(v) for k, v in iterate_map(node, key)}


def get_variety(
    node: Node,
    key: str,
    on_scalar: Callable[[Node], None],
    on_sequence: Callable[[list[Node]], None],
    on_map: Callable[[dict[str, Node]], None],
) -> None:
    """按节点实际类型调用三种处理函数之一；缺失时什么都不做"""
    n = _child(node, key)
    kind = node_kind(n)
    if kind is NodeKind.SCALAR:
        on_scalar(n)
    elif kind is NodeKind.SEQUENCE:
        on_sequence(n)
    elif kind is NodeKind.MAP:
        on_map(n)


def get_variety_and_iterate(
    node: Node,
    on_scalar: Callable[[Node], None],
    on_map_item: Callable[[str, Node], None],
) -> None:
    """标量 → 调用一次；标量序列 → 逐个调用标量处理；映射 → 逐项调用"""
    kind = node_kind(node)
    if kind is NodeKind.SCALAR:
        on_scalar(node)
    elif kind is NodeKind.SEQUENCE:
        for v in node:
            on_scalar(v)
    elif kind is NodeKind.MAP:
        for k, v in node.items():
            on_map_item(as_string(k), v)
