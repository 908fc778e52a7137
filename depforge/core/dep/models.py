"""依赖解析数据模型

数据类:
- RemotePackage: 注册中心响应中的一个包条目
- ResolutionResponse: 校验后的解析响应
- ResolvedPackage: 待落地的解析结果（依赖事实 + 是否直接依赖）
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from depforge.core.models import Dependency

SUPPORTED_API_VERSION = 1
DEFAULT_DATA_DIR = "data"
MD5_FILENAME = "archive.md5"
FIND_DEPENDENCIES_ENDPOINT = "/api/find_dependencies"


@dataclass
class RemotePackage:
    """注册中心包表中的单个条目"""

    id: int
    package: str
    version: str
    flags: int = 0
    md5: str = ""
    dependency_ids: list[int] = field(default_factory=list)


@dataclass
class ResolutionResponse:
    api: int
    data_dir: str = DEFAULT_DATA_DIR
    packages: list[RemotePackage] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    def by_id(self) -> dict[int, RemotePackage]:
        return {p.id: p for p in self.packages}


@dataclass
class ResolvedPackage:
    """解析完成、等待拉取的包"""

    dependency: Dependency
    direct: bool
