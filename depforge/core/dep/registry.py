"""注册中心协议客户端

职责:
- 提交依赖约束 {包路径: {version}}，取回扁平化的包表
- 校验响应（error 字段、API 版本）
- 计算归档下载地址并流式下载（返回 md5）
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from depforge.core.dep.models import (
    DEFAULT_DATA_DIR,
    FIND_DEPENDENCIES_ENDPOINT,
    SUPPORTED_API_VERSION,
    RemotePackage,
    ResolutionResponse,
)
from depforge.core.exceptions import ResolutionError
from depforge.core.models import ProjectPath, Version
from depforge.utils.net import download, post_json

logger = logging.getLogger(__name__)


def parse_response(raw: dict[str, Any]) -> ResolutionResponse:
    """校验并解析注册中心响应；error 字段优先于 API 版本检查"""
    if "error" in raw:
        raise ResolutionError(str(raw["error"]))

    try:
        api = int(raw.get("api") or 0)
    except (TypeError, ValueError):
        raise ResolutionError(f"响应中的 API 版本非法: {raw.get('api')!r}") from None
    if api == 0:
        raise ResolutionError("响应中缺少 API 版本")
    if api != SUPPORTED_API_VERSION:
        raise ResolutionError(f"不支持的 API 版本: {api}")

    table = raw.get("packages") or {}
    if not isinstance(table, dict):
        raise ResolutionError("响应中的 'packages' 应为映射")

    packages: list[RemotePackage] = []
    for name, entry in table.items():
        try:
            packages.append(RemotePackage(
                id=int(entry["id"]),
                package=str(name),
                version=str(entry["version"]),
                flags=int(entry.get("flags", 0)),
                md5=str(entry.get("md5", "")),
                dependency_ids=[int(i) for i in entry.get("dependencies") or []],
            ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ResolutionError(f"包条目格式错误: {name}: {e}") from e

    return ResolutionResponse(
        api=api,
        data_dir=str(raw.get("data_dir") or DEFAULT_DATA_DIR),
        packages=packages,
        raw=raw,
    )


class RegistryClient:
    """注册中心客户端 - 一个工作区一次请求/响应"""

    def __init__(self, host: str, *, proxy: str = "", timeout: int = 60) -> None:
        self.host = host.rstrip("/")
        self.proxy = proxy
        self.timeout = timeout

    def find_dependencies(self, request: dict[str, dict[str, str]]) -> ResolutionResponse:
        url = self.host + FIND_DEPENDENCIES_ENDPOINT
        logger.info("请求依赖列表: %s (%d 个约束)", url, len(request))
        try:
            raw = post_json(url, request, timeout=self.timeout, proxy=self.proxy)
        except ConnectionError as e:
            raise ResolutionError(f"无法连接注册中心: {e}") from e
        return parse_response(raw)

    def archive_url(self, data_dir: str, package: ProjectPath, version: Version) -> str:
        return (
            f"{self.host}/{data_dir.strip('/')}/"
            f"{package.to_filesystem_path()}/{version}.tar.gz"
        )

    def download_archive(self, url: str, dest: Path) -> str:
        """下载归档到 dest，返回传输内容的 md5"""
        return download(url, dest, timeout=self.timeout, proxy=self.proxy)
