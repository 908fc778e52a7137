"""网络工具 - URL 安全校验、JSON 请求、带 md5 的流式下载"""

from __future__ import annotations

import hashlib
import json
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from depforge.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset(("http", "https"))
_CHUNK_SIZE = 64 * 1024


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def _opener(proxy: str = "") -> urllib.request.OpenerDirector:
    if proxy:
        handler = urllib.request.ProxyHandler({"http": proxy, "https": proxy})
        return urllib.request.build_opener(handler)
    return urllib.request.build_opener()


def post_json(
    url: str, data: dict[str, Any], *,
    timeout: int = 60, proxy: str = "",
) -> dict[str, Any]:
    """POST JSON 请求体，返回解析后的 JSON 响应

    Raises:
        ConnectionError: 网络错误或响应不是 JSON 对象
    """
    validate_url_scheme(url, context="post_json")
    body = json.dumps(data).encode("utf-8")
    req = urllib.request.Request(
        url, data=body, method="POST",
        headers={"Content-Type": "application/json"},
    )
    try:
        with _opener(proxy).open(req, timeout=timeout) as resp:  # nosec B310
            payload = resp.read().decode("utf-8")
    except (urllib.error.HTTPError, urllib.error.URLError, OSError) as e:
        raise ConnectionError(f"请求失败: {url} - {e}") from e

    try:
        result = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ConnectionError(f"响应不是合法 JSON: {url} - {e}") from e
    if not isinstance(result, dict):
        raise ConnectionError(f"响应不是 JSON 对象: {url}")
    return result


def download(
    url: str, dest: Path, *,
    timeout: int = 60, proxy: str = "",
) -> str:
    """流式下载到 dest，返回内容 md5（十六进制）

    失败时删除已写入的部分文件。
    """
    validate_url_scheme(url, context="download")
    md5 = hashlib.md5()  # nosec B324 - 注册中心协议约定的内容哈希
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        with _opener(proxy).open(url, timeout=timeout) as resp, \
                open(dest, "wb") as f:  # nosec B310
            for chunk in iter(lambda: resp.read(_CHUNK_SIZE), b""):
                md5.update(chunk)
                f.write(chunk)
    except (urllib.error.HTTPError, urllib.error.URLError, OSError) as e:
        dest.unlink(missing_ok=True)
        raise ConnectionError(f"下载失败: {url} - {e}") from e
    logger.debug("已下载 %s -> %s", url, dest)
    return md5.hexdigest()
