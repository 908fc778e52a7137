"""依赖解析与拉取

拆分说明:
- models.py: 协议常量与响应数据模型
- registry.py: 注册中心客户端（请求 / 响应校验 / 下载地址）
- resolver.py: 响应与声明约束对账
- cache.py: 本地版本目录 + md5 标记
- fetcher.py: 下载 → 校验 → 解包 → 提交
"""

from depforge.core.dep.cache import PackageCache
from depforge.core.dep.fetcher import PackageFetcher
from depforge.core.dep.models import RemotePackage, ResolutionResponse, ResolvedPackage
from depforge.core.dep.registry import RegistryClient, parse_response
from depforge.core.dep.resolver import DependencyResolver

__all__ = [
    "DependencyResolver",
    "PackageCache",
    "PackageFetcher",
    "RegistryClient",
    "RemotePackage",
    "ResolutionResponse",
    "ResolvedPackage",
    "parse_response",
]
