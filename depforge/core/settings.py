"""集中设置管理

用户级设置（注册中心地址、包存储目录、代理等）统一入口。
支持从 YAML 文件加载 + 编程式覆盖。

查找顺序:
  1. 系统设置  /etc/depforge/default.yml
  2. 用户设置  ~/.depforge/settings.yml （覆盖系统设置中的同名键）
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from depforge.core.models import PackagesDirType
from depforge.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

SYSTEM_SETTINGS_FILE = "/etc/depforge/default.yml"


def user_root_dir() -> Path:
    return Path.home() / ".depforge"


def user_settings_file() -> Path:
    return user_root_dir() / "settings.yml"


@dataclass
class Settings:
    """全局设置"""

    # 注册中心
    host: str = "https://registry.depforge.dev"
    proxy_host: str = ""
    proxy_user: str = ""
    request_timeout: int = 60

    # 目录
    storage_dir: str = str(Path("~/.depforge/packages").expanduser())
    system_storage_dir: str = "/var/lib/depforge/packages"
    local_dir: str = "depforge"
    packages_dir: str = "user"  # local | user | system
    root_project: str = ""

    # 拉取
    max_workers: int = 4

    # 构建
    build_shared_libs: bool = False
    library_types: dict[str, str] = field(default_factory=dict)  # variable_name -> static|shared

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], base: Settings | None = None) -> Settings:
        """在 base 之上覆盖 data 中的已知字段，其余放入 extra"""
        known = {f.name for f in cls.__dataclass_fields__.values()}
        merged = base.to_dict() if base else {}
        merged.update({k: v for k, v in data.items() if k in known and k != "extra"})
        proxy = data.get("proxy")
        if isinstance(proxy, dict):
            merged["proxy_host"] = proxy.get("host", merged.get("proxy_host", ""))
            merged["proxy_user"] = proxy.get("user", merged.get("proxy_user", ""))
        extra = dict(merged.pop("extra", {}) or {})
        extra.update({k: v for k, v in data.items() if k not in known and k != "proxy"})
        cfg = cls(**merged)
        cfg.extra = extra
        return cfg

    @classmethod
    def from_file(cls, path: str | Path, base: Settings | None = None) -> Settings:
        """从 YAML 文件加载设置，不存在则返回 base（或默认值）"""
        data = load_yaml(path)
        if not data:
            return base if base is not None else cls()
        return cls.from_dict(data, base)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def packages_dir_for(self, kind: PackagesDirType, workspace_root: Path) -> Path:
        """包目录类型 -> 实际存储根目录"""
        if kind is PackagesDirType.LOCAL:
            return workspace_root / self.local_dir
        if kind is PackagesDirType.SYSTEM:
            return Path(self.system_storage_dir)
        return Path(self.storage_dir).expanduser()


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Settings | None = None


def get_settings() -> Settings:
    """获取当前设置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Settings()
    return _current


def init_settings(path: str | Path | None = None) -> Settings:
    """加载系统设置 + 用户设置（或指定文件）并设为全局设置"""
    global _current  # noqa: PLW0603
    cfg = Settings.from_file(SYSTEM_SETTINGS_FILE)
    target = Path(path) if path else user_settings_file()
    _current = Settings.from_file(target, base=cfg)
    logger.info("设置已加载: %s", target)
    return _current


def reset_settings() -> None:
    """清除全局设置（测试使用）"""
    global _current  # noqa: PLW0603
    _current = None
