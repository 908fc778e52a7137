"""depforge - C/C++ 源码包依赖管理与构建描述生成"""

__version__ = "0.3.0"
