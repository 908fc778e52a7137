"""统一异常体系

所有业务异常继承 DepforgeError，替代散落的 ValueError / RuntimeError。
CLI 层据此输出友好提示并以非零状态退出。
"""

from __future__ import annotations


class DepforgeError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class SchemaError(DepforgeError):
    """项目描述文件结构非法（节点类型错误、未知键、互斥标志等）"""

    code = "SCHEMA_ERROR"

    def __init__(self, message: str, key: str = "") -> None:
        super().__init__(message)
        self.key = key


class ResolutionError(DepforgeError):
    """依赖解析失败（API 版本不符、注册中心报错、结果无法匹配）"""

    code = "RESOLUTION_ERROR"


class IntegrityError(DepforgeError):
    """包归档校验和不匹配"""

    code = "INTEGRITY_ERROR"

    def __init__(self, package: str, expected: str, actual: str) -> None:
        super().__init__(
            f"md5 不匹配: 包 '{package}' 期望 {expected}, 实际 {actual}",
        )
        self.package = package
        self.expected = expected
        self.actual = actual


class StorageError(DepforgeError):
    """无法打开/创建必需的文件或目录"""

    code = "STORAGE_ERROR"

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class FileTypeError(DepforgeError):
    """打包前的文件类型/文件名检查未通过"""

    code = "FILE_TYPE_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        self.details = details or []
        if self.details:
            message = message + "\n" + "\n".join(self.details)
        super().__init__(message)


class ValidationError(DepforgeError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []
