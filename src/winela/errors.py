"""winela 异常类。

所有异常都同步抛给直接调用方，启动器本身不做重试。
"""

from __future__ import annotations

__all__ = [
    "WinelaError",
    "StoreError",
    "LaunchError",
    "NotFoundError",
    "ExecutionError",
]


class WinelaError(Exception):
    """winela 基础异常。"""
    pass


class StoreError(WinelaError):
    """配置文件或列表文件读写失败。"""
    pass


class LaunchError(WinelaError):
    """单次启动失败的基础异常。"""
    pass


class NotFoundError(LaunchError):
    """序号在列表中不存在。

    Attributes:
        ordinal: 请求的序号（从 1 开始）
    """

    def __init__(self, ordinal: int) -> None:
        self.ordinal = ordinal
        super().__init__(f"exe number {ordinal}: not in list")


class ExecutionError(LaunchError):
    """进程启动失败（程序不存在、没有权限等）。

    Attributes:
        program: 配置中的包装程序
        cause: 底层错误
    """

    def __init__(self, program: str, cause: BaseException | str) -> None:
        self.program = program
        self.cause = cause
        super().__init__(f"could not execute {program}: {cause}")
