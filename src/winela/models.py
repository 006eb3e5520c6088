"""winela 数据模型。

- LaunchConfig: 启动参数（包装程序、默认参数、默认目录）
- RegistryEntry: 一个可启动的条目
- Registry: 有序条目列表，按从 1 开始的序号寻址
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from .errors import NotFoundError

__all__ = [
    "DEFAULT_PROGRAM",
    "LaunchConfig",
    "Registry",
    "RegistryEntry",
    "default_launch_config",
]

# Program 为空时的回退值
DEFAULT_PROGRAM = "wine"


@dataclass(frozen=True)
class LaunchConfig:
    """启动配置。

    单次启动期间不可变；修改配置通过 dataclasses.replace 生成新实例。

    Attributes:
        program: 包装程序，初始化后总是非空
        program_args: 插入在目标路径前的单个参数，空串表示不插入
        default_dir: 默认目录，用于解析相对路径
    """

    program: str = DEFAULT_PROGRAM
    program_args: str = ""
    default_dir: str = ""

    def __post_init__(self) -> None:
        """保证 program 非空。"""
        if not self.program.strip():
            object.__setattr__(self, "program", DEFAULT_PROGRAM)


def default_launch_config() -> LaunchConfig:
    """首次运行时使用的默认配置。"""
    return LaunchConfig(
        program=DEFAULT_PROGRAM,
        program_args="",
        default_dir=str(Path.home()),
    )


@dataclass(frozen=True)
class RegistryEntry:
    """可启动条目。

    Attributes:
        name: 显示名称
        path: 目标路径，作为最后一个参数传给包装程序
    """

    name: str
    path: str


@dataclass(frozen=True)
class Registry:
    """有序条目列表。

    显示列表中的第 i 项总是对应查找时的第 i 项；不排序、不去重。
    编辑操作返回新的 Registry，原实例保持不变。
    """

    entries: tuple[RegistryEntry, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.entries, tuple):
            object.__setattr__(self, "entries", tuple(self.entries))

    def lookup(self, ordinal: int) -> RegistryEntry:
        """按序号查找条目。

        列表很小，顺序扫描即可。

        Args:
            ordinal: 从 1 开始的序号

        Returns:
            对应的条目

        Raises:
            NotFoundError: 序号 <= 0 或超出列表长度
        """
        for index, entry in enumerate(self.entries, start=1):
            if index == ordinal:
                return entry
        raise NotFoundError(ordinal)

    def append(self, entry: RegistryEntry) -> Registry:
        """在末尾追加条目。"""
        return Registry(self.entries + (entry,))

    def remove(self, ordinal: int) -> Registry:
        """删除指定序号的条目。

        Raises:
            NotFoundError: 序号不存在
        """
        self.lookup(ordinal)
        return Registry(self.entries[: ordinal - 1] + self.entries[ordinal:])

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self.entries)
