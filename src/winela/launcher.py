"""启动器：序号解析、命令构建和进程启动。

命令格式:
    {Program} [{Arguments}] {Path}

Arguments 作为单个参数插入，不按空白拆分。

启动状态:
    Pending -> Resolved -> Started -> Detached-Done
                                   -> Draining -> Attached-Done
    任何阶段失败都直接抛出异常，不重试。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import anyio

from .errors import ExecutionError
from .models import LaunchConfig, Registry, RegistryEntry
from .runtime import LineSink, ProcessRunner, ProcessSpec, ProcessStartError

__all__ = [
    "LaunchOutcome",
    "Launcher",
    "build_command",
    "format_listing",
]

logger = logging.getLogger(__name__)


def build_command(config: LaunchConfig, target_path: str) -> list[str]:
    """构建命令行参数列表。

    Args:
        config: 启动配置
        target_path: 目标条目的路径

    Returns:
        [program, target_path] 或 [program, program_args, target_path]
    """
    if not config.program_args:
        return [config.program, target_path]
    return [config.program, config.program_args, target_path]


def format_listing(registry: Registry) -> str:
    """把列表渲染为 "<序号> <名称>" 行。"""
    return "".join(
        f"{index} {entry.name}\n" for index, entry in enumerate(registry, start=1)
    )


def _print_line(line: str) -> None:
    print(line, flush=True)


@dataclass
class LaunchOutcome:
    """单次启动的结果（不持久化）。

    Attributes:
        entry: 解析到的条目
        argv: 实际执行的命令行
        detached: 是否为分离模式
        pid: 子进程 ID
        returncode: 附加模式下的退出码；分离模式、被取消，
            或输出流关闭后进程仍在运行时为 None
        stream_errors: 附加模式下读取输出流时的错误
    """

    entry: RegistryEntry
    argv: list[str]
    detached: bool
    pid: int | None = None
    returncode: int | None = None
    stream_errors: list[str] = field(default_factory=list)

    @property
    def started(self) -> bool:
        """返回的结果总是已经启动成功的。"""
        return True


class Launcher:
    """按序号启动列表中的条目。

    持有配置和列表的只读快照；多个启动可以同时进行，互不共享可变状态。

    Example:
        launcher = Launcher(config, registry)
        print(launcher.format_listing(), end="")

        # 附加模式：阻塞直到 stdout 和 stderr 都读完
        outcome = await launcher.launch(1, detach=False)

        # 分离模式：进程启动后立即返回
        outcome = await launcher.launch(2, detach=True)
    """

    def __init__(
        self,
        config: LaunchConfig,
        registry: Registry,
        *,
        runner: ProcessRunner | None = None,
        on_line: LineSink | None = None,
        cwd: Path | None = None,
    ) -> None:
        """初始化启动器。

        Args:
            config: 启动配置快照
            registry: 条目列表快照
            runner: 进程运行器（默认新建）
            on_line: 附加模式下输出行的接收函数（默认打印到 stdout）
            cwd: 子进程工作目录（默认继承当前进程）
        """
        self.config = config
        self.registry = registry
        self.runner = runner or ProcessRunner()
        self.on_line = on_line or _print_line
        self.cwd = cwd

    def resolve(self, ordinal: int) -> RegistryEntry:
        """把序号解析为条目。

        Raises:
            NotFoundError: 序号不存在
        """
        return self.registry.lookup(ordinal)

    def format_listing(self) -> str:
        """返回带序号的列表文本。"""
        return format_listing(self.registry)

    async def launch(
        self,
        ordinal: int,
        detach: bool,
        *,
        cancel_scope: anyio.CancelScope | None = None,
    ) -> LaunchOutcome:
        """启动指定序号的条目。

        Args:
            ordinal: 从 1 开始的序号
            detach: True 为分离模式（启动后立即返回），False 为附加模式
            cancel_scope: 可选的取消范围，仅附加模式使用

        Returns:
            启动结果

        Raises:
            NotFoundError: 序号不存在，此时不会启动任何进程
            ExecutionError: 进程启动失败
        """
        entry = self.resolve(ordinal)
        argv = build_command(self.config, entry.path)
        spec = ProcessSpec(argv=argv, cwd=self.cwd)

        logger.debug(
            f"Launching #{ordinal} {entry.name!r}: argv={argv} "
            f"mode={'detach' if detach else 'attach'}"
        )

        if detach:
            try:
                pid = self.runner.spawn_detached(spec)
            except ProcessStartError as e:
                raise ExecutionError(self.config.program, e.cause) from e
            logger.info(f"Started {entry.name!r} detached (pid={pid})")
            return LaunchOutcome(entry=entry, argv=argv, detached=True, pid=pid)

        try:
            result = await self.runner.run_attached(
                spec, self.on_line, cancel_scope=cancel_scope
            )
        except ProcessStartError as e:
            # 只有启动失败转换为 ExecutionError，输出回调抛出的异常原样传播
            raise ExecutionError(self.config.program, e.cause) from e

        logger.info(
            f"{entry.name!r} output closed (pid={result.pid}, "
            f"returncode={result.returncode})"
        )
        return LaunchOutcome(
            entry=entry,
            argv=argv,
            detached=False,
            pid=result.pid,
            returncode=result.returncode,
            stream_errors=result.stream_errors,
        )
