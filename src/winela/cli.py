"""命令行前端。

用法:
    winela list
    winela run N [--fork]
    winela add NAME PATH
    winela remove N
    winela config [--program P] [--args A] [--default-dir D]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from . import __version__
from .launcher import Launcher
from .store import Store, render_config

__all__ = ["build_parser", "run_command"]

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """构建参数解析器。"""
    parser = argparse.ArgumentParser(
        prog="winela",
        description="Launch registered programs through a wrapper such as wine",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="Show the numbered list of entries")

    run = commands.add_parser("run", help="Launch an entry by its number")
    run.add_argument("ordinal", type=int, help="Entry number as shown by 'list'")
    run.add_argument(
        "-f", "--fork", action="store_true",
        help="Detach from the process instead of streaming its output",
    )

    add = commands.add_parser("add", help="Append an entry to the list")
    add.add_argument("name", help="Display name")
    add.add_argument("path", help="Target path (relative paths use DefaultDir)")

    remove = commands.add_parser("remove", help="Remove an entry by its number")
    remove.add_argument("ordinal", type=int, help="Entry number as shown by 'list'")

    config = commands.add_parser("config", help="Show or change the launch configuration")
    config.add_argument("--program", help="Wrapper program to invoke")
    config.add_argument("--args", dest="program_args", help="Single argument put before the target path")
    config.add_argument("--default-dir", dest="default_dir", help="Directory for relative paths")

    return parser


def run_command(args: argparse.Namespace, store: Store) -> int:
    """执行子命令。

    Args:
        args: 解析后的参数
        store: 配置存储

    Returns:
        进程退出码

    Raises:
        WinelaError: 由调用方统一转换为错误信息
    """
    config, registry = store.initialize()

    if args.command == "list":
        sys.stdout.write(Launcher(config, registry).format_listing())
        return 0

    if args.command == "run":
        launcher = Launcher(config, registry)
        outcome = asyncio.run(launcher.launch(args.ordinal, args.fork))
        for error in outcome.stream_errors:
            print(f"winela: stream read error on {error}", file=sys.stderr)
        return 0

    if args.command == "add":
        registry = store.add_entry(args.name, args.path, config)
        print(f"{len(registry)} {registry.lookup(len(registry)).name}")
        return 0

    if args.command == "remove":
        removed, _ = store.remove_entry(args.ordinal)
        print(f"removed {removed.name}")
        return 0

    if args.command == "config":
        changes = {
            key: value
            for key, value in (
                ("program", args.program),
                ("program_args", args.program_args),
                ("default_dir", args.default_dir),
            )
            if value is not None
        }
        if changes:
            config = store.update_config(config, **changes)
        sys.stdout.write(render_config(config))
        return 0

    # argparse 已限制子命令，这里不可达
    raise ValueError(f"unknown command: {args.command}")
