"""winela 应用入口。

负责日志配置、错误到退出码的转换。
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence

from .cli import build_parser, run_command
from .config import Settings, get_settings
from .errors import WinelaError
from .store import Store

__all__ = ["configure_logging", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """配置日志输出。

    - WINELA_LOG_DEBUG 开启：DEBUG 级别写入临时文件
    - 否则写入 stderr，默认 WARNING，-v 时 INFO
    """
    log_handlers: list[logging.Handler] = []

    if settings.log_debug and settings.log_file:
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO if verbose else logging.WARNING

    # root logger（第三方库）保持 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 winela 命名空间调整级别
    logging.getLogger("winela").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> int:
    """主入口点。

    Returns:
        进程退出码：0 成功，1 失败，130 被 Ctrl+C 中断
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings, verbose=args.verbose)
    logger.debug(f"Starting winela: {settings}")

    store = Store(settings.config_dir)
    try:
        return run_command(args, store)
    except WinelaError as e:
        logger.debug(f"Command {args.command} failed: {e!r}")
        print(f"winela: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
