"""winela - 通过包装程序（如 wine）启动已登记的程序。

环境变量:
    WINELA_CONFIG_DIR: 配置目录（默认 ~/.config/winela）
    WINELA_LOG_DEBUG: 日志输出到临时文件 (默认 false)

用法:
    winela list
    winela run 1
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
