"""winela 环境变量配置管理。

环境变量:
    WINELA_CONFIG_DIR: 配置目录
        - 存放 winelarc（启动配置）和 wineladb（条目列表）
        - 未设置时使用 $XDG_CONFIG_HOME/winela 或 ~/.config/winela
          （Windows 为 %APPDATA%\\winela）

    WINELA_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

这里只处理进程级设置；Program/Arguments/DefaultDir 存放在配置目录里的
winelarc 文件中，由 store 模块读写。
"""

from __future__ import annotations

import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = [
    "APP_NAME",
    "Settings",
    "default_config_dir",
    "get_settings",
    "load_settings",
    "reload_settings",
]

APP_NAME = "winela"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def default_config_dir() -> Path:
    """定位配置目录。

    优先级: WINELA_CONFIG_DIR > 平台配置目录/winela

    Returns:
        配置目录路径（不保证已存在）
    """
    override = os.environ.get("WINELA_CONFIG_DIR")
    if override and override.strip():
        return Path(override.strip()).expanduser()

    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / APP_NAME
        return Path.home() / "AppData" / "Roaming" / APP_NAME

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg and Path(xdg).is_absolute():
        return Path(xdg) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / APP_NAME
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"winela_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Settings:
    """winela 进程级设置。

    Attributes:
        config_dir: 配置目录
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    config_dir: Path
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Settings(config_dir={self.config_dir}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_settings() -> Settings:
    """从环境变量加载设置。"""
    log_debug = _parse_bool(os.environ.get("WINELA_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Settings(
        config_dir=default_config_dir(),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局设置实例（延迟加载）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局设置实例。"""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reload_settings() -> Settings:
    """重新加载设置（用于测试）。"""
    global _settings
    _settings = load_settings()
    return _settings
