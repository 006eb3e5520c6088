"""配置文件与条目列表的读写。

配置目录由调用方注入，本模块不读取全局状态，测试时可以指向临时目录。

文件格式:
    winelarc（启动配置）:
        Program = wine
        Arguments =
        DefaultDir = /home/user

    wineladb（条目列表，每行一个，顺序即序号）:
        Notepad = /home/user/.wine/drive_c/windows/notepad.exe
        # 注释行和空行被忽略

两种文件都在第一个 "=" 处切分，两侧去除空白。
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from .errors import StoreError
from .models import LaunchConfig, Registry, RegistryEntry, default_launch_config

__all__ = [
    "CONFIG_FILE_NAME",
    "LIST_FILE_NAME",
    "Store",
    "parse_config",
    "parse_registry",
    "render_config",
    "render_registry",
]

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "winelarc"
LIST_FILE_NAME = "wineladb"

DIR_MODE = 0o755
FILE_MODE = 0o644

# 配置文件中的键，顺序即写出顺序
_CONFIG_KEYS = ("Program", "Arguments", "DefaultDir")


def _split_pair(line: str) -> tuple[str, str] | None:
    """在第一个 "=" 处切分一行，没有 "=" 时返回 None。"""
    left, sep, right = line.partition("=")
    if not sep:
        return None
    return left.strip(), right.strip()


def parse_config(text: str, defaults: LaunchConfig) -> LaunchConfig:
    """解析 winelarc 内容。

    未知键和没有 "=" 的行被忽略，缺失的键保留默认值。

    Args:
        text: 文件内容
        defaults: 默认配置

    Returns:
        解析后的配置
    """
    values = {
        "program": defaults.program,
        "program_args": defaults.program_args,
        "default_dir": defaults.default_dir,
    }

    for line in text.splitlines():
        pair = _split_pair(line)
        if pair is None:
            continue
        key, value = pair
        if key == "Program":
            # 空值保留默认，Program 必须非空
            if value:
                values["program"] = value
        elif key == "Arguments":
            values["program_args"] = value
        elif key == "DefaultDir":
            values["default_dir"] = value

    return LaunchConfig(**values)


def render_config(config: LaunchConfig) -> str:
    """把配置渲染为 winelarc 内容。"""
    values = (config.program, config.program_args, config.default_dir)
    return "".join(
        f"{key} = {value}".rstrip() + "\n"
        for key, value in zip(_CONFIG_KEYS, values)
    )


def parse_registry(text: str) -> Registry:
    """解析 wineladb 内容，保持原有顺序。

    格式错误的行（没有 "="、名称或路径为空）记录警告后跳过。
    """
    entries: list[RegistryEntry] = []

    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        pair = _split_pair(stripped)
        if pair is None or not pair[0] or not pair[1]:
            logger.warning(f"Skipping malformed list line {lineno}: {line!r}")
            continue

        name, path = pair
        entries.append(RegistryEntry(name=name, path=path))

    return Registry(tuple(entries))


def render_registry(registry: Registry) -> str:
    """把条目列表渲染为 wineladb 内容。"""
    return "".join(f"{entry.name} = {entry.path}\n" for entry in registry)


class Store:
    """配置目录中的 winelarc 和 wineladb。

    Example:
        store = Store(Path("~/.config/winela").expanduser())
        config, registry = store.initialize()

        registry = store.add_entry("Notepad", "drive_c/notepad.exe", config)
    """

    def __init__(self, base_dir: Path) -> None:
        """初始化存储。

        Args:
            base_dir: 配置目录
        """
        self.base_dir = Path(base_dir)

    @property
    def config_file(self) -> Path:
        return self.base_dir / CONFIG_FILE_NAME

    @property
    def list_file(self) -> Path:
        return self.base_dir / LIST_FILE_NAME

    def initialize(self) -> tuple[LaunchConfig, Registry]:
        """首次运行初始化并导入已有配置。

        - 目录不存在：创建目录，返回默认值，不写文件
        - winelarc 不存在：写入默认配置；存在则读取
        - wineladb 不存在：创建空文件；存在则读取

        Returns:
            (配置, 条目列表)

        Raises:
            StoreError: 目录或文件无法读写
        """
        defaults = default_launch_config()

        if not self.base_dir.exists():
            try:
                self.base_dir.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            except OSError as e:
                raise StoreError(f"cannot create {self.base_dir}: {e}") from e
            logger.info(f"Created config directory {self.base_dir}")
            return defaults, Registry()

        if self.config_file.exists():
            config = self.load_config(defaults)
        else:
            config = defaults
            self.save_config(config)
            logger.info(f"Wrote default config to {self.config_file}")

        if self.list_file.exists():
            registry = self.load_registry()
        else:
            registry = Registry()
            self._write(self.list_file, "")
            logger.info(f"Created empty list {self.list_file}")

        return config, registry

    def load_config(self, defaults: LaunchConfig | None = None) -> LaunchConfig:
        """读取 winelarc。

        Raises:
            StoreError: 文件无法读取
        """
        return parse_config(
            self._read(self.config_file),
            defaults or default_launch_config(),
        )

    def save_config(self, config: LaunchConfig) -> None:
        """写入 winelarc。"""
        self._write(self.config_file, render_config(config))

    def update_config(self, config: LaunchConfig, **changes: str) -> LaunchConfig:
        """修改配置的部分字段并保存。

        Args:
            config: 当前配置
            **changes: program / program_args / default_dir 中要修改的字段

        Returns:
            新的配置
        """
        updated = replace(config, **changes)
        self.save_config(updated)
        logger.debug(f"Updated config: {updated}")
        return updated

    def load_registry(self) -> Registry:
        """读取 wineladb。

        Raises:
            StoreError: 文件无法读取
        """
        return parse_registry(self._read(self.list_file))

    def save_registry(self, registry: Registry) -> None:
        """写入 wineladb。"""
        self._write(self.list_file, render_registry(registry))

    def add_entry(self, name: str, path: str, config: LaunchConfig) -> Registry:
        """在列表末尾追加条目并保存。

        相对路径按 config.default_dir 解析。

        Raises:
            StoreError: 名称或路径为空，或文件无法读写
        """
        name = name.strip()
        path = path.strip()
        if not name or not path:
            raise StoreError("entry name and path must not be empty")
        if "=" in name:
            raise StoreError(f"entry name must not contain '=': {name!r}")

        target = Path(path).expanduser()
        if not target.is_absolute() and config.default_dir:
            target = Path(config.default_dir).expanduser() / target

        registry = self._load_registry_or_empty().append(
            RegistryEntry(name=name, path=str(target))
        )
        self.save_registry(registry)
        logger.debug(f"Added entry #{len(registry)} {name!r} -> {target}")
        return registry

    def remove_entry(self, ordinal: int) -> tuple[RegistryEntry, Registry]:
        """删除指定序号的条目并保存。

        Returns:
            (被删除的条目, 新的条目列表)

        Raises:
            NotFoundError: 序号不存在（列表文件不存在时视为空列表）
        """
        registry = self._load_registry_or_empty()
        removed = registry.lookup(ordinal)
        registry = registry.remove(ordinal)
        self.save_registry(registry)
        logger.debug(f"Removed entry #{ordinal} {removed.name!r}")
        return removed, registry

    def _load_registry_or_empty(self) -> Registry:
        # 首次运行时 initialize 只创建目录，wineladb 尚未写出
        if not self.list_file.exists():
            return Registry()
        return self.load_registry()

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StoreError(f"cannot read {path}: {e}") from e

    def _write(self, path: Path, content: str) -> None:
        try:
            self.base_dir.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            os.chmod(path, FILE_MODE)
        except OSError as e:
            raise StoreError(f"cannot write {path}: {e}") from e
