"""Store 测试：文件格式与首次运行初始化。"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from winela.errors import NotFoundError, StoreError
from winela.models import LaunchConfig, Registry, RegistryEntry
from winela.store import (
    CONFIG_FILE_NAME,
    LIST_FILE_NAME,
    Store,
    parse_config,
    parse_registry,
    render_config,
    render_registry,
)

DEFAULTS = LaunchConfig(program="wine", program_args="", default_dir="/home/u")


class TestConfigFormat:
    """测试 winelarc 解析与渲染。"""

    def test_parse_all_keys(self):
        text = "Program = wine64\nArguments = start\nDefaultDir = /games\n"
        config = parse_config(text, DEFAULTS)
        assert config == LaunchConfig("wine64", "start", "/games")

    def test_missing_keys_keep_defaults(self):
        assert parse_config("Arguments = -q\n", DEFAULTS) == LaunchConfig("wine", "-q", "/home/u")

    def test_empty_program_keeps_default(self):
        assert parse_config("Program =\n", DEFAULTS).program == "wine"

    def test_empty_arguments(self):
        assert parse_config("Arguments = \n", LaunchConfig("wine", "x", "")).program_args == ""

    def test_value_with_equals(self):
        """只在第一个 "=" 处切分。"""
        assert parse_config("Arguments = --mode=fast\n", DEFAULTS).program_args == "--mode=fast"

    def test_unknown_and_garbage_ignored(self):
        text = "Color = blue\nnot a pair\n\nProgram = proton\n"
        assert parse_config(text, DEFAULTS).program == "proton"

    def test_render(self):
        text = render_config(LaunchConfig("wine", "", "/home/u"))
        assert text == "Program = wine\nArguments =\nDefaultDir = /home/u\n"

    def test_render_then_parse(self):
        config = LaunchConfig("wine", "start /unix", "/data/My Games")
        assert parse_config(render_config(config), DEFAULTS) == config


class TestRegistryFormat:
    """测试 wineladb 解析与渲染。"""

    def test_parse_keeps_order(self):
        text = "Zeta = /z.exe\nAlpha = /a.exe\nZeta = /z.exe\n"
        registry = parse_registry(text)
        assert [e.name for e in registry] == ["Zeta", "Alpha", "Zeta"]

    def test_comments_and_blank_lines(self):
        registry = parse_registry("# games\n\nFoo = /bin/foo\n   \n")
        assert registry.entries == (RegistryEntry("Foo", "/bin/foo"),)

    def test_path_with_equals_and_spaces(self):
        registry = parse_registry("Odd = /c/Program Files/a=b.exe\n")
        assert registry.lookup(1).path == "/c/Program Files/a=b.exe"

    def test_malformed_lines_skipped(self, caplog):
        with caplog.at_level(logging.WARNING, logger="winela.store"):
            registry = parse_registry("no separator\n= /nameless\nEmpty =\nOk = /ok\n")
        assert registry.entries == (RegistryEntry("Ok", "/ok"),)
        assert len(caplog.records) == 3

    def test_render(self):
        registry = Registry((RegistryEntry("Foo", "/bin/foo"), RegistryEntry("Bar", "/bar")))
        assert render_registry(registry) == "Foo = /bin/foo\nBar = /bar\n"


class TestInitialize:
    """测试首次运行初始化。"""

    def test_missing_directory_created_without_files(self, tmp_path: Path):
        base = tmp_path / "conf" / "winela"
        config, registry = Store(base).initialize()

        assert base.is_dir()
        assert not (base / CONFIG_FILE_NAME).exists()
        assert not (base / LIST_FILE_NAME).exists()
        assert config.program == "wine"
        assert len(registry) == 0

    def test_edits_after_directory_created(self, tmp_path: Path):
        """目录刚创建、列表文件尚未写出时也能增删条目。"""
        store = Store(tmp_path / "winela")
        store.initialize()

        with pytest.raises(NotFoundError):
            store.remove_entry(1)

        registry = store.add_entry("Foo", "/bin/foo", LaunchConfig(default_dir="/"))
        assert [e.name for e in registry] == ["Foo"]
        assert store.load_registry() == registry

    def test_second_run_writes_files(self, tmp_path: Path):
        store = Store(tmp_path)
        config, registry = store.initialize()

        assert store.config_file.read_text(encoding="utf-8").startswith("Program = wine\n")
        assert store.list_file.read_text(encoding="utf-8") == ""
        assert len(registry) == 0

    def test_imports_existing_files(self, tmp_path: Path):
        (tmp_path / CONFIG_FILE_NAME).write_text("Program = wine64\nArguments = start\n", encoding="utf-8")
        (tmp_path / LIST_FILE_NAME).write_text("Foo = /bin/foo\nBar = /bar\n", encoding="utf-8")

        config, registry = Store(tmp_path).initialize()

        assert config.program == "wine64"
        assert config.program_args == "start"
        assert [e.name for e in registry] == ["Foo", "Bar"]

    def test_unreadable_config(self, tmp_path: Path):
        (tmp_path / CONFIG_FILE_NAME).mkdir()
        with pytest.raises(StoreError):
            Store(tmp_path).initialize()


class TestEditing:
    """测试条目和配置的修改。"""

    @pytest.fixture
    def store(self, tmp_path: Path) -> Store:
        store = Store(tmp_path)
        store.initialize()
        return store

    def test_add_absolute(self, store: Store):
        registry = store.add_entry("Foo", "/bin/foo", LaunchConfig(default_dir="/ignored"))
        assert registry.lookup(1) == RegistryEntry("Foo", str(Path("/bin/foo")))
        assert store.load_registry() == registry

    def test_add_relative_uses_default_dir(self, store: Store, tmp_path: Path):
        registry = store.add_entry("Game", "drive_c/game.exe", LaunchConfig(default_dir=str(tmp_path)))
        assert registry.lookup(1).path == str(tmp_path / "drive_c" / "game.exe")

    def test_add_appends(self, store: Store):
        config = LaunchConfig(default_dir="/")
        store.add_entry("A", "/a", config)
        registry = store.add_entry("B", "/b", config)
        assert [e.name for e in registry] == ["A", "B"]

    @pytest.mark.parametrize("name,path", [("", "/a"), ("A", " "), ("A=B", "/a")])
    def test_add_invalid(self, store: Store, name: str, path: str):
        with pytest.raises(StoreError):
            store.add_entry(name, path, LaunchConfig())

    def test_remove(self, store: Store):
        config = LaunchConfig(default_dir="/")
        for name in ("A", "B", "C"):
            store.add_entry(name, f"/{name.lower()}", config)

        removed, registry = store.remove_entry(2)

        assert removed.name == "B"
        assert [e.name for e in store.load_registry()] == ["A", "C"]
        assert registry == store.load_registry()

    def test_remove_missing(self, store: Store):
        with pytest.raises(NotFoundError):
            store.remove_entry(1)

    def test_update_config(self, store: Store):
        config = store.update_config(LaunchConfig(), program="proton", program_args="run")
        assert config.program == "proton"
        assert store.load_config() == config
