"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import json
import stat
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 假子进程脚本
FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_CHILD_PATH = FIXTURES_DIR / "fake_child.py"

IS_WINDOWS = sys.platform == "win32"

from winela.models import LaunchConfig  # noqa: E402


@pytest.fixture
def fake_child() -> Path:
    """假子进程脚本路径。"""
    return FAKE_CHILD_PATH


@pytest.fixture
def write_script(tmp_path: Path) -> Callable[..., str]:
    """生成 fake_child 使用的 JSON 脚本，返回脚本路径。"""
    counter = 0

    def _write(**fields: Any) -> str:
        nonlocal counter
        counter += 1
        script = tmp_path / f"script_{counter}.json"
        script.write_text(json.dumps(fields), encoding="utf-8")
        return str(script)

    return _write


@pytest.fixture
def python_config(tmp_path: Path) -> LaunchConfig:
    """用当前解释器作为包装程序，fake_child 作为唯一的附加参数。"""
    return LaunchConfig(
        program=sys.executable,
        program_args=str(FAKE_CHILD_PATH),
        default_dir=str(tmp_path),
    )


@pytest.fixture
def child_wrapper(tmp_path: Path) -> Path:
    """可直接执行的包装程序，行为相当于 `wine <path>`（仅 POSIX）。"""
    if IS_WINDOWS:
        pytest.skip("POSIX-specific wrapper script")

    wrapper = tmp_path / "fakewine"
    wrapper.write_text(
        "#!/bin/sh\n"
        f'exec "{sys.executable}" "{FAKE_CHILD_PATH}" "$@"\n',
        encoding="utf-8",
    )
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper


@pytest.fixture
def winela_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """把配置目录指向临时目录，并重置全局设置。"""
    home = tmp_path / "winela"
    monkeypatch.setenv("WINELA_CONFIG_DIR", str(home))
    monkeypatch.delenv("WINELA_LOG_DEBUG", raising=False)
    monkeypatch.setattr("winela.config._settings", None)
    return home
