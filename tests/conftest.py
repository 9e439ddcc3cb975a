"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path (development checkouts)
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_P4 = FIXTURES_DIR / "fake_p4.py"

IS_WINDOWS = sys.platform == "win32"


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def fake_p4_argv() -> list[str]:
    """Argument prefix that runs the fake p4 with the current interpreter."""
    return [sys.executable, str(FAKE_P4)]


@pytest.fixture
def fake_bin_path(tmp_path: Path) -> str:
    """Directory prefix holding an executable named ``p4`` that runs the fake.

    Returns:
        The prefix to use as ``bin_path`` (ends with a path separator)
    """
    if IS_WINDOWS:
        pytest.skip("shell wrapper requires POSIX")

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    wrapper = bin_dir / "p4"
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_P4}" "$@"\n')
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(bin_dir) + os.sep


@pytest.fixture(autouse=True)
def _isolated_p4_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's p4 settings out of the tests."""
    for name in ("P4PORT", "P4USER", "P4CLIENT", "P4API_TIMEOUT", "P4CONFIG",
                 "P4BRIDGE_BIN_PATH", "P4BRIDGE_DEBUG", "P4BRIDGE_LOG_DEBUG"):
        monkeypatch.delenv(name, raising=False)

    from p4bridge.config import reload_config

    reload_config()
