"""
Shared pytest fixtures and configuration for rendershim tests.

This module provides:
- Fake rendering binaries (executable Python scripts in ``tmp_path``)
- Settings / logging cleanup for test isolation

Usage:
    def test_echo(make_binary):
        binary = make_binary("echo", "sys.stdout.buffer.write(sys.stdin.buffer.read())")
"""

import os
import sys
import textwrap
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

# Ensure rendershim package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rendershim.config.settings import clear_settings_cache


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_logging_and_settings() -> Generator[None, None, None]:
    """Drop cached settings and structlog configuration around each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Remove RENDERSHIM_* variables and run from an empty directory (no .env)."""
    for key in list(os.environ):
        if key.startswith("RENDERSHIM_"):
            monkeypatch.delenv(key)
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


# =============================================================================
# Fake Binaries
# =============================================================================


HEADER = "import json, os, signal, sys, time\n"

ECHO = "sys.stdout.buffer.write(sys.stdin.buffer.read())"
ARGV = "print(json.dumps(sys.argv[1:]))"
BAD_EXIT = 'sys.stderr.write("bad")\nsys.exit(2)'


@pytest.fixture
def bin_dir(tmp_path: Path) -> Path:
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def make_binary(bin_dir: Path) -> Callable[..., Path]:
    """Factory writing an executable Python script into ``bin_dir``."""

    def _make(name: str, body: str, *, executable: bool = True, shebang: str | None = None) -> Path:
        path = bin_dir / name
        path.write_text(f"#!{shebang or sys.executable}\n{HEADER}{textwrap.dedent(body)}\n")
        path.chmod(0o755 if executable else 0o644)
        return path

    return _make


@pytest.fixture
def echo_binary(make_binary) -> Path:
    return make_binary("echo-render", ECHO)


@pytest.fixture
def argv_binary(make_binary) -> Path:
    return make_binary("argv-render", ARGV)


@pytest.fixture
def failing_binary(make_binary) -> Path:
    return make_binary("bad-render", BAD_EXIT)


@pytest.fixture
def sleeping_binary(make_binary, tmp_path: Path) -> Path:
    """Writes its pid to ``tmp_path/pid`` then sleeps for 30 seconds."""
    pid_file = tmp_path / "pid"
    return make_binary(
        "slow-render",
        f"""
        with open({str(pid_file)!r}, "w") as fh:
            fh.write(str(os.getpid()))
        time.sleep(30)
        """,
    )
