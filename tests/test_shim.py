"""Tests for ProcessInvocationShim — one render call, one subprocess."""

from __future__ import annotations

import json
import os
import signal
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from rendershim.config.models import RendererConfig
from rendershim.errors import (
    BinaryNotFoundError,
    ErrorKind,
    NonZeroExitError,
    OutputExistsError,
    RendererDisabledError,
    RenderIOError,
    RenderTimeoutError,
)
from rendershim.shim import (
    Invocation,
    InvocationState,
    ProcessInvocationShim,
    format_option,
    locate_binary,
)


# ── Helpers ──────────────────────────────────────────────────────────────


def _config(binary: Path | str, **kwargs) -> RendererConfig:
    return RendererConfig(binary=str(binary), **kwargs)


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@pytest.fixture
def shim() -> ProcessInvocationShim:
    return ProcessInvocationShim(kill_timeout_seconds=1.0)


@pytest.fixture
def no_spawn(monkeypatch):
    """Fail loudly if anything tries to start a process."""
    popen = MagicMock(side_effect=AssertionError("process spawned"))
    monkeypatch.setattr("rendershim.shim.subprocess.Popen", popen)
    return popen


# ── Success ──────────────────────────────────────────────────────────────


class TestRenderSuccess:
    def test_echo_returns_stdout(self, shim, echo_binary):
        assert shim.render(_config(echo_binary), b"hello") == b"hello"

    def test_binary_output_is_not_decoded(self, shim, echo_binary):
        payload = bytes(range(256))
        assert shim.render(_config(echo_binary), payload) == payload

    def test_empty_input(self, shim, echo_binary):
        assert shim.render(_config(echo_binary), b"") == b""

    def test_argv_order(self, shim, argv_binary):
        config = _config(
            argv_binary,
            options=[("page-size", "A4"), ("grayscale", None), ("--dpi", "300")],
            trailing_args=("-", "-"),
        )
        out = shim.render(config, b"", [("page-size", "Letter")])
        assert json.loads(out) == [
            "--page-size", "A4",
            "--grayscale",
            "--dpi", "300",
            "--page-size", "Letter",
            "-", "-",
        ]

    def test_extra_options_as_mapping(self, shim, argv_binary):
        out = shim.render(_config(argv_binary), b"", {"quiet": True, "zoom": 1.5, "debug": False})
        assert json.loads(out) == ["--quiet", "--zoom", "1.5"]

    def test_repeated_flags_kept(self, shim, argv_binary):
        config = _config(argv_binary, options=[("cookie", "a 1"), ("cookie", "b 2")])
        assert json.loads(shim.render(config, b"")) == ["--cookie", "a 1", "--cookie", "b 2"]

    def test_bare_name_found_on_path(self, shim, echo_binary, monkeypatch):
        monkeypatch.setenv("PATH", str(echo_binary.parent))
        assert shim.render(_config(echo_binary.name), b"via path") == b"via path"


# ── Environment ──────────────────────────────────────────────────────────


class TestEnvironment:
    SCRIPT = 'print(json.dumps({k: os.environ.get(k) for k in ("HOST_ONLY", "SHARED", "CONFIG_ONLY")}))'

    def test_env_overlaid_on_host(self, shim, make_binary, monkeypatch):
        monkeypatch.setenv("HOST_ONLY", "host")
        monkeypatch.setenv("SHARED", "host")
        binary = make_binary("env-render", self.SCRIPT)
        config = _config(binary, env={"SHARED": "config", "CONFIG_ONLY": "yes"})

        assert json.loads(shim.render(config, b"")) == {
            "HOST_ONLY": "host",
            "SHARED": "config",
            "CONFIG_ONLY": "yes",
        }

    def test_host_environment_untouched(self, shim, make_binary, monkeypatch):
        monkeypatch.delenv("CONFIG_ONLY", raising=False)
        binary = make_binary("env-render", self.SCRIPT)
        shim.render(_config(binary, env={"CONFIG_ONLY": "yes"}), b"")
        assert "CONFIG_ONLY" not in os.environ

    def test_build_env_without_inheritance(self):
        shim = ProcessInvocationShim(inherit_env=False)
        config = _config("/bin/true", env={"A": "1"})
        assert shim.build_env(config) == {"A": "1"}


# ── Pre-flight failures (nothing spawned) ────────────────────────────────


class TestPreflight:
    def test_disabled_never_spawns(self, shim, echo_binary, no_spawn):
        config = _config(echo_binary, enabled=False)
        with pytest.raises(RendererDisabledError) as exc_info:
            shim.render(config, b"hello")
        assert exc_info.value.kind is ErrorKind.DISABLED
        no_spawn.assert_not_called()

    def test_disabled_wins_over_missing_binary(self, shim, no_spawn):
        config = RendererConfig(enabled=False, binary="")
        with pytest.raises(RendererDisabledError):
            shim.render(config, b"")
        no_spawn.assert_not_called()

    def test_missing_binary(self, shim, tmp_path, no_spawn):
        missing = tmp_path / "nope" / "wkhtmltopdf"
        with pytest.raises(BinaryNotFoundError) as exc_info:
            shim.render(_config(missing), b"hello")
        assert exc_info.value.binary == str(missing)
        assert exc_info.value.kind is ErrorKind.BINARY_NOT_FOUND
        no_spawn.assert_not_called()

    def test_not_executable(self, shim, make_binary, no_spawn):
        binary = make_binary("plain", "pass", executable=False)
        with pytest.raises(BinaryNotFoundError):
            shim.render(_config(binary), b"")
        no_spawn.assert_not_called()

    def test_directory_is_not_a_binary(self, shim, bin_dir, no_spawn):
        with pytest.raises(BinaryNotFoundError):
            shim.render(_config(bin_dir), b"")

    def test_bare_name_missing_from_path(self, shim, monkeypatch, tmp_path, no_spawn):
        monkeypatch.setenv("PATH", str(tmp_path))
        with pytest.raises(BinaryNotFoundError):
            shim.render(_config("definitely-not-a-renderer"), b"")


# ── Process failures ─────────────────────────────────────────────────────


class TestNonZeroExit:
    def test_code_and_stderr(self, shim, failing_binary):
        with pytest.raises(NonZeroExitError) as exc_info:
            shim.render(_config(failing_binary), b"hello")
        err = exc_info.value
        assert err.code == 2
        assert err.stderr == "bad"
        assert err.kind is ErrorKind.NON_ZERO_EXIT
        assert err.context["binary"] == str(failing_binary)

    def test_exit_without_reading_stdin(self, shim, make_binary):
        binary = make_binary("quick-exit", "sys.exit(3)")
        with pytest.raises(NonZeroExitError) as exc_info:
            shim.render(_config(binary), b"x" * (1 << 20))
        assert exc_info.value.code == 3

    def test_spawn_failure_is_io_error(self, shim, make_binary):
        binary = make_binary("broken", "pass", shebang="/nonexistent/interpreter")
        with pytest.raises(RenderIOError) as exc_info:
            shim.render(_config(binary), b"")
        assert isinstance(exc_info.value.cause, OSError)


class TestTimeout:
    def test_timeout_kills_child(self, shim, sleeping_binary, tmp_path):
        with pytest.raises(RenderTimeoutError) as exc_info:
            shim.render(_config(sleeping_binary, timeout=1.0), b"")

        err = exc_info.value
        assert err.kind is ErrorKind.TIMEOUT
        assert isinstance(err, TimeoutError)
        assert err.timeout == 1.0
        assert err.returncode is not None
        assert err.pid == int((tmp_path / "pid").read_text())
        assert not _pid_alive(err.pid)

    def test_sigterm_ignored_escalates_to_sigkill(self, make_binary):
        shim = ProcessInvocationShim(kill_timeout_seconds=0.2)
        binary = make_binary(
            "stubborn-render",
            """
            signal.signal(signal.SIGTERM, signal.SIG_IGN)
            time.sleep(30)
            """,
        )
        with pytest.raises(RenderTimeoutError) as exc_info:
            shim.render(_config(binary, timeout=1.5), b"")

        assert exc_info.value.returncode == -signal.SIGKILL
        assert not _pid_alive(exc_info.value.pid)

    def test_fast_binary_within_timeout(self, shim, echo_binary):
        assert shim.render(_config(echo_binary, timeout=10), b"ok") == b"ok"


# ── File input mode ──────────────────────────────────────────────────────


class TestFileInputMode:
    def test_input_passed_as_temp_file(self, shim, make_binary):
        binary = make_binary(
            "file-render",
            """
            path = sys.argv[-2]
            with open(path, "rb") as fh:
                data = fh.read()
            print(json.dumps({"path": path, "data": data.decode(), "last": sys.argv[-1]}))
            """,
        )
        config = _config(binary, input_mode="file", input_suffix=".htm", trailing_args=("-",))
        result = json.loads(shim.render(config, b"<p>hi</p>"))

        assert result["data"] == "<p>hi</p>"
        assert result["path"].endswith(".htm")
        assert result["last"] == "-"
        assert not Path(result["path"]).exists()

    def test_temp_file_removed_on_failure(self, shim, make_binary, tmp_path):
        record = tmp_path / "seen"
        binary = make_binary(
            "file-fail",
            f"""
            open({str(record)!r}, "w").write(sys.argv[-1])
            sys.exit(1)
            """,
        )
        with pytest.raises(NonZeroExitError):
            shim.render(_config(binary, input_mode="file"), b"data")
        assert not Path(record.read_text()).exists()


# ── render_to_file ───────────────────────────────────────────────────────


class TestRenderToFile:
    def test_writes_output(self, shim, echo_binary, tmp_path):
        target = tmp_path / "out" / "nested" / "doc.pdf"
        path = shim.render_to_file(_config(echo_binary), b"%PDF", target)
        assert path == target
        assert target.read_bytes() == b"%PDF"

    def test_refuses_to_overwrite(self, shim, echo_binary, tmp_path, no_spawn):
        target = tmp_path / "doc.pdf"
        target.write_bytes(b"old")
        with pytest.raises(OutputExistsError):
            shim.render_to_file(_config(echo_binary), b"new", target)
        assert target.read_bytes() == b"old"
        no_spawn.assert_not_called()

    def test_overwrite(self, shim, echo_binary, tmp_path):
        target = tmp_path / "doc.pdf"
        target.write_bytes(b"old")
        shim.render_to_file(_config(echo_binary), b"new", target, overwrite=True)
        assert target.read_bytes() == b"new"

    def test_file_created_during_render_is_kept(self, shim, echo_binary, tmp_path, monkeypatch):
        target = tmp_path / "doc.pdf"
        render = shim.render

        def render_then_race(*args, **kwargs):
            data = render(*args, **kwargs)
            target.write_bytes(b"other")
            return data

        monkeypatch.setattr(shim, "render", render_then_race)

        with pytest.raises(OutputExistsError):
            shim.render_to_file(_config(echo_binary), b"new", target)
        assert target.read_bytes() == b"other"

    def test_failed_render_leaves_no_file(self, shim, failing_binary, tmp_path):
        target = tmp_path / "doc.pdf"
        with pytest.raises(NonZeroExitError):
            shim.render_to_file(_config(failing_binary), b"", target)
        assert not target.exists()


# ── Command building ─────────────────────────────────────────────────────


class TestBuildCommand:
    def test_format_option(self):
        assert format_option("page-size", "A4") == ["--page-size", "A4"]
        assert format_option("-q", None) == ["-q"]
        assert format_option("--title", "") == ["--title", ""]

    def test_build_command_with_input_path(self, shim):
        config = _config("/usr/bin/wkhtmltopdf", options=[("quiet", None)], trailing_args=("-",))
        assert shim.build_command(config, [("zoom", "2")], "/tmp/in.html") == [
            "/usr/bin/wkhtmltopdf", "--quiet", "--zoom", "2", "/tmp/in.html", "-",
        ]

    def test_locate_binary(self, echo_binary, tmp_path):
        assert locate_binary(str(echo_binary)) == str(echo_binary)
        assert locate_binary(str(tmp_path / "missing")) is None
        assert locate_binary("") is None

    def test_negative_kill_timeout_rejected(self):
        with pytest.raises(ValueError):
            ProcessInvocationShim(kill_timeout_seconds=-1)


# ── Invocation state machine ─────────────────────────────────────────────


class TestInvocation:
    def test_happy_path(self):
        inv = Invocation(argv=["x"])
        assert inv.state is InvocationState.NOT_STARTED
        inv.transition(InvocationState.RUNNING)
        assert inv.started_at is not None
        inv.transition(InvocationState.SUCCEEDED)
        assert inv.finished_at is not None
        assert inv.is_terminal

    def test_spawn_failure_path(self):
        inv = Invocation(argv=["x"])
        inv.transition(InvocationState.FAILED)
        assert inv.is_terminal
        assert inv.elapsed == 0.0

    @pytest.mark.parametrize("terminal", [
        InvocationState.SUCCEEDED,
        InvocationState.FAILED,
        InvocationState.TIMED_OUT,
    ])
    def test_terminal_states_are_final(self, terminal):
        inv = Invocation(argv=["x"])
        inv.transition(InvocationState.RUNNING)
        inv.transition(terminal)
        with pytest.raises(RuntimeError):
            inv.transition(InvocationState.RUNNING)

    def test_cannot_time_out_before_running(self):
        inv = Invocation(argv=["x"])
        with pytest.raises(RuntimeError):
            inv.transition(InvocationState.TIMED_OUT)

    def test_ids_are_unique(self):
        assert Invocation(argv=["x"]).invocation_id != Invocation(argv=["x"]).invocation_id
