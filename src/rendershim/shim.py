"""Process invocation shim — runs one rendering binary per call.

Translates a :class:`RendererConfig` plus input bytes into exactly one OS
process, waits for it with an optional deadline, and returns its stdout or
raises a typed :class:`~rendershim.errors.RenderError`.

Architecture:

    .. code-block:: text

        ProcessInvocationShim — one call, one process
        ┌──────────────────────────────────────────────────────────────┐
        │                                                              │
        │  RendererConfig field   │ Process equivalent                 │
        │  ───────────────────────┼────────────────────────────────────│
        │  enabled                │ rejected before spawn              │
        │  binary                 │ argv[0] (PATH lookup if bare)      │
        │  options + extra        │ argv flags, in order               │
        │  input_mode             │ stdin pipe or temp file path       │
        │  trailing_args          │ argv tail                          │
        │  env                    │ os.environ overlay                 │
        │  timeout                │ SIGTERM → SIGKILL, then reap       │
        │                                                              │
        └──────────────────────────────────────────────────────────────┘

    Per-call state machine::

        NOT_STARTED ──▶ RUNNING ──▶ SUCCEEDED
             │             ├──────▶ FAILED
             │             └──────▶ TIMED_OUT
             └──────────────────────▶ FAILED   (spawn error)

Example:
    >>> shim = ProcessInvocationShim()
    >>> pdf = shim.render(config, b"<h1>hi</h1>", [("page-size", "A4")])

Tags:
    rendershim, subprocess, timeout, invocation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
import tempfile
import time
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from rendershim.config.models import OptionPair, RendererConfig, normalize_options
from rendershim.errors import (
    BinaryNotFoundError,
    NonZeroExitError,
    OutputExistsError,
    RendererDisabledError,
    RenderIOError,
    RenderTimeoutError,
)
from rendershim.logging import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Invocation record
# ---------------------------------------------------------------------------

class InvocationState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


_TRANSITIONS: dict[InvocationState, frozenset[InvocationState]] = {
    InvocationState.NOT_STARTED: frozenset({InvocationState.RUNNING, InvocationState.FAILED}),
    InvocationState.RUNNING: frozenset({
        InvocationState.SUCCEEDED,
        InvocationState.FAILED,
        InvocationState.TIMED_OUT,
    }),
    InvocationState.SUCCEEDED: frozenset(),
    InvocationState.FAILED: frozenset(),
    InvocationState.TIMED_OUT: frozenset(),
}


@dataclass
class Invocation:
    """Tracks the single process spawned by one ``render`` call."""

    argv: list[str]
    invocation_id: str = field(default_factory=lambda: f"inv-{uuid.uuid4().hex[:12]}")
    state: InvocationState = InvocationState.NOT_STARTED
    pid: int | None = None
    exit_code: int | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    _started_monotonic: float | None = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    @property
    def elapsed(self) -> float:
        """Seconds since the process was spawned (0 if it never was)."""
        if self._started_monotonic is None:
            return 0.0
        return time.monotonic() - self._started_monotonic

    def transition(self, new_state: InvocationState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid invocation transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        if new_state is InvocationState.RUNNING:
            self.started_at = _utcnow()
            self._started_monotonic = time.monotonic()
        else:
            self.finished_at = _utcnow()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def locate_binary(binary: str) -> str | None:
    """Return the executable path for *binary*, or None if unusable.

    Bare names are looked up on ``PATH``; anything with a path separator
    must be an existing, executable regular file.
    """
    if not binary or not binary.strip():
        return None
    if os.sep not in binary and not (os.altsep and os.altsep in binary):
        return shutil.which(binary)
    path = Path(binary)
    if path.is_file() and os.access(path, os.X_OK):
        return str(path)
    return None


def format_option(flag: str, value: str | None) -> list[str]:
    """Render one option pair as argv items (``page-size`` → ``--page-size``)."""
    arg = flag if flag.startswith("-") else f"--{flag}"
    return [arg] if value is None else [arg, value]


# ---------------------------------------------------------------------------
# ProcessInvocationShim
# ---------------------------------------------------------------------------

class ProcessInvocationShim:
    """Runs rendering binaries as bounded-lifetime subprocesses.

    Stateless between calls: concurrent ``render`` calls share nothing but
    this object's read-only settings, so one shim can serve many threads.
    """

    def __init__(
        self,
        *,
        kill_timeout_seconds: float = 5.0,
        inherit_env: bool = True,
    ) -> None:
        """Initialize the shim.

        Args:
            kill_timeout_seconds: Seconds to wait after SIGTERM before
                sending SIGKILL to a timed-out child.
            inherit_env: If True, children inherit the current environment
                with ``config.env`` overlaid. If False, only ``config.env``
                is passed.
        """
        if kill_timeout_seconds < 0:
            raise ValueError(f"kill_timeout_seconds must be non-negative, got {kill_timeout_seconds}")
        self._kill_timeout = kill_timeout_seconds
        self._inherit_env = inherit_env

    # ------------------------------------------------------------------
    # Invocation building
    # ------------------------------------------------------------------

    def check_binary(self, config: RendererConfig) -> str:
        """Return the executable path for *config*.

        Raises:
            RendererDisabledError: the renderer is disabled
            BinaryNotFoundError: the binary is missing or not executable
        """
        if not config.enabled:
            raise RendererDisabledError()
        executable = locate_binary(config.binary)
        if executable is None:
            raise BinaryNotFoundError(config.binary)
        return executable

    def build_command(
        self,
        config: RendererConfig,
        extra_options: Any = (),
        input_path: str | None = None,
        *,
        executable: str | None = None,
    ) -> list[str]:
        """Build argv: binary, base options, extra options, input path, trailing args."""
        cmd: list[str] = [executable or config.binary]
        for flag, value in (*config.options, *normalize_options(extra_options)):
            cmd.extend(format_option(flag, value))
        if input_path is not None:
            cmd.append(input_path)
        cmd.extend(config.trailing_args)
        return cmd

    def build_env(self, config: RendererConfig) -> dict[str, str]:
        """Build the child environment: host environment ∪ ``config.env``."""
        env = dict(os.environ) if self._inherit_env else {}
        env.update(config.env)
        return env

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def render(
        self,
        config: RendererConfig,
        input: bytes,
        extra_options: Sequence[OptionPair] | Any = (),
    ) -> bytes:
        """Run the binary on *input* and return its stdout.

        Raises:
            RendererDisabledError: ``config.enabled`` is False (nothing spawned)
            BinaryNotFoundError: binary missing / not executable (nothing spawned)
            RenderTimeoutError: child outlived ``config.timeout`` and was killed
            NonZeroExitError: child exited with a non-zero status
            RenderIOError: spawning or stream/temp-file I/O failed
        """
        executable = self.check_binary(config)

        with self._input_file(config, input) as input_path:
            invocation = Invocation(
                argv=self.build_command(config, extra_options, input_path, executable=executable),
            )
            stdin_data = input if input_path is None else None
            return self._run(invocation, config, stdin_data)

    def render_to_file(
        self,
        config: RendererConfig,
        input: bytes,
        output_path: str | Path,
        extra_options: Sequence[OptionPair] | Any = (),
        *,
        overwrite: bool = False,
    ) -> Path:
        """Render and write stdout to *output_path*.

        Raises:
            OutputExistsError: *output_path* exists and *overwrite* is False
        """
        path = Path(output_path)
        if path.exists() and not overwrite:
            raise OutputExistsError(str(path))

        data = self.render(config, input, extra_options)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb" if overwrite else "xb") as handle:
                handle.write(data)
        except FileExistsError as exc:
            # Created by someone else while the binary was running
            raise OutputExistsError(str(path)) from exc
        except OSError as exc:
            raise RenderIOError(
                f"Cannot write output file {path}: {exc}",
                context={"path": str(path)},
                cause=exc,
            ) from exc
        return path

    async def render_async(
        self,
        config: RendererConfig,
        input: bytes,
        extra_options: Sequence[OptionPair] | Any = (),
    ) -> bytes:
        """Same contract as :meth:`render`, on ``asyncio.subprocess``."""
        executable = self.check_binary(config)

        with self._input_file(config, input) as input_path:
            invocation = Invocation(
                argv=self.build_command(config, extra_options, input_path, executable=executable),
            )
            stdin_data = input if input_path is None else None
            return await self._run_async(invocation, config, stdin_data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _input_file(self, config: RendererConfig, data: bytes) -> Iterator[str | None]:
        """Yield a temp file path holding *data* in file mode, else None."""
        if config.input_mode == "stdin":
            yield None
            return

        try:
            fd, name = tempfile.mkstemp(prefix="rendershim-", suffix=config.input_suffix)
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
        except OSError as exc:
            raise RenderIOError(f"Cannot write temp input file: {exc}", cause=exc) from exc

        try:
            yield name
        finally:
            Path(name).unlink(missing_ok=True)

    def _run(
        self,
        invocation: Invocation,
        config: RendererConfig,
        stdin_data: bytes | None,
    ) -> bytes:
        log = logger.bind(invocation_id=invocation.invocation_id, binary=invocation.argv[0])

        try:
            process = subprocess.Popen(
                invocation.argv,
                stdin=subprocess.PIPE if stdin_data is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self.build_env(config),
            )
        except OSError as exc:
            invocation.transition(InvocationState.FAILED)
            log.error("invocation_failed", error=str(exc))
            raise RenderIOError(
                f"Failed to start {invocation.argv[0]}: {exc}",
                context={"binary": invocation.argv[0]},
                cause=exc,
            ) from exc

        invocation.pid = process.pid
        invocation.transition(InvocationState.RUNNING)
        log.debug("invocation_started", pid=process.pid, argv=invocation.argv, timeout=config.timeout)

        try:
            stdout, stderr = process.communicate(input=stdin_data, timeout=config.timeout)
        except subprocess.TimeoutExpired as exc:
            returncode = self._terminate(process)
            raise self._timed_out(invocation, config.timeout, returncode, log) from exc
        except OSError as exc:
            self._terminate(process)
            invocation.exit_code = process.returncode
            invocation.transition(InvocationState.FAILED)
            log.error("invocation_failed", pid=process.pid, error=str(exc))
            raise RenderIOError(
                f"I/O error talking to {invocation.argv[0]}: {exc}",
                context={"binary": invocation.argv[0], "pid": process.pid},
                cause=exc,
            ) from exc
        finally:
            if process.poll() is None:
                self._terminate(process)

        return self._finish(invocation, process.returncode, stdout, stderr, log)

    async def _run_async(
        self,
        invocation: Invocation,
        config: RendererConfig,
        stdin_data: bytes | None,
    ) -> bytes:
        log = logger.bind(invocation_id=invocation.invocation_id, binary=invocation.argv[0])

        try:
            process = await asyncio.create_subprocess_exec(
                *invocation.argv,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.build_env(config),
            )
        except OSError as exc:
            invocation.transition(InvocationState.FAILED)
            log.error("invocation_failed", error=str(exc))
            raise RenderIOError(
                f"Failed to start {invocation.argv[0]}: {exc}",
                context={"binary": invocation.argv[0]},
                cause=exc,
            ) from exc

        invocation.pid = process.pid
        invocation.transition(InvocationState.RUNNING)
        log.debug("invocation_started", pid=process.pid, argv=invocation.argv, timeout=config.timeout)

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin_data),
                timeout=config.timeout,
            )
        except TimeoutError as exc:
            returncode = await self._terminate_async(process)
            raise self._timed_out(invocation, config.timeout, returncode, log) from exc
        except OSError as exc:
            await self._terminate_async(process)
            invocation.exit_code = process.returncode
            invocation.transition(InvocationState.FAILED)
            log.error("invocation_failed", pid=process.pid, error=str(exc))
            raise RenderIOError(
                f"I/O error talking to {invocation.argv[0]}: {exc}",
                context={"binary": invocation.argv[0], "pid": process.pid},
                cause=exc,
            ) from exc
        finally:
            if process.returncode is None:
                await self._terminate_async(process)

        return self._finish(invocation, process.returncode, stdout, stderr, log)

    def _finish(
        self,
        invocation: Invocation,
        returncode: int | None,
        stdout: bytes,
        stderr: bytes,
        log: Any,
    ) -> bytes:
        invocation.exit_code = returncode
        duration_ms = round(invocation.elapsed * 1000, 1)

        if returncode == 0:
            invocation.transition(InvocationState.SUCCEEDED)
            log.info(
                "invocation_succeeded",
                pid=invocation.pid,
                exit_code=0,
                duration_ms=duration_ms,
                output_bytes=len(stdout),
            )
            return stdout

        invocation.transition(InvocationState.FAILED)
        stderr_text = (stderr or b"").decode("utf-8", errors="replace")
        log.warning(
            "invocation_failed",
            pid=invocation.pid,
            exit_code=returncode,
            duration_ms=duration_ms,
            stderr=stderr_text[-1000:],
        )
        return_code = returncode if returncode is not None else -1
        raise NonZeroExitError(return_code, stderr_text).with_context(
            binary=invocation.argv[0],
            invocation_id=invocation.invocation_id,
        )

    def _timed_out(
        self,
        invocation: Invocation,
        timeout: float | None,
        returncode: int | None,
        log: Any,
    ) -> RenderTimeoutError:
        invocation.exit_code = returncode
        elapsed = invocation.elapsed
        invocation.transition(InvocationState.TIMED_OUT)
        log.warning(
            "invocation_timed_out",
            pid=invocation.pid,
            timeout=timeout,
            exit_code=returncode,
            duration_ms=round(elapsed * 1000, 1),
        )
        return RenderTimeoutError(
            timeout or 0.0,
            pid=invocation.pid,
            elapsed=elapsed,
            returncode=returncode,
        )

    def _terminate(self, process: subprocess.Popen) -> int | None:
        """SIGTERM, wait ``kill_timeout``, SIGKILL; always reaps the child."""
        try:
            process.terminate()
            try:
                process.wait(timeout=self._kill_timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
        except ProcessLookupError:
            pass  # already gone

        # Drain and close the pipes; a grandchild may still hold them open.
        try:
            process.communicate(timeout=self._kill_timeout)
        except (subprocess.TimeoutExpired, ValueError, OSError):
            for stream in (process.stdin, process.stdout, process.stderr):
                if stream is not None:
                    stream.close()
        return process.returncode

    async def _terminate_async(self, process: asyncio.subprocess.Process) -> int | None:
        """Async counterpart of :meth:`_terminate`."""
        try:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self._kill_timeout)
            except TimeoutError:
                process.kill()
                await process.wait()
        except ProcessLookupError:
            pass  # already gone
        return process.returncode


__all__ = [
    "Invocation",
    "InvocationState",
    "ProcessInvocationShim",
    "format_option",
    "locate_binary",
]
