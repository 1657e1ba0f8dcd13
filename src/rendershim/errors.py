"""
Structured error types for rendershim.

Every failure the shim can report is a :class:`RenderError` subclass that
carries an :class:`ErrorKind`, a human-readable message, structured context
for logging, and the chained underlying exception (if any).

Manifesto:
    - **Typed failures:** Callers branch on the exception class or ``kind``,
      never on message text
    - **No retries:** A single invocation attempt per call; retry policy
      belongs to the caller
    - **Nothing swallowed:** OS-level errors are wrapped and chained, not
      hidden

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                      RenderError                          │
        │               (kind, message, context, cause)             │
        ├──────────────────────────────────────────────────────────┤
        │  UnknownDocumentTypeError   UNKNOWN_DOCUMENT_TYPE         │
        │  RendererDisabledError      DISABLED                      │
        │  BinaryNotFoundError        BINARY_NOT_FOUND              │
        │  RenderTimeoutError         TIMEOUT   (also TimeoutError) │
        │  NonZeroExitError           NON_ZERO_EXIT                 │
        │  RenderIOError              IO                            │
        │      └── OutputExistsError                                │
        │  ConfigError                CONFIG                        │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> try:
    ...     shim.render(config, b"<html></html>")
    ... except NonZeroExitError as e:
    ...     log.error("render_failed", code=e.code, stderr=e.stderr)

Tags:
    error-handling, exception-hierarchy, rendershim

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classification of every failure the shim reports."""

    UNKNOWN_DOCUMENT_TYPE = "UNKNOWN_DOCUMENT_TYPE"
    DISABLED = "DISABLED"
    BINARY_NOT_FOUND = "BINARY_NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    NON_ZERO_EXIT = "NON_ZERO_EXIT"
    IO = "IO"
    CONFIG = "CONFIG"


class RenderError(Exception):
    """
    Base exception for all rendershim errors.

    Subclasses set ``default_kind``; instances may override it. Extra
    keyword context is stored in ``context`` and rendered by ``to_dict()``.
    """

    default_kind: ErrorKind = ErrorKind.IO

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RenderError:
        """
        Add context to this error (fluent API).

        Usage:
            raise BinaryNotFoundError(path).with_context(document_type="pdf")
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, kind={self.kind.value})"


# =============================================================================
# RESOLUTION / PRE-FLIGHT ERRORS (raised before any process is spawned)
# =============================================================================


class UnknownDocumentTypeError(RenderError):
    """The document type is neither ``pdf`` nor ``image``."""

    default_kind = ErrorKind.UNKNOWN_DOCUMENT_TYPE

    def __init__(self, document_type: Any):
        self.document_type = document_type
        super().__init__(
            f"Unknown document type: {document_type!r} (expected 'pdf' or 'image')",
            context={"document_type": str(document_type)},
        )


class RendererDisabledError(RenderError):
    """The renderer for this document type is switched off in configuration."""

    default_kind = ErrorKind.DISABLED

    def __init__(self, document_type: str | None = None):
        self.document_type = document_type
        label = f"'{document_type}' renderer" if document_type else "Renderer"
        super().__init__(
            f"{label} is disabled",
            context={"document_type": document_type} if document_type else None,
        )


class BinaryNotFoundError(RenderError):
    """The configured binary does not exist or is not executable."""

    default_kind = ErrorKind.BINARY_NOT_FOUND

    def __init__(self, binary: str, reason: str = "does not exist or is not executable"):
        self.binary = binary
        super().__init__(f"Binary {binary!r} {reason}", context={"binary": binary})


# =============================================================================
# INVOCATION ERRORS (raised after the process was spawned)
# =============================================================================


class RenderTimeoutError(RenderError, TimeoutError):
    """
    The binary did not exit within the configured timeout.

    By the time this is raised the child has been terminated and reaped;
    ``returncode`` holds the status it was reaped with.
    """

    default_kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        timeout: float,
        *,
        pid: int | None = None,
        elapsed: float | None = None,
        returncode: int | None = None,
    ):
        self.timeout = timeout
        self.pid = pid
        self.elapsed = elapsed
        self.returncode = returncode
        msg = f"Render timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"
        super().__init__(msg, context={"timeout": timeout, "pid": pid})


class NonZeroExitError(RenderError):
    """The binary exited with a non-zero status."""

    default_kind = ErrorKind.NON_ZERO_EXIT

    def __init__(self, code: int, stderr: str = ""):
        self.code = code
        self.stderr = stderr
        msg = f"Binary exited with code {code}"
        if stderr:
            msg += f": {stderr.strip()[:500]}"
        super().__init__(msg, context={"exit_code": code})


class RenderIOError(RenderError):
    """Reading or writing a stream, temp file or output file failed."""

    default_kind = ErrorKind.IO


class OutputExistsError(RenderIOError):
    """Refusing to overwrite an existing output file."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Output file already exists: {path} (pass overwrite=True to replace it)",
            context={"path": path},
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(RenderError):
    """Configuration is missing, unreadable or invalid."""

    default_kind = ErrorKind.CONFIG


__all__ = [
    "ErrorKind",
    "RenderError",
    "UnknownDocumentTypeError",
    "RendererDisabledError",
    "BinaryNotFoundError",
    "RenderTimeoutError",
    "NonZeroExitError",
    "RenderIOError",
    "OutputExistsError",
    "ConfigError",
]
