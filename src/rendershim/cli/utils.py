"""
CLI utility helpers — consoles, settings and service construction.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from rendershim.config.settings import RenderShimSettings, get_settings
from rendershim.errors import (
    BinaryNotFoundError,
    ConfigError,
    NonZeroExitError,
    RenderError,
    RendererDisabledError,
    RenderTimeoutError,
    UnknownDocumentTypeError,
)
from rendershim.logging import configure_logging

console = Console()
err_console = Console(stderr=True)

# Same convention as coreutils `timeout`
EXIT_TIMEOUT = 124
EXIT_USAGE = 2


def load_settings(config_file: Path | None = None) -> RenderShimSettings:
    """Load settings, apply a ``--config`` override and configure logging."""
    settings = get_settings(_force_reload=True)
    if config_file is not None:
        settings = settings.model_copy(update={"config_file": config_file})
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format.lower() == "json",
    )
    return settings


def exit_code_for(error: RenderError) -> int:
    """Map a typed render error to a process exit code."""
    if isinstance(error, (UnknownDocumentTypeError, RendererDisabledError, BinaryNotFoundError, ConfigError)):
        return EXIT_USAGE
    if isinstance(error, RenderTimeoutError):
        return EXIT_TIMEOUT
    if isinstance(error, NonZeroExitError):
        return error.code if 0 < error.code < 256 else 1
    return 1


def fail(error: RenderError) -> typer.Exit:
    """Print *error* to stderr and return the matching ``typer.Exit``."""
    err_console.print(f"[bold red]Error[/bold red] ({error.kind.value}): ", end="")
    err_console.print(error.message, markup=False, highlight=False)
    return typer.Exit(code=exit_code_for(error))
