"""
CLI: ``rendershim render`` and ``rendershim check``.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from rendershim.cli.utils import console, err_console, fail, load_settings
from rendershim.config.models import OptionPair
from rendershim.errors import RenderError, RenderIOError
from rendershim.service import RenderService


def parse_option(raw: str) -> OptionPair:
    """``page-size=A4`` → ``("page-size", "A4")``; ``grayscale`` → ``("grayscale", None)``."""
    flag, sep, value = raw.partition("=")
    flag = flag.strip()
    if not flag:
        raise typer.BadParameter(f"invalid option {raw!r}, expected FLAG or FLAG=VALUE")
    return (flag, value) if sep else (flag, None)


def render_command(
    document_type: str = typer.Argument(..., help="Document type: pdf or image"),
    input_path: str = typer.Option("-", "--input", "-i", help="Input file, '-' for stdin"),
    output_path: str = typer.Option("-", "--output", "-O", help="Output file, '-' for stdout"),
    option: list[str] | None = typer.Option(  # noqa: UP007
        None, "--option", "-o", help="Extra binary option FLAG[=VALUE], repeatable"
    ),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing output file"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="TOML config file"),
) -> None:
    """Render stdin or a file through the configured binary."""
    extra = [parse_option(raw) for raw in option or []]

    try:
        settings = load_settings(config_file)
        service = RenderService.from_settings(settings)

        if input_path == "-":
            data = typer.get_binary_stream("stdin").read()
        else:
            try:
                data = Path(input_path).read_bytes()
            except OSError as exc:
                raise RenderIOError(f"Cannot read input file {input_path}: {exc}", cause=exc) from exc

        if output_path == "-":
            rendered = service.render(document_type, data, extra)
            stdout = typer.get_binary_stream("stdout")
            stdout.write(rendered)
            stdout.flush()
        else:
            path = service.render_to_file(document_type, data, output_path, extra, overwrite=overwrite)
            err_console.print(f"[green]✓[/green] Wrote {path}")
    except RenderError as exc:
        raise fail(exc) from exc


def check_command(
    config_file: Path | None = typer.Option(None, "--config", "-c", help="TOML config file"),
) -> None:
    """Show whether each document type's binary is usable."""
    try:
        settings = load_settings(config_file)
        service = RenderService.from_settings(settings)
    except RenderError as exc:
        raise fail(exc) from exc

    statuses = service.check()

    table = Table()
    table.add_column("Type")
    table.add_column("Enabled")
    table.add_column("Binary", overflow="fold")
    table.add_column("Status")
    for doc_type, status in statuses.items():
        if not status.enabled:
            state = "[dim]disabled[/dim]"
        elif status.available:
            state = "[green]ok[/green]"
        else:
            state = "[red]missing[/red]"
        table.add_row(doc_type.value, "yes" if status.enabled else "no", status.binary, state)
    console.print(table)

    if not all(status.healthy for status in statuses.values()):
        raise typer.Exit(1)
