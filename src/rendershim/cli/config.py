"""
CLI: ``rendershim config`` — configuration inspection.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from rendershim.cli.utils import console, fail, load_settings
from rendershim.config.loader import load_config
from rendershim.errors import ConfigError

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="TOML config file"),
) -> None:
    """Show the effective renderer configuration."""
    try:
        settings = load_settings(config_file)
        config = load_config(settings)
    except ConfigError as exc:
        raise fail(exc) from exc

    if format == "json":
        console.print_json(config.model_dump_json())
        return

    if settings.config_file:
        console.print(f"[bold]Config File:[/bold] {settings.config_file}")
    console.print(f"[bold]Base Path:[/bold] {settings.base_path}")

    table = Table()
    table.add_column("Type")
    table.add_column("Enabled")
    table.add_column("Binary", overflow="fold")
    table.add_column("Timeout")
    table.add_column("Input")
    table.add_column("Options", overflow="fold")
    table.add_column("Env")
    for doc_type, renderer in config.items():
        options = " ".join(f"{flag}={value}" if value is not None else flag for flag, value in renderer.options)
        table.add_row(
            doc_type.value,
            "yes" if renderer.enabled else "no",
            renderer.binary,
            f"{renderer.timeout:g}s" if renderer.timeout is not None else "none",
            renderer.input_mode,
            options or "-",
            ", ".join(sorted(renderer.env)) or "-",
        )
    console.print(table)


@app.command("validate")
def validate_config(
    config_file: Path | None = typer.Option(None, "--config", "-c", help="TOML config file"),
) -> None:
    """Validate configuration without running anything."""
    try:
        settings = load_settings(config_file)
        load_config(settings)
    except ConfigError as exc:
        console.print("[red]Configuration Error:[/red] ", end="")
        console.print(exc.message, markup=False, highlight=False)
        raise typer.Exit(1) from exc

    console.print("[green]✓ Configuration is valid[/green]")
