"""
Root Typer application for the rendershim CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="rendershim",
    help="rendershim — run HTML → PDF / image rendering binaries.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from rendershim import __version__

        typer.echo(f"rendershim {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """rendershim CLI — render documents and inspect renderer configuration."""


# ── Sub-command registration ─────────────────────────────────────────────

from rendershim.cli.config import app as config_app  # noqa: E402
from rendershim.cli.render import check_command, render_command  # noqa: E402

app.command("render")(render_command)
app.command("check")(check_command)
app.add_typer(config_app, name="config", help="Configuration inspection.")
