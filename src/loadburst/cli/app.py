"""Main Typer application, the entry point for the ``loadburst`` CLI."""

from __future__ import annotations

import typer

from loadburst import __version__
from loadburst.cli.report import report_cmd
from loadburst.cli.run import run_cmd

app = typer.Typer(
    name="loadburst",
    help="Fire controlled bursts of HTTP requests and watch the results.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a burst against a target URL.")(run_cmd)
app.command("report", help="Summarize a saved CSV export.")(report_cmd)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"loadburst {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """LoadBurst: controlled HTTP request bursts from the terminal."""
