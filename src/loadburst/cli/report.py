"""``loadburst report``: summarize a CSV export written by ``run --csv``."""

from __future__ import annotations

from collections import Counter
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from loadburst.metrics.export import read_rows_csv

console = Console(stderr=True)


def report_cmd(
    csv_file: Path = typer.Argument(
        ...,
        help="CSV file produced by ``loadburst run --csv``.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Print request, error, and status counts for a saved export."""
    try:
        rows = read_rows_csv(csv_file.read_text(encoding="utf-8"))
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    errors = sum(1 for r in rows if r.error)
    statuses = Counter(
        "transport error" if r.status_code is None else str(r.status_code) for r in rows
    )

    table = Table(title=csv_file.name, show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Rows", str(len(rows)))
    table.add_row("Errors", str(errors))
    rate = errors / len(rows) * 100 if rows else 0.0
    table.add_row("Error Rate", f"{rate:.2f}%")
    table.add_row("Units", str(len({r.unit_id for r in rows})))
    console.print(table)

    if statuses:
        status_table = Table(title="By Status", show_header=True, header_style="bold cyan")
        status_table.add_column("Status")
        status_table.add_column("Count", justify="right")
        for status, count in statuses.most_common():
            status_table.add_row(status, str(count))
        console.print(status_table)
