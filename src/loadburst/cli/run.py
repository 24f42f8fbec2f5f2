"""``loadburst run``: confirm, fire a burst, and stream results live."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from loadburst._internal.config import MAX_REQS_PER_SEC, clamp_config, load_defaults
from loadburst._internal.errors import LoadBurstError
from loadburst._internal.logging import get_logger, setup_logging
from loadburst.engine.orchestrator import Orchestrator

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from loadburst._internal.config import TestConfig
    from loadburst.engine.orchestrator import RunPlan
    from loadburst.engine.protocol import DoneEvent
    from loadburst.metrics.models import ResultRow, Summary

console = Console(stderr=True)
logger = get_logger("cli.run")

# Rows shown in the live table.
_LIVE_ROWS = 12
_LIVE_SNIPPET = 60

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


# ---------------------------------------------------------------------------
# Result sink + live display
# ---------------------------------------------------------------------------


class _LiveSink:
    """Collects what the live table shows. Rendering happens on refresh."""

    def __init__(self) -> None:
        self.summary: Summary | None = None
        self.recent: list[ResultRow] = []
        self.units_done = 0

    def on_row(self, row: ResultRow, summary: Summary) -> None:
        self.summary = summary
        self.recent.insert(0, row)
        del self.recent[_LIVE_ROWS:]

    def on_done(self, event: DoneEvent) -> None:
        self.units_done += 1


def _status_cell(row: ResultRow) -> str:
    if not row.error:
        return str(row.status_code)
    if row.status_code is None:
        return "[red]ERR[/red]"
    return f"[red]ERR {row.status_code}[/red]"


def _make_live_view(sink: _LiveSink, plan: RunPlan) -> Group:
    """Build the live counters and most-recent-first row table.

    Args:
        sink: Sink holding the latest rows and counters.
        plan: The running plan, for planned totals.

    Returns:
        Renderable group for ``rich.live.Live``.
    """
    sent = sink.summary.sent if sink.summary else 0
    errors = sink.summary.errors if sink.summary else 0
    units = len(plan.partition.assignments)
    counters = (
        f"[bold]Sent:[/bold] {sent}/{plan.partition.total_requests}   "
        f"[bold]Errors:[/bold] {errors}   "
        f"[bold]Units done:[/bold] {sink.units_done}/{units}"
    )

    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Timestamp")
    table.add_column("Unit", justify="right")
    table.add_column("Status", justify="right")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Snippet", overflow="ellipsis", no_wrap=True)

    for row in sink.recent:
        snippet = " ".join(row.snippet.split())[:_LIVE_SNIPPET]
        table.add_row(
            row.timestamp,
            str(row.unit_id),
            _status_cell(row),
            str(row.time_ms),
            snippet,
        )

    return Group(counters, table)


def _print_summary(plan: RunPlan, summary: Summary, *, stopped_early: bool) -> None:
    """Print the final counters after the run ends.

    Args:
        plan: The plan that was executed.
        summary: Final cumulative counters.
        stopped_early: True if fewer requests were sent than planned.
    """
    title = "Run Stopped" if stopped_early else "Run Complete"
    table = Table(title=title, show_header=True, header_style="bold green", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Target", plan.config.url)
    table.add_row("Units", str(plan.config.concurrency))
    table.add_row("Planned Requests", str(plan.partition.total_requests))
    table.add_row("Estimated RPS", str(plan.estimated_aggregate_rps))
    table.add_row("Sent", str(summary.sent))
    table.add_row("Errors", str(summary.errors))
    table.add_row("Error Rate", f"{summary.error_rate * 100:.2f}%")

    console.print(table)


# ---------------------------------------------------------------------------
# Confirmation gate
# ---------------------------------------------------------------------------


def _confirm_plan(plan: RunPlan, *, assume_yes: bool) -> bool:
    """Show the plan and ask the operator to confirm authorization.

    Args:
        plan: The plan about to be dispatched.
        assume_yes: Skip the prompt (``--yes``).

    Returns:
        True if the run may proceed.
    """
    config = plan.config
    console.print(
        Panel(
            f"[bold]Target:[/bold]         {config.url}\n"
            f"[bold]Units:[/bold]          {config.concurrency}\n"
            f"[bold]Total requests:[/bold] {plan.partition.total_requests}\n"
            f"[bold]Target RPS:[/bold]     {config.target_rps} "
            f"(global cap {MAX_REQS_PER_SEC})\n"
            f"[bold]Estimated RPS:[/bold]  {plan.estimated_aggregate_rps} "
            f"({plan.partition.per_unit_rps}/unit, per-unit floors)",
            title="LoadBurst",
            border_style="cyan",
        )
    )
    if assume_yes:
        return True
    return typer.confirm(
        "Do you confirm you own / have permission to test this site?",
        default=False,
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def _run_async(coro: Coroutine[object, object, Orchestrator]) -> Orchestrator:
    """Run ``coro`` on uvloop when available, else on the default loop."""
    if sys.platform != "win32":
        try:
            import uvloop
        except ImportError:
            logger.debug("uvloop not available, using default asyncio event loop")
        else:
            return uvloop.run(coro)
    return asyncio.run(coro)


async def _execute(
    config: TestConfig,
    *,
    assume_yes: bool,
    request_timeout: float | None,
) -> Orchestrator:
    """Start the run, show it live, and wait for every unit to exit.

    Ctrl-C or SIGTERM stops the run; units finish their in-flight request first.
    """
    sink = _LiveSink()
    orchestrator = Orchestrator(
        confirm=lambda plan: _confirm_plan(plan, assume_yes=assume_yes),
        sink=sink,
        request_timeout=request_timeout,
    )
    plan = orchestrator.start(config)
    if plan is None:
        return orchestrator

    def _on_signal() -> None:
        logger.info("Signal received, stopping the run")
        orchestrator.stop()

    loop = asyncio.get_running_loop()
    # Signal handlers are unavailable on Windows and outside the main thread.
    for sig in _STOP_SIGNALS:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _on_signal)

    try:
        with Live(
            console=console,
            refresh_per_second=4,
            transient=True,
            get_renderable=lambda: _make_live_view(sink, plan),
        ):
            await orchestrator.wait()
    finally:
        for sig in _STOP_SIGNALS:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)

    return orchestrator


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    url: str | None = typer.Argument(
        None,
        help="Target URL (default: $LOADBURST_URL).",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        "-c",
        help="Concurrent load units (max 500, default: 10).",
    ),
    requests: int | None = typer.Option(
        None,
        "--requests",
        "-n",
        help="Total requests across all units (max 100000, default: 1000).",
    ),
    rps: int | None = typer.Option(
        None,
        "--rps",
        "-r",
        help="Target global requests per second (max 1000, default: 200).",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Confirm authorization without prompting.",
    ),
    csv_path: Path | None = typer.Option(
        None,
        "--csv",
        help="Write the buffered rows (last 2000) to this CSV file.",
    ),
    fail_on_error_rate: float | None = typer.Option(
        None,
        "--fail-on-error-rate",
        help="Exit non-zero if error rate exceeds this threshold (e.g., 0.05).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit logs as one JSON object per line.",
    ),
) -> None:
    """Confirm, run a burst against URL, and stream results live."""
    setup_logging(
        level=logging.DEBUG if verbose else logging.INFO,
        json_format=json_logs,
    )

    try:
        defaults = load_defaults()
        config = clamp_config(
            url or defaults.url,
            concurrency if concurrency is not None else defaults.concurrency,
            requests if requests is not None else defaults.total_requests,
            rps if rps is not None else defaults.target_rps,
        )
        orchestrator = _run_async(
            _execute(config, assume_yes=yes, request_timeout=defaults.request_timeout)
        )
    except LoadBurstError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    plan = orchestrator.plan
    if plan is None:
        console.print("[yellow]Run cancelled.[/yellow]")
        raise typer.Exit(code=1)

    summary = orchestrator.summary
    _print_summary(plan, summary, stopped_early=summary.sent < plan.partition.total_requests)

    if csv_path is not None:
        csv_path.write_text(orchestrator.export_csv(), encoding="utf-8")
        console.print(f"Wrote {len(orchestrator.rows)} rows to {csv_path}")

    if fail_on_error_rate is not None and summary.error_rate > fail_on_error_rate:
        console.print(
            f"[red]FAIL:[/red] Error rate {summary.error_rate * 100:.2f}% "
            f"exceeds threshold {fail_on_error_rate * 100:.2f}%"
        )
        raise typer.Exit(code=1)

    console.print("[green]Run finished.[/green]")
