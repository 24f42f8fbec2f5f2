"""Run orchestration: confirmation, partitioning, unit lifecycle, and stop."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadburst._internal.config import MAX_TOTAL_REQUESTS, clamp_config
from loadburst._internal.errors import AlreadyRunningError
from loadburst._internal.logging import get_logger
from loadburst.engine.partitioner import partition
from loadburst.engine.unit import run_load_unit
from loadburst.metrics.aggregator import ResultAggregator
from loadburst.metrics.export import rows_to_csv
from loadburst.metrics.models import Summary

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadburst._internal.config import TestConfig
    from loadburst.engine.partitioner import Partition
    from loadburst.engine.protocol import DoneEvent, ResultSink, UnitEvent
    from loadburst.metrics.models import ResultRow

logger = get_logger("engine.orchestrator")


class RunState(Enum):
    """State machine for the orchestrator.

    IDLE -> RUNNING -> STOPPED. A new run may start from IDLE or STOPPED.
    """

    IDLE = auto()
    RUNNING = auto()
    STOPPED = auto()


@dataclass(frozen=True)
class RunPlan:
    """What a run will do, shown to the operator before dispatch.

    Attributes:
        config: The clamped run configuration.
        partition: Per-unit assignments and rate figures.
    """

    config: TestConfig
    partition: Partition

    @property
    def estimated_aggregate_rps(self) -> int:
        """Return the aggregate rate the per-unit floors actually produce."""
        return self.partition.estimated_aggregate_rps


class _RunScopedSink:
    """Forwards one run's events to the operator sink while that run is current.

    Units of a stopped run finish their in-flight request even after a new run
    has started; their rows and done events are dropped here.
    """

    def __init__(self, sink: ResultSink, is_current: Callable[[], bool]) -> None:
        self._sink = sink
        self._is_current = is_current

    def on_row(self, row: ResultRow, summary: Summary) -> None:
        if self._is_current():
            self._sink.on_row(row, summary)

    def on_done(self, event: DoneEvent) -> None:
        if self._is_current():
            self._sink.on_done(event)


@dataclass
class _Run:
    """Per-run resources. Nothing here is shared between runs."""

    plan: RunPlan
    aggregator: ResultAggregator
    events: asyncio.Queue[UnitEvent]
    cancel: asyncio.Event
    unit_tasks: list[asyncio.Task[int]] = field(default_factory=list)
    consumer: asyncio.Task[None] | None = None
    units_remaining: int = 0


def _summary_extra(run: _Run) -> dict[str, object]:
    summary = run.aggregator.summary
    return {"url": run.plan.config.url, "sent": summary.sent, "errors": summary.errors}


class Orchestrator:
    """Starts and stops runs.

    ``start`` must be called from a running event loop. Each run gets its
    own event queue, cancellation event, and aggregator, so stragglers from
    a stopped run never affect the next one.
    """

    def __init__(
        self,
        confirm: Callable[[RunPlan], bool],
        *,
        sink: ResultSink | None = None,
        request_timeout: float | None = None,
        max_total_requests: int = MAX_TOTAL_REQUESTS,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            confirm: Asked with the plan before any request is sent. The
                run is dispatched only if it returns True.
            sink: Optional live consumer of rows and done events.
            request_timeout: Optional per-request timeout in seconds.
            max_total_requests: Cumulative row count that forces a stop.
        """
        self._confirm = confirm
        self._sink = sink
        self._request_timeout = request_timeout
        self._max_total_requests = max_total_requests
        self._state = RunState.IDLE
        self._run: _Run | None = None

    @property
    def state(self) -> RunState:
        """Return the current run state."""
        return self._state

    @property
    def plan(self) -> RunPlan | None:
        """Return the plan of the current or last run."""
        return self._run.plan if self._run is not None else None

    @property
    def rows(self) -> list[ResultRow]:
        """Return the current run's buffered rows, most recent first."""
        return self._run.aggregator.rows if self._run is not None else []

    @property
    def summary(self) -> Summary:
        """Return the current run's cumulative counters."""
        return self._run.aggregator.summary if self._run is not None else Summary()

    def export_csv(self) -> str:
        """Return the current run's buffered rows as CSV text."""
        if self._run is None:
            return rows_to_csv([])
        return self._run.aggregator.export_csv()

    def start(self, config: TestConfig) -> RunPlan | None:
        """Confirm and dispatch a new run.

        The configuration is clamped again here, so raw values are never
        trusted even if the caller skipped ``clamp_config``.

        Args:
            config: Requested run configuration.

        Returns:
            The dispatched plan, or None if the operator declined.

        Raises:
            AlreadyRunningError: If a run is already in progress.
            RuntimeError: If no event loop is running.
        """
        asyncio.get_running_loop()

        if self._state is RunState.RUNNING:
            msg = "A run is already in progress"
            raise AlreadyRunningError(msg)

        config = clamp_config(
            config.url, config.concurrency, config.total_requests, config.target_rps
        )
        plan = RunPlan(
            config=config,
            partition=partition(config.total_requests, config.concurrency, config.target_rps),
        )

        if not self._confirm(plan):
            logger.info("Run against %s declined by operator", config.url)
            return None

        events: asyncio.Queue[UnitEvent] = asyncio.Queue()
        # Callbacks are bound to this run so a stale run cannot touch a newer one.
        sink = (
            _RunScopedSink(self._sink, lambda: run is self._run)
            if self._sink is not None
            else None
        )
        aggregator = ResultAggregator(
            on_capacity=lambda: self._stop_run(run),
            on_done=lambda _event: self._on_unit_done(run),
            sink=sink,
            max_total_requests=self._max_total_requests,
        )
        run = _Run(
            plan=plan,
            aggregator=aggregator,
            events=events,
            cancel=asyncio.Event(),
            units_remaining=len(plan.partition.assignments),
        )

        self._run = run
        self._state = RunState.RUNNING

        logger.info(
            "Starting run: url=%s, units=%d, requests=%d, target_rps=%d, estimated_rps=%d",
            config.url,
            config.concurrency,
            config.total_requests,
            config.target_rps,
            plan.estimated_aggregate_rps,
            extra={"url": config.url},
        )

        run.consumer = asyncio.create_task(
            run.aggregator.consume(events, len(plan.partition.assignments)),
            name="loadburst-aggregator",
        )
        for assignment in plan.partition.assignments:
            run.unit_tasks.append(
                asyncio.create_task(
                    run_load_unit(
                        assignment,
                        config.url,
                        events,
                        run.cancel,
                        timeout=self._request_timeout,
                    ),
                    name=f"loadburst-unit-{assignment.unit_id}",
                )
            )
        return plan

    def stop(self) -> None:
        """Signal every unit of the current run to stop.

        Returns immediately; units finish their in-flight request first.
        Calling it when no run is active does nothing.
        """
        if self._run is not None:
            self._stop_run(self._run)

    async def wait(self) -> None:
        """Wait for the current run to drain.

        Returns once every unit has exited and the aggregator has applied
        all of their events. ``stop`` never calls this.
        """
        run = self._run
        if run is None:
            return
        await asyncio.gather(*run.unit_tasks)
        if run.consumer is not None:
            await run.consumer

    def _stop_run(self, run: _Run) -> None:
        if run is not self._run or self._state is not RunState.RUNNING:
            return
        run.cancel.set()
        self._state = RunState.STOPPED
        summary = run.aggregator.summary
        logger.info(
            "Stop requested: sent=%d, errors=%d",
            summary.sent,
            summary.errors,
            extra=_summary_extra(run),
        )

    def _on_unit_done(self, run: _Run) -> None:
        run.units_remaining -= 1
        if run.units_remaining > 0 or run is not self._run:
            return
        if self._state is RunState.RUNNING:
            self._state = RunState.STOPPED
            summary = run.aggregator.summary
            logger.info(
                "Run complete: sent=%d, errors=%d, error_rate=%.2f%%",
                summary.sent,
                summary.errors,
                summary.error_rate * 100,
                extra=_summary_extra(run),
            )
