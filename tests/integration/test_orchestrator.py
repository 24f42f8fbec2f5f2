"""Integration tests for the run orchestrator."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import pytest

from loadburst._internal.config import TestConfig as RunConfig
from loadburst._internal.config import clamp_config
from loadburst._internal.errors import AlreadyRunningError
from loadburst.engine.orchestrator import Orchestrator, RunPlan, RunState
from loadburst.engine.protocol import DoneEvent
from loadburst.metrics.export import read_rows_csv
from loadburst.metrics.models import ResultRow, Summary

if TYPE_CHECKING:
    from collections.abc import Iterator


def _approve(plan: RunPlan) -> bool:
    return True


class _RecordingSink:
    def __init__(self) -> None:
        self.rows: list[ResultRow] = []
        self.summaries: list[Summary] = []
        self.done: list[DoneEvent] = []

    def on_row(self, row: ResultRow, summary: Summary) -> None:
        self.rows.append(row)
        self.summaries.append(summary)

    def on_done(self, event: DoneEvent) -> None:
        self.done.append(event)


@pytest.mark.timeout(30)
class TestRunLifecycle:
    async def test_run_to_completion(self, target_server: str):
        sink = _RecordingSink()
        orchestrator = Orchestrator(confirm=_approve, sink=sink)
        assert orchestrator.state is RunState.IDLE

        plan = orchestrator.start(clamp_config(f"{target_server}/ok", 3, 10, 1000))

        assert plan is not None
        assert orchestrator.state is RunState.RUNNING
        assert [a.request_count for a in plan.partition.assignments] == [4, 3, 3]

        await orchestrator.wait()

        assert orchestrator.state is RunState.STOPPED
        assert orchestrator.summary == Summary(sent=10, errors=0)
        assert len(orchestrator.rows) == 10
        assert len(sink.rows) == 10
        assert sorted(e.sent_count for e in sink.done) == [3, 3, 4]

    async def test_rows_from_each_unit_are_in_request_order(self, target_server: str):
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.start(clamp_config(f"{target_server}/ok", 2, 8, 1000))
        await orchestrator.wait()

        for unit_id in (1, 2):
            stamps = [r.timestamp for r in reversed(orchestrator.rows) if r.unit_id == unit_id]
            assert len(stamps) == 4
            assert stamps == sorted(stamps)

    async def test_failing_target_counts_errors(self, refused_url: str):
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.start(clamp_config(refused_url, 2, 6, 1000))
        await orchestrator.wait()

        assert orchestrator.summary == Summary(sent=6, errors=6)
        assert all(r.status_code is None for r in orchestrator.rows)

    async def test_export_csv_round_trips(self, target_server: str):
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.start(clamp_config(f"{target_server}/quote", 2, 5, 1000))
        await orchestrator.wait()

        parsed = read_rows_csv(orchestrator.export_csv())
        assert parsed == list(reversed(orchestrator.rows))
        assert parsed[0].snippet == 'say "hi", then, "bye"'

    async def test_export_csv_before_any_run(self):
        orchestrator = Orchestrator(confirm=_approve)
        assert orchestrator.export_csv() == "timestamp,unitId,statusCode,timeMs,snippet,error"
        assert orchestrator.rows == []
        assert orchestrator.summary == Summary()


@pytest.mark.timeout(30)
class TestConfirmationGate:
    async def test_declined_run_dispatches_nothing(self, target_server: str):
        seen: list[RunPlan] = []

        def decline(plan: RunPlan) -> bool:
            seen.append(plan)
            return False

        orchestrator = Orchestrator(confirm=decline)
        result = orchestrator.start(clamp_config(f"{target_server}/ok", 2, 10, 100))

        assert result is None
        assert len(seen) == 1
        assert orchestrator.state is RunState.IDLE
        assert orchestrator.plan is None
        assert orchestrator.summary == Summary()

    async def test_plan_is_clamped_before_confirmation(self, target_server: str):
        seen: list[RunPlan] = []

        def decline(plan: RunPlan) -> bool:
            seen.append(plan)
            return False

        orchestrator = Orchestrator(confirm=decline)
        orchestrator.start(RunConfig(f"{target_server}/ok", 10_000, 0, 5_000))

        config = seen[0].config
        assert (config.concurrency, config.total_requests, config.target_rps) == (500, 1, 1000)
        assert seen[0].partition.per_unit_rps == 2
        assert seen[0].estimated_aggregate_rps == 1000


@pytest.mark.timeout(30)
class TestStop:
    async def test_stop_cancels_remaining_work(self, target_server: str):
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.start(clamp_config(f"{target_server}/ok", 2, 100, 10))

        await asyncio.sleep(0.3)
        orchestrator.stop()
        assert orchestrator.state is RunState.STOPPED

        await asyncio.wait_for(orchestrator.wait(), timeout=5.0)
        assert 0 < orchestrator.summary.sent < 100

    async def test_stop_is_idempotent(self, target_server: str):
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.start(clamp_config(f"{target_server}/ok", 2, 100, 10))
        await asyncio.sleep(0.1)

        orchestrator.stop()
        first = (orchestrator.state, orchestrator.plan)
        orchestrator.stop()
        assert (orchestrator.state, orchestrator.plan) == first

        await orchestrator.wait()

    async def test_stop_without_run_is_noop(self):
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.stop()
        assert orchestrator.state is RunState.IDLE
        await orchestrator.wait()

    async def test_stop_does_not_wait_for_in_flight_requests(self, target_server: str):
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.start(clamp_config(f"{target_server}/delay?delay=0.5", 2, 4, 1000))
        await asyncio.sleep(0.1)

        orchestrator.stop()
        # In-flight requests have not finished yet.
        assert orchestrator.summary.sent == 0

        await orchestrator.wait()
        assert orchestrator.summary.sent == 2


@pytest.mark.timeout(30)
class TestAlreadyRunning:
    async def test_second_start_raises_and_keeps_first_run(self, target_server: str):
        orchestrator = Orchestrator(confirm=_approve)
        first = orchestrator.start(clamp_config(f"{target_server}/delay?delay=0.2", 1, 2, 1000))

        with pytest.raises(AlreadyRunningError):
            orchestrator.start(clamp_config(f"{target_server}/ok", 5, 50, 100))

        assert orchestrator.plan is first
        await orchestrator.wait()
        assert orchestrator.summary.sent == 2

    async def test_new_run_after_stop(self, target_server: str):
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.start(clamp_config(f"{target_server}/ok", 2, 100, 10))
        await asyncio.sleep(0.1)
        orchestrator.stop()

        # The previous run's units may still be finishing.
        plan = orchestrator.start(clamp_config(f"{target_server}/ok", 1, 3, 1000))
        assert plan is not None
        assert orchestrator.state is RunState.RUNNING

        await orchestrator.wait()
        assert orchestrator.summary == Summary(sent=3, errors=0)
        assert orchestrator.state is RunState.STOPPED

        # Let the stopped run's units exit before the loop closes.
        await asyncio.sleep(0.5)


@pytest.mark.timeout(30)
class TestCapacityStop:
    async def test_run_stops_at_total_cap(self, target_server: str):
        orchestrator = Orchestrator(confirm=_approve, max_total_requests=5)
        orchestrator.start(clamp_config(f"{target_server}/ok", 2, 20, 1000))

        await orchestrator.wait()

        assert orchestrator.state is RunState.STOPPED
        assert orchestrator.summary.sent == 5
        assert len(orchestrator.rows) == 5


@pytest.mark.timeout(30)
class TestRunIsolation:
    async def test_stopped_run_does_not_reach_sink_of_next_run(self, target_server: str):
        sink = _RecordingSink()
        orchestrator = Orchestrator(confirm=_approve, sink=sink)
        orchestrator.start(clamp_config(f"{target_server}/delay?delay=0.4", 3, 30, 1000))
        await asyncio.sleep(0.1)
        orchestrator.stop()

        orchestrator.start(clamp_config(f"{target_server}/ok", 1, 2, 1000))
        await orchestrator.wait()
        # Let the stopped run's in-flight requests land.
        await asyncio.sleep(0.8)

        assert orchestrator.summary.sent == 2
        assert sink.rows == list(reversed(orchestrator.rows))
        assert [s.sent for s in sink.summaries] == [1, 2]
        assert sink.done == [DoneEvent(unit_id=1, sent_count=2)]


class TestStartOutsideLoop:
    def test_start_without_running_loop_leaves_state_idle(self):
        seen: list[RunPlan] = []

        def confirm(plan: RunPlan) -> bool:
            seen.append(plan)
            return True

        orchestrator = Orchestrator(confirm=confirm)

        with pytest.raises(RuntimeError):
            orchestrator.start(clamp_config("http://127.0.0.1:1/", 1, 1, 1))

        assert orchestrator.state is RunState.IDLE
        assert orchestrator.plan is None
        assert seen == []


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.INFO)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def orchestrator_records() -> Iterator[list[logging.LogRecord]]:
    logger = logging.getLogger("loadburst.engine.orchestrator")
    handler = _ListHandler()
    saved_level = logger.level
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(saved_level)


@pytest.mark.timeout(30)
class TestRunLogging:
    async def test_lifecycle_records_carry_run_fields(
        self, target_server: str, orchestrator_records: list[logging.LogRecord]
    ):
        url = f"{target_server}/status?code=500"
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.start(clamp_config(url, 2, 4, 1000))
        await orchestrator.wait()

        start, complete = orchestrator_records
        assert start.getMessage().startswith("Starting run")
        assert start.url == url
        assert complete.getMessage().startswith("Run complete")
        assert (complete.url, complete.sent, complete.errors) == (url, 4, 4)

    async def test_stop_record_carries_counters(
        self, target_server: str, orchestrator_records: list[logging.LogRecord]
    ):
        orchestrator = Orchestrator(confirm=_approve)
        orchestrator.start(clamp_config(f"{target_server}/delay?delay=0.3", 1, 5, 1000))
        await asyncio.sleep(0.1)
        orchestrator.stop()
        await orchestrator.wait()

        stop = orchestrator_records[-1]
        assert stop.getMessage().startswith("Stop requested")
        assert (stop.sent, stop.errors) == (0, 0)
