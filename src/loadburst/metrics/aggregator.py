"""Single-consumer aggregation of a run's row and done events.

Load units never touch the buffer or the counters. They put events on the
run's ``asyncio.Queue``, and ``ResultAggregator.consume`` applies them one
at a time, which keeps eviction and counting consistent without a lock.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loadburst._internal.config import MAX_TOTAL_REQUESTS, ROW_BUFFER_SIZE
from loadburst._internal.logging import get_logger
from loadburst.engine.protocol import DoneEvent
from loadburst.metrics.export import rows_to_csv
from loadburst.metrics.models import ResultRow, Summary
from loadburst.metrics.store import RowBuffer

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Callable

    from loadburst.engine.protocol import ResultSink, UnitEvent

logger = get_logger("metrics.aggregator")


class ResultAggregator:
    """Owns the bounded row buffer and the cumulative ``Summary`` of one run.

    When ``summary.sent`` reaches ``max_total_requests`` the aggregator
    seals itself and calls ``on_capacity`` exactly once. A sealed
    aggregator rejects every later row.

    Attributes:
        max_total_requests: Cumulative row count that forces a stop.
    """

    def __init__(
        self,
        *,
        on_capacity: Callable[[], None] | None = None,
        on_done: Callable[[DoneEvent], None] | None = None,
        sink: ResultSink | None = None,
        max_total_requests: int = MAX_TOTAL_REQUESTS,
        buffer_size: int = ROW_BUFFER_SIZE,
    ) -> None:
        """Initialize the aggregator.

        Args:
            on_capacity: Invoked once when the capacity stop triggers.
            on_done: Invoked with every unit's ``DoneEvent``.
            sink: Optional live consumer of rows and done events.
            max_total_requests: Cumulative cap; defaults to the hard cap.
            buffer_size: Rows kept in memory.
        """
        self.max_total_requests = max_total_requests
        self._on_capacity = on_capacity
        self._on_done = on_done
        self._sink = sink
        self._buffer = RowBuffer(buffer_size)
        self._summary = Summary()
        self._sealed = False

    @property
    def summary(self) -> Summary:
        """Return a copy of the cumulative counters."""
        return Summary(sent=self._summary.sent, errors=self._summary.errors)

    @property
    def rows(self) -> list[ResultRow]:
        """Return the buffered rows, most recent first."""
        return self._buffer.newest_first()

    @property
    def sealed(self) -> bool:
        """Return True once the capacity stop has triggered."""
        return self._sealed

    def on_row(self, row: ResultRow) -> bool:
        """Apply one row to the buffer and counters.

        Args:
            row: Outcome reported by a load unit.

        Returns:
            False if the row was rejected because capacity was reached.
        """
        if self._sealed:
            logger.debug("Dropping row from unit %d: capacity reached", row.unit_id)
            return False

        self._buffer.push(row)
        self._summary.sent += 1
        if row.error:
            self._summary.errors += 1

        if self._sink is not None:
            self._sink.on_row(row, self.summary)

        if self._summary.sent >= self.max_total_requests:
            self._sealed = True
            logger.warning(
                "Reached %d total requests, stopping the run",
                self.max_total_requests,
            )
            if self._on_capacity is not None:
                self._on_capacity()
        return True

    def on_done(self, event: DoneEvent) -> None:
        """Forward a unit's completion. Buffer and counters are unaffected."""
        logger.debug(
            "Unit %d done after %d requests",
            event.unit_id,
            event.sent_count,
            extra={"unit_id": event.unit_id, "sent": event.sent_count},
        )
        if self._sink is not None:
            self._sink.on_done(event)
        if self._on_done is not None:
            self._on_done(event)

    def apply(self, event: UnitEvent) -> None:
        """Dispatch a queued event to ``on_row`` or ``on_done``."""
        if isinstance(event, DoneEvent):
            self.on_done(event)
        else:
            self.on_row(event)

    async def consume(self, events: asyncio.Queue[UnitEvent], unit_count: int) -> None:
        """Drain ``events`` until every unit has reported done.

        This is the run's only writer of buffer and counters.

        Args:
            events: The run's event queue.
            unit_count: Number of ``DoneEvent`` messages to wait for.
        """
        remaining = unit_count
        while remaining > 0:
            event = await events.get()
            try:
                self.apply(event)
            finally:
                events.task_done()
            if isinstance(event, DoneEvent):
                remaining -= 1
        logger.debug("Aggregator drained: sent=%d", self._summary.sent)

    def export_csv(self) -> str:
        """Serialize the buffered rows, oldest first, as CSV text."""
        return rows_to_csv(self._buffer.oldest_first())
