"""Load unit: one task issuing its assigned requests back to back."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from loadburst._internal.logging import get_logger
from loadburst.engine.http_client import HttpClient
from loadburst.engine.pacer import next_wait_ms
from loadburst.engine.protocol import DoneEvent

if TYPE_CHECKING:
    from loadburst.engine.partitioner import WorkAssignment
    from loadburst.engine.protocol import UnitEvent

logger = get_logger("engine.unit")

# Yield to the event loop at least this often, even with no pacing wait due.
_YIELD_EVERY = 50


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


async def run_load_unit(
    assignment: WorkAssignment,
    url: str,
    events: asyncio.Queue[UnitEvent],
    cancel: asyncio.Event,
    *,
    timeout: float | None = None,
) -> int:
    """Issue ``assignment.request_count`` GET requests to ``url``.

    ``cancel`` is checked before each request only. A request already in
    flight when the run is stopped completes, and its row is still
    reported. One row is put on ``events`` per attempt and a ``DoneEvent``
    is always put last.

    Args:
        assignment: This unit's id, request count, and rate.
        url: Target URL.
        events: The run's event queue, drained by the aggregator.
        cancel: Shared cancellation signal for the run.
        timeout: Optional per-request timeout in seconds.

    Returns:
        Number of requests actually sent.
    """
    unit_id = assignment.unit_id
    sent = 0
    logger.debug(
        "Unit %d starting: requests=%d, rps=%d",
        unit_id,
        assignment.request_count,
        assignment.unit_rps,
        extra={"unit_id": unit_id, "url": url},
    )

    try:
        async with HttpClient(unit_id=unit_id, timeout=timeout) as client:
            for _ in range(assignment.request_count):
                if cancel.is_set():
                    logger.debug(
                        "Unit %d cancelled after %d requests",
                        unit_id,
                        sent,
                        extra={"unit_id": unit_id, "sent": sent},
                    )
                    break

                started = _monotonic_ms()
                row = await client.get(url)
                events.put_nowait(row)
                sent += 1

                wait = next_wait_ms(assignment.unit_rps, started, _monotonic_ms())
                if wait > 0:
                    await asyncio.sleep(wait / 1000)
                elif sent % _YIELD_EVERY == 0:
                    await asyncio.sleep(0)
    finally:
        events.put_nowait(DoneEvent(unit_id=unit_id, sent_count=sent))

    return sent
