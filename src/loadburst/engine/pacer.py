"""Best-effort per-unit request pacing.

A unit aims for one request every ``interval_ms(unit_rps)`` milliseconds.
After each request it waits for whatever is left of that interval. A
request slower than the interval is not compensated later: the unit just
continues immediately, so throughput drops under slow responses instead of
bursting to catch up.
"""

from __future__ import annotations


def interval_ms(unit_rps: int) -> int:
    """Return the target spacing between a unit's requests.

    Args:
        unit_rps: The unit's requests per second. Values below 1 count as 1.

    Returns:
        Milliseconds per request, never below 1.
    """
    return max(1, 1000 // max(1, unit_rps))


def next_wait_ms(unit_rps: int, started_ms: float, ended_ms: float) -> int:
    """Return how long to wait before the next request.

    Args:
        unit_rps: The unit's requests per second.
        started_ms: Monotonic milliseconds when the iteration started.
        ended_ms: Monotonic milliseconds when the iteration finished.

    Returns:
        Remaining milliseconds of the interval, or 0 if it already elapsed.
    """
    elapsed = int(ended_ms - started_ms)
    return max(0, interval_ms(unit_rps) - elapsed)
