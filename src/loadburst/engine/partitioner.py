"""Split a run's request total and rate cap across load units."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class WorkAssignment:
    """Work owned by one load unit for the duration of a run.

    Attributes:
        unit_id: 1-based unit identifier reported on every row.
        request_count: Requests this unit must issue.
        unit_rps: Pacing rate for this unit.
    """

    unit_id: int
    request_count: int
    unit_rps: int


@dataclass(frozen=True)
class Partition:
    """Result of splitting a run across units.

    Attributes:
        assignments: One assignment per unit, in unit order.
        per_unit_rps: Rate every unit is paced at.
        estimated_aggregate_rps: ``per_unit_rps * concurrency``. Usually at
            most the requested rate, but the 1 rps floor can push it above
            when fewer requests per second than units were asked for.
    """

    assignments: tuple[WorkAssignment, ...]
    per_unit_rps: int
    estimated_aggregate_rps: int

    @property
    def total_requests(self) -> int:
        """Return the sum of all assigned request counts."""
        return sum(a.request_count for a in self.assignments)


def partition(total_requests: int, concurrency: int, target_rps: int) -> Partition:
    """Divide ``total_requests`` and ``target_rps`` across ``concurrency`` units.

    The first ``total_requests % concurrency`` units get one extra request,
    so counts differ by at most one and always sum to ``total_requests``.
    Every unit gets the same rate, ``max(1, target_rps // concurrency)``.

    Args:
        total_requests: Requests to issue across all units.
        concurrency: Number of units. Must be at least 1.
        target_rps: Requested aggregate requests per second.

    Returns:
        The per-unit assignments and rate figures.

    Raises:
        ValueError: If ``concurrency`` is below 1.
    """
    if concurrency < 1:
        msg = f"concurrency must be >= 1, got {concurrency}"
        raise ValueError(msg)

    base, remainder = divmod(total_requests, concurrency)
    per_unit_rps = max(1, target_rps // concurrency)

    assignments = tuple(
        WorkAssignment(
            unit_id=index + 1,
            request_count=base + (1 if index < remainder else 0),
            unit_rps=per_unit_rps,
        )
        for index in range(concurrency)
    )

    return Partition(
        assignments=assignments,
        per_unit_rps=per_unit_rps,
        estimated_aggregate_rps=per_unit_rps * concurrency,
    )
