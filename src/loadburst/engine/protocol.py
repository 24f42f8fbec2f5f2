"""Message types exchanged between load units, the aggregator, and the sink."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, TypeAlias

from loadburst.metrics.models import ResultRow

if TYPE_CHECKING:
    from loadburst.metrics.models import Summary


@dataclass(frozen=True)
class DoneEvent:
    """Sent once by every load unit when its loop ends.

    Attributes:
        unit_id: Identifier of the unit that finished.
        sent_count: Requests the unit actually issued (fewer than assigned
            when the run was stopped).
    """

    unit_id: int
    sent_count: int


# Everything a load unit puts on the run's event queue.
UnitEvent: TypeAlias = ResultRow | DoneEvent


class ResultSink(Protocol):
    """Consumer of a run's live output, e.g. the CLI's live table."""

    def on_row(self, row: ResultRow, summary: Summary) -> None:
        """Called for every accepted row with the updated summary."""

    def on_done(self, event: DoneEvent) -> None:
        """Called when a unit finishes."""
