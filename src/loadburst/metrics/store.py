"""Bounded, most-recent-first storage for result rows."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

from loadburst._internal.config import ROW_BUFFER_SIZE

if TYPE_CHECKING:
    from loadburst.metrics.models import ResultRow


class RowBuffer:
    """Keeps the newest ``capacity`` rows, newest first.

    Inserting at the head of a full buffer evicts the oldest row from the
    tail. Only the aggregator's consumer writes to it, so there is no lock.
    """

    def __init__(self, capacity: int = ROW_BUFFER_SIZE) -> None:
        if capacity < 1:
            msg = f"capacity must be >= 1, got {capacity}"
            raise ValueError(msg)
        self._rows: deque[ResultRow] = deque(maxlen=capacity)

    def push(self, row: ResultRow) -> None:
        """Insert ``row`` at the head, evicting the tail when full."""
        self._rows.appendleft(row)

    def newest_first(self) -> list[ResultRow]:
        """Return a copy of the rows, most recent first."""
        return list(self._rows)

    def oldest_first(self) -> list[ResultRow]:
        """Return a copy of the rows in arrival order."""
        return list(reversed(self._rows))

    def __len__(self) -> int:
        return len(self._rows)
