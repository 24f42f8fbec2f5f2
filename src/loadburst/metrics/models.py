"""Result dataclasses for LoadBurst."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "ResultRow",
    "Summary",
]


@dataclass(frozen=True)
class ResultRow:
    """Outcome of one issued request, successful or not.

    Attributes:
        timestamp: ISO-8601 UTC time the outcome was recorded.
        unit_id: Id of the load unit that issued the request.
        status_code: HTTP status, or None when the transport failed.
        time_ms: Milliseconds from send to response headers (or failure).
        snippet: First characters of the body, or the failure message.
        error: True for transport failures and statuses >= 400.
    """

    timestamp: str
    unit_id: int
    status_code: int | None
    time_ms: int
    snippet: str
    error: bool


@dataclass
class Summary:
    """Cumulative counters for a run.

    Only ever incremented, and independent of how many rows are still
    buffered.

    Attributes:
        sent: Rows accepted so far.
        errors: Accepted rows flagged as errors.
    """

    sent: int = 0
    errors: int = 0

    @property
    def error_rate(self) -> float:
        """Fraction of sent requests that errored (0.0 when nothing sent)."""
        return self.errors / self.sent if self.sent > 0 else 0.0
