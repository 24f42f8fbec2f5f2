"""CSV export and re-import of buffered result rows.

Export format, one line per row, oldest first::

    timestamp,unitId,statusCode,timeMs,snippet,error
    2026-01-01T00:00:00.000+00:00,1,200,12,"{""ok"": true}",0

The snippet is always quoted with embedded quotes doubled, a missing status
code is written as an empty field, and ``error`` is ``0`` or ``1``.
"""

from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING

from loadburst.metrics.models import ResultRow

if TYPE_CHECKING:
    from collections.abc import Iterable

CSV_HEADER = "timestamp,unitId,statusCode,timeMs,snippet,error"


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def format_row(row: ResultRow) -> str:
    """Render a single row as one CSV record (no trailing newline)."""
    status = "" if row.status_code is None else str(row.status_code)
    return ",".join(
        (
            row.timestamp,
            str(row.unit_id),
            status,
            str(row.time_ms),
            _quote(row.snippet),
            "1" if row.error else "0",
        )
    )


def rows_to_csv(rows: Iterable[ResultRow]) -> str:
    """Serialize rows, already in oldest-first order, to CSV text.

    Args:
        rows: Rows to export.

    Returns:
        The header line followed by one record per row, joined by ``\\n``.
    """
    return "\n".join([CSV_HEADER, *(format_row(r) for r in rows)])


def read_rows_csv(text: str) -> list[ResultRow]:
    """Parse CSV text produced by ``rows_to_csv`` back into rows.

    Args:
        text: Full CSV document including the header line.

    Returns:
        Rows in file order.

    Raises:
        ValueError: If the header or a record is malformed.
    """
    reader = csv.reader(io.StringIO(text))
    header = next(reader, None)
    if header is None or ",".join(header) != CSV_HEADER:
        msg = f"Not a LoadBurst export: expected header {CSV_HEADER!r}"
        raise ValueError(msg)

    rows: list[ResultRow] = []
    for line_no, record in enumerate(reader, start=2):
        if not record:
            continue
        if len(record) != 6:
            msg = f"Line {line_no}: expected 6 fields, got {len(record)}"
            raise ValueError(msg)
        timestamp, unit_id, status, time_ms, snippet, error = record
        rows.append(
            ResultRow(
                timestamp=timestamp,
                unit_id=int(unit_id),
                status_code=int(status) if status else None,
                time_ms=int(time_ms),
                snippet=snippet,
                error=error == "1",
            )
        )
    return rows
