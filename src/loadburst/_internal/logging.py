"""Logging setup for LoadBurst.

Everything logs under the ``loadburst`` namespace. The CLI calls
``setup_logging`` once; library code only ever calls ``get_logger``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

# LogRecord attributes copied into JSON output when passed via ``extra=``.
_EXTRA_FIELDS = ("unit_id", "url", "sent", "errors")


class _JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message.

    Known ``extra`` fields (see ``_EXTRA_FIELDS``) are included when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the root ``loadburst`` logger.

    Repeated calls only adjust the level; handlers are never duplicated,
    so the CLI and tests can both call this safely.

    Args:
        level: Logging level (e.g. ``logging.DEBUG``). Defaults to INFO.
        json_format: Emit one-line JSON records instead of plain text.

    Returns:
        The configured ``loadburst`` logger.
    """
    logger = logging.getLogger("loadburst")
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    # The CLI owns stderr; keep records away from the root logger.
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger, e.g. ``get_logger("engine.unit")``.

    Args:
        name: Dotted suffix appended to ``loadburst.``.

    Returns:
        ``logging.getLogger("loadburst.<name>")``.
    """
    return logging.getLogger(f"loadburst.{name}")
