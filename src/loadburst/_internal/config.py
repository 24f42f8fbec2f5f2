"""Run configuration, hard caps, and environment defaults for LoadBurst."""

from __future__ import annotations

import os
from dataclasses import dataclass

from loadburst._internal.errors import ConfigError
from loadburst._internal.logging import get_logger

logger = get_logger("config")

# Hard caps. Not configurable at runtime.
MAX_REQS_PER_SEC = 1000
MAX_TOTAL_REQUESTS = 100_000
MAX_CONCURRENCY = 500

# Most recent rows kept in memory for display and CSV export.
ROW_BUFFER_SIZE = 2000

# Longest response/error excerpt stored per row.
SNIPPET_LIMIT = 300


@dataclass(frozen=True)
class TestConfig:
    """Parameters of a single run, already clamped into the legal ranges.

    Build instances with ``clamp_config``; the constructor does not clamp.

    Attributes:
        url: Target URL hit with GET requests.
        concurrency: Number of load units running side by side.
        total_requests: Requests issued across all units.
        target_rps: Requested aggregate requests per second.
    """

    url: str
    concurrency: int
    total_requests: int
    target_rps: int


@dataclass(frozen=True)
class LoadBurstDefaults:
    """Operator defaults read from the environment.

    Attributes:
        url: Default target URL (empty means none).
        concurrency: Default unit count.
        total_requests: Default total request count.
        target_rps: Default aggregate rate.
        request_timeout: Per-request timeout in seconds. None disables it.
    """

    url: str = ""
    concurrency: int = 10
    total_requests: int = 1000
    target_rps: int = 200
    request_timeout: float | None = None


def _clamp(name: str, value: object, upper: int) -> int:
    """Coerce ``value`` to an int within ``[1, upper]``.

    Anything that is not a positive number counts as 1.
    """
    try:
        number = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        logger.warning("%s=%r is not a number, using 1", name, value)
        return 1

    clamped = min(max(1, number), upper)
    if clamped != number:
        logger.warning("%s=%d is out of range, clamped to %d", name, number, clamped)
    return clamped


def clamp_config(
    url: str,
    concurrency: object,
    total_requests: object,
    target_rps: object,
) -> TestConfig:
    """Build a ``TestConfig`` from raw operator input.

    Numeric fields are clamped into their legal ranges instead of being
    rejected. Only a missing URL is an error.

    Args:
        url: Target URL.
        concurrency: Requested unit count, capped at ``MAX_CONCURRENCY``.
        total_requests: Requested total, capped at ``MAX_TOTAL_REQUESTS``.
        target_rps: Requested aggregate rate, capped at ``MAX_REQS_PER_SEC``.

    Returns:
        A frozen, in-range ``TestConfig``.

    Raises:
        ConfigError: If ``url`` is empty.
    """
    url = (url or "").strip()
    if not url:
        msg = "A target URL is required"
        raise ConfigError(msg)

    return TestConfig(
        url=url,
        concurrency=_clamp("concurrency", concurrency, MAX_CONCURRENCY),
        total_requests=_clamp("total_requests", total_requests, MAX_TOTAL_REQUESTS),
        target_rps=_clamp("target_rps", target_rps, MAX_REQS_PER_SEC),
    )


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got: {raw!r}"
        raise ConfigError(msg) from None


def load_defaults() -> LoadBurstDefaults:
    """Load operator defaults from environment variables.

    Environment variables:
        LOADBURST_URL: Default target URL.
        LOADBURST_CONCURRENCY: Default unit count (default: 10).
        LOADBURST_TOTAL_REQUESTS: Default total requests (default: 1000).
        LOADBURST_TARGET_RPS: Default aggregate rate (default: 200).
        LOADBURST_TIMEOUT: Request timeout in seconds (default: none).

    Numeric defaults are not range-checked here; ``clamp_config`` does that
    when the run is built.

    Returns:
        Populated LoadBurstDefaults instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    timeout: float | None = None
    timeout_str = os.environ.get("LOADBURST_TIMEOUT")
    if timeout_str:
        try:
            timeout = float(timeout_str)
        except ValueError:
            msg = f"LOADBURST_TIMEOUT must be a number, got: {timeout_str!r}"
            raise ConfigError(msg) from None
        if timeout <= 0:
            msg = f"LOADBURST_TIMEOUT must be positive, got: {timeout}"
            raise ConfigError(msg)

    return LoadBurstDefaults(
        url=os.environ.get("LOADBURST_URL", ""),
        concurrency=_env_int("LOADBURST_CONCURRENCY", 10),
        total_requests=_env_int("LOADBURST_TOTAL_REQUESTS", 1000),
        target_rps=_env_int("LOADBURST_TARGET_RPS", 200),
        request_timeout=timeout,
    )
