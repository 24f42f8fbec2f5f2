"""Instrumented HTTP client that turns each GET into a ``ResultRow``."""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime

import aiohttp

from loadburst._internal.config import SNIPPET_LIMIT
from loadburst._internal.logging import get_logger
from loadburst.metrics.models import ResultRow

logger = get_logger("engine.http_client")

# Snippet used when a response arrived but its body could not be read.
NO_TEXT_SNIPPET = "[no-text]"


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class HttpClient:
    """Async GET client wrapping ``aiohttp.ClientSession`` for one load unit.

    Every call to ``get`` yields exactly one ``ResultRow``; transport
    failures are reported as rows instead of being raised. No headers or
    body are added to the request and nothing is cached.

    Attributes:
        unit_id: Unit identifier stamped on every row.
    """

    def __init__(self, unit_id: int, timeout: float | None = None) -> None:
        """Initialize the client.

        Args:
            unit_id: Unit identifier stamped on every row.
            timeout: Total per-request timeout in seconds. None (the
                default) means the request waits until the transport
                itself returns or fails.
        """
        self.unit_id = unit_id
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> HttpClient:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def get(self, url: str) -> ResultRow:
        """Send one GET request and describe its outcome.

        ``time_ms`` covers the request up to the response headers; the
        body is read afterwards only to build the snippet.

        Args:
            url: Absolute target URL.

        Returns:
            The row for this attempt. ``error`` is True for statuses
            >= 400 and for transport failures (``status_code`` is then None).

        Raises:
            RuntimeError: If the client is used outside of an async context
                manager.
        """
        if self._session is None:
            msg = "HttpClient must be used as an async context manager"
            raise RuntimeError(msg)

        start = time.monotonic()
        try:
            async with self._session.get(url) as resp:
                elapsed = _elapsed_ms(start)
                try:
                    snippet = (await resp.text())[:SNIPPET_LIMIT]
                except (aiohttp.ClientError, UnicodeDecodeError, LookupError):
                    snippet = NO_TEXT_SNIPPET
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            elapsed = _elapsed_ms(start)
            message = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
            logger.debug(
                "Unit %d: GET %s failed: %s",
                self.unit_id,
                url,
                message,
                extra={"unit_id": self.unit_id, "url": url},
            )
            return ResultRow(
                timestamp=_now_iso(),
                unit_id=self.unit_id,
                status_code=None,
                time_ms=elapsed,
                snippet=message[:SNIPPET_LIMIT],
                error=True,
            )

        return ResultRow(
            timestamp=_now_iso(),
            unit_id=self.unit_id,
            status_code=status,
            time_ms=elapsed,
            snippet=snippet,
            error=status >= 400,
        )
