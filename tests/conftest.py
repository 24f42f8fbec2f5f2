"""Shared test fixtures for the LoadBurst test suite."""

from __future__ import annotations

import asyncio
import socket
import threading
from typing import TYPE_CHECKING

import pytest
from aiohttp import web

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Target server handlers
# =============================================================================


async def _ok_handler(request: web.Request) -> web.Response:
    return web.Response(text="hello from target")


async def _status_handler(request: web.Request) -> web.Response:
    """Return the status given in ``?code=`` (default 500)."""
    code = int(request.query.get("code", "500"))
    return web.Response(text=f"status {code}", status=code)


async def _big_handler(request: web.Request) -> web.Response:
    """Return a body far longer than the snippet limit."""
    return web.Response(text="x" * 5000)


async def _quote_handler(request: web.Request) -> web.Response:
    return web.Response(text='say "hi", then, "bye"')


async def _bad_encoding_handler(request: web.Request) -> web.Response:
    """Declare UTF-8 but send bytes that do not decode."""
    return web.Response(body=b"\xff\xfe\xfa\xfb", content_type="text/plain", charset="utf-8")


async def _delay_handler(request: web.Request) -> web.Response:
    """Respond after a configurable delay (query param: ?delay=0.5)."""
    delay = float(request.query.get("delay", "0.1"))
    await asyncio.sleep(delay)
    return web.Response(text=f"delayed {delay}")


def _create_target_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/ok", _ok_handler)
    app.router.add_get("/status", _status_handler)
    app.router.add_get("/big", _big_handler)
    app.router.add_get("/quote", _quote_handler)
    app.router.add_get("/bad-encoding", _bad_encoding_handler)
    app.router.add_get("/delay", _delay_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def target_server() -> AsyncIterator[str]:
    """Aiohttp target server on the test's event loop.

    Returns the base URL (e.g., 'http://127.0.0.1:54321').
    """
    runner = web.AppRunner(_create_target_app())
    await runner.setup()
    port = _get_free_port()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield f"http://127.0.0.1:{port}"
    await runner.cleanup()


@pytest.fixture
def refused_url() -> str:
    """URL of a local port with nothing listening on it."""
    return f"http://127.0.0.1:{_get_free_port()}/ok"


@pytest.fixture
def sync_target_server() -> Iterator[str]:
    """Target server running in a background thread.

    For CLI tests, where the command under test runs its own event loop
    and blocks the main thread.
    """
    port = _get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        runner = web.AppRunner(_create_target_app())
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield f"http://127.0.0.1:{port}"

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)
