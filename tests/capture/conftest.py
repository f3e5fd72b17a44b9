"""Shared fixtures for capture tests."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
import websockets
from capture.config import CaptureConfig
from capture.server import CaptureServer
from capture.storage import CaptureStore


@pytest.fixture
def store(tmp_path: Path) -> CaptureStore:
    """A capture store writing into a per-test temporary directory."""
    return CaptureStore(tmp_path / "recordings")


@pytest_asyncio.fixture
async def capture_server(tmp_path: Path) -> AsyncIterator[tuple[str, CaptureServer]]:
    """Start a capture server on an ephemeral port, yield (url, server_instance).

    The flush interval is long so only the close-time flush writes files.
    """
    config = CaptureConfig(
        capture_host="127.0.0.1",
        capture_port=0,
        capture_path="/audio",
        flush_interval=60.0,
        output_dir=tmp_path / "recordings",
    )
    srv = CaptureServer(config)
    server = await websockets.serve(srv.handler, config.capture_host, 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"ws://127.0.0.1:{port}", srv
    finally:
        server.close()
        await server.wait_closed()
