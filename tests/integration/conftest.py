"""Shared fixtures for integration tests."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest_asyncio
import websockets
from capture.config import CaptureConfig
from capture.server import CaptureServer

FLUSH_INTERVAL = 0.5


@pytest_asyncio.fixture
async def fast_flush_server(tmp_path: Path) -> AsyncIterator[tuple[str, CaptureServer]]:
    """Start a capture server with a short flush interval on an ephemeral port.

    Yields (ws_url, CaptureServer).
    """
    config = CaptureConfig(
        capture_host="127.0.0.1",
        capture_port=0,
        flush_interval=FLUSH_INTERVAL,
        output_dir=tmp_path / "recordings",
    )
    srv = CaptureServer(config)
    server = await websockets.serve(
        srv.handler, config.capture_host, 0, max_size=config.max_frame_size
    )
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"ws://127.0.0.1:{port}{config.capture_path}", srv
    finally:
        server.close()
        await server.wait_closed()
