"""Tests for capture.server."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import websockets
from capture.config import CaptureConfig
from capture.server import CaptureServer, main
from capture.wav import HEADER_SIZE

pytestmark = pytest.mark.asyncio


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeWebSocket:
    """Fake server connection delivering a fixed list of messages."""

    def __init__(
        self,
        messages: list[str | bytes] | None = None,
        path: str = "/audio",
        error: Exception | None = None,
    ) -> None:
        self._messages: list[str | bytes] = messages or []
        self._error = error
        self.id = uuid.uuid4()
        self.remote_address = ("127.0.0.1", 50000)
        self.request = MagicMock()
        self.request.path = path
        self.closed = False
        self.close_code: int | None = None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        return self._async_iter()

    async def _async_iter(self) -> AsyncIterator[str | bytes]:
        for msg in self._messages:
            yield msg
        if self._error is not None:
            raise self._error


async def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.02)


def _server(tmp_path: Path, **overrides: object) -> CaptureServer:
    config = CaptureConfig(output_dir=tmp_path / "recordings", flush_interval=60.0, **overrides)  # type: ignore[arg-type]
    return CaptureServer(config)


# ---------------------------------------------------------------------------
# Handler with fake connections
# ---------------------------------------------------------------------------


class TestHandler:
    async def test_binary_frames_saved_on_close(self, tmp_path: Path) -> None:
        srv = _server(tmp_path)
        ws = FakeWebSocket([b"\x01\x00" * 10, "ignored text", b"\x02\x00" * 5])
        await srv.handler(ws)  # type: ignore[arg-type]

        files = srv.store.list_files()
        assert len(files) == 1
        assert files[0].read_bytes()[HEADER_SIZE:] == b"\x01\x00" * 10 + b"\x02\x00" * 5
        assert srv.active_sessions == []

    async def test_text_only_connection_writes_nothing(self, tmp_path: Path) -> None:
        srv = _server(tmp_path)
        await srv.handler(FakeWebSocket(["hello", "world"]))  # type: ignore[arg-type]
        assert srv.store.list_files() == []

    async def test_unknown_path_rejected(self, tmp_path: Path) -> None:
        srv = _server(tmp_path)
        ws = FakeWebSocket([b"\x00\x00"], path="/other")
        await srv.handler(ws)  # type: ignore[arg-type]
        assert ws.closed
        assert ws.close_code == 1008
        assert srv.store.list_files() == []

    async def test_query_string_ignored_for_path_match(self, tmp_path: Path) -> None:
        srv = _server(tmp_path)
        ws = FakeWebSocket([b"\x00\x00"], path="/audio?client=mic1")
        await srv.handler(ws)  # type: ignore[arg-type]
        assert not ws.closed
        assert len(srv.store.list_files()) == 1

    async def test_empty_capture_path_accepts_any(self, tmp_path: Path) -> None:
        srv = _server(tmp_path, capture_path="")
        ws = FakeWebSocket([b"\x00\x00"], path="/anything")
        await srv.handler(ws)  # type: ignore[arg-type]
        assert len(srv.store.list_files()) == 1

    async def test_abnormal_close_still_flushes(self, tmp_path: Path) -> None:
        srv = _server(tmp_path)
        error = websockets.ConnectionClosedError(None, None)
        ws = FakeWebSocket([b"\x05\x00" * 4], error=error)
        await srv.handler(ws)  # type: ignore[arg-type]
        files = srv.store.list_files()
        assert len(files) == 1
        assert files[0].read_bytes()[HEADER_SIZE:] == b"\x05\x00" * 4

    async def test_unexpected_error_contained(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        srv = _server(tmp_path)
        ws = FakeWebSocket([b"\x06\x00"], error=RuntimeError("transport bug"))
        await srv.handler(ws)  # type: ignore[arg-type]
        assert "failed" in caplog.text
        assert len(srv.store.list_files()) == 1
        assert srv.active_sessions == []

    async def test_session_uses_configured_format(self, tmp_path: Path) -> None:
        srv = _server(tmp_path, sample_rate=8_000, channels=2)
        await srv.handler(FakeWebSocket([b"\x00" * 8]))  # type: ignore[arg-type]
        header = srv.store.list_files()[0].read_bytes()[:HEADER_SIZE]
        assert int.from_bytes(header[22:24], "little") == 2
        assert int.from_bytes(header[24:28], "little") == 8_000


# ---------------------------------------------------------------------------
# Real WebSocket connections
# ---------------------------------------------------------------------------


class TestLiveServer:
    async def test_stream_then_disconnect(
        self, capture_server: tuple[str, CaptureServer]
    ) -> None:
        url, srv = capture_server
        async with websockets.connect(f"{url}/audio") as ws:
            await ws.send(b"\x10\x00" * 100)
            await ws.send("not audio")
            await ws.send(b"\x20\x00" * 50)

        await _wait_until(lambda: bool(srv.store.list_files()) and not srv.active_sessions)
        files = srv.store.list_files()
        assert len(files) == 1
        assert files[0].read_bytes()[HEADER_SIZE:] == b"\x10\x00" * 100 + b"\x20\x00" * 50

    async def test_active_session_tracked(self, capture_server: tuple[str, CaptureServer]) -> None:
        url, srv = capture_server
        async with websockets.connect(f"{url}/audio") as ws:
            await ws.send(b"\x00\x00")
            await _wait_until(lambda: len(srv.active_sessions) == 1)
            await _wait_until(lambda: srv.active_sessions[0].stats.frames_received == 1)
        await _wait_until(lambda: not srv.active_sessions)

    async def test_wrong_path_closed_by_server(
        self, capture_server: tuple[str, CaptureServer]
    ) -> None:
        url, _ = capture_server
        async with websockets.connect(f"{url}/nope") as ws:
            with pytest.raises(websockets.ConnectionClosed) as exc_info:
                await asyncio.wait_for(ws.recv(), timeout=2.0)
        assert exc_info.value.rcvd is not None
        assert exc_info.value.rcvd.code == 1008

    async def test_concurrent_sessions_are_isolated(
        self, capture_server: tuple[str, CaptureServer]
    ) -> None:
        url, srv = capture_server
        async with (
            websockets.connect(f"{url}/audio") as a,
            websockets.connect(f"{url}/audio") as b,
        ):
            await a.send(b"\xaa\x00" * 10)
            await b.send(b"\xbb\x00" * 20)
            await _wait_until(lambda: len(srv.active_sessions) == 2)
        await _wait_until(lambda: len(srv.store.list_files()) == 2 and not srv.active_sessions)

        payloads = sorted(f.read_bytes()[HEADER_SIZE:] for f in srv.store.list_files())
        assert payloads == [b"\xaa\x00" * 10, b"\xbb\x00" * 20]


class TestCloseAll:
    async def test_close_all_flushes_live_sessions(self, tmp_path: Path) -> None:
        srv = _server(tmp_path)
        gate = asyncio.Event()

        class HangingWebSocket(FakeWebSocket):
            async def _async_iter(self) -> AsyncIterator[str | bytes]:
                yield b"\x07\x00" * 3
                await gate.wait()

        task = asyncio.create_task(srv.handler(HangingWebSocket()))  # type: ignore[arg-type]
        await _wait_until(lambda: len(srv.active_sessions) == 1)
        await _wait_until(lambda: srv.active_sessions[0].stats.frames_received == 1)

        await srv.close_all()
        assert len(srv.store.list_files()) == 1

        gate.set()
        await task
        assert len(srv.store.list_files()) == 1


class TestMain:
    async def test_main_configures_logging_and_serves(self, tmp_path: Path) -> None:
        config = CaptureConfig(output_dir=tmp_path)
        with (
            patch("capture.server.load_config", return_value=config),
            patch("capture.server.logging.basicConfig") as basic_config,
            patch.object(CaptureServer, "serve", new_callable=AsyncMock) as serve,
        ):
            await main()
        basic_config.assert_called_once()
        assert basic_config.call_args.kwargs["level"] == "INFO"
        serve.assert_awaited_once()

