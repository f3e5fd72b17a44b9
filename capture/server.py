"""WebSocket server that feeds inbound PCM frames into capture sessions."""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import websockets
from websockets import ServerConnection

from capture.config import CaptureConfig, load_config
from capture.session import CaptureSession
from capture.storage import CaptureStore

logger = logging.getLogger(__name__)

_POLICY_VIOLATION = 1008


class CaptureServer:
    """Accepts connections and runs one :class:`CaptureSession` per connection."""

    def __init__(self, config: CaptureConfig, store: CaptureStore | None = None) -> None:
        self.config = config
        self.store = store or CaptureStore(config.output_dir)
        self._audio_format = config.audio_format
        self._sessions: dict[str, CaptureSession] = {}

    @property
    def active_sessions(self) -> list[CaptureSession]:
        return list(self._sessions.values())

    def _path_allowed(self, ws: ServerConnection) -> bool:
        if not self.config.capture_path or ws.request is None:
            return True
        return urlparse(ws.request.path).path == self.config.capture_path

    async def handler(self, ws: ServerConnection) -> None:
        """Handle a new WebSocket connection."""
        if not self._path_allowed(ws):
            logger.warning("Rejecting connection to unknown path %s", ws.request.path)
            await ws.close(_POLICY_VIOLATION, "Unknown path")
            return

        session = CaptureSession(
            str(ws.id),
            self.store,
            audio_format=self._audio_format,
            flush_interval=self.config.flush_interval,
        )
        self._sessions[session.session_id] = session
        logger.info("New connection %s from %s", session.session_id, ws.remote_address)

        try:
            session.open()
            async for message in ws:
                if isinstance(message, bytes):
                    session.on_binary_frame(message)
                else:
                    session.on_text_frame(message)
        except websockets.ConnectionClosedError as exc:
            session.on_error(exc)
        except websockets.ConnectionClosed:
            logger.info("Connection %s closed", session.session_id)
        except Exception as exc:
            logger.exception("Session %s failed", session.session_id)
            session.on_error(exc)
        finally:
            try:
                await session.close()
            finally:
                self._sessions.pop(session.session_id, None)

    async def close_all(self) -> None:
        """Close every live session, flushing remaining audio."""
        sessions = self.active_sessions
        if sessions:
            await asyncio.gather(*(s.close() for s in sessions), return_exceptions=True)

    async def serve(self) -> None:
        """Start the server and run forever."""
        logger.info(
            "Capture server listening on ws://%s:%s%s, writing to %s",
            self.config.capture_host,
            self.config.capture_port,
            self.config.capture_path,
            self.config.output_dir.resolve(),
        )
        try:
            async with websockets.serve(
                self.handler,
                self.config.capture_host,
                self.config.capture_port,
                max_size=self.config.max_frame_size,
            ):
                await asyncio.Future()  # block forever
        finally:
            await self.close_all()


async def main() -> None:
    """Entry point: load config and start serving."""
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    server = CaptureServer(config)
    await server.serve()
