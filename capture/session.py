"""Per-connection audio capture lifecycle."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from capture.audio_buffer import AudioBuffer
from capture.audio_format import DEFAULT_FORMAT, AudioFormat
from capture.scheduler import FlushScheduler
from capture.storage import CaptureStore
from capture.wav import build_header

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_INTERVAL = 10.0


@dataclass
class SessionStats:
    """Counters reported when a session closes."""

    frames_received: int = 0
    bytes_received: int = 0
    bytes_dropped: int = 0
    files_written: int = 0
    bytes_written: int = 0
    write_failures: int = 0
    bytes_lost: int = 0


class CaptureSession:
    """Binds one connection to its audio buffer and flush scheduler.

    Binary frames are appended to the buffer; every ``flush_interval``
    seconds, and once more on close, the buffer is drained into a new WAV
    file. A failed write is logged and its bytes are not retried.
    """

    def __init__(
        self,
        session_id: str,
        store: CaptureStore,
        audio_format: AudioFormat = DEFAULT_FORMAT,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
    ) -> None:
        self.session_id = session_id
        self.audio_format = audio_format
        self.stats = SessionStats()
        self._store = store
        self._flush_interval = flush_interval
        self._buffer: AudioBuffer | None = None
        self._scheduler: FlushScheduler | None = None
        self._closing = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._buffer is not None and not self._closing

    @property
    def is_closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        """Allocate the buffer and start the periodic flush.

        Must be called from within a running event loop.
        """
        if self._buffer is not None or self._closing:
            raise RuntimeError(f"Session {self.session_id} already opened")
        self._buffer = AudioBuffer()
        self._scheduler = FlushScheduler(name=self.session_id)
        self._scheduler.start(self._flush_interval, self.flush_now)
        logger.info(
            "Session %s opened (%d Hz, %d ch, %d-bit, flush every %ss)",
            self.session_id,
            self.audio_format.sample_rate,
            self.audio_format.channels,
            self.audio_format.bits_per_sample,
            self._flush_interval,
        )

    def on_binary_frame(self, data: bytes) -> None:
        """Append PCM bytes. Frames arriving once close has begun are dropped."""
        buf = self._buffer
        if buf is None or self._closing:
            logger.debug(
                "Session %s: dropping %d-byte frame received while not open",
                self.session_id,
                len(data),
            )
            self.stats.bytes_dropped += len(data)
            return
        buf.append(data)
        self.stats.frames_received += 1
        self.stats.bytes_received += len(data)

    def on_text_frame(self, message: str) -> None:
        """Text frames carry no audio and leave the session untouched."""
        logger.debug("Session %s: ignoring text frame (%d chars)", self.session_id, len(message))

    def on_error(self, exc: BaseException) -> None:
        """Record a transport error. Closing is left to the transport."""
        logger.warning("Session %s error: %s", self.session_id, exc)

    async def flush_now(self) -> Path | None:
        """Drain the buffer into a new WAV file.

        Returns the written path, or ``None`` when the buffer was empty or
        the write failed.
        """
        buf = self._buffer
        if buf is None:
            return None
        payload = buf.drain_and_clear()
        if not payload:
            return None

        loop = asyncio.get_running_loop()
        try:
            header = build_header(len(payload), self.audio_format)
            path = await loop.run_in_executor(None, self._store.write, header, payload)
        except (OSError, ValueError) as exc:
            logger.error(
                "Session %s: failed to write %d bytes of audio: %s",
                self.session_id,
                len(payload),
                exc,
            )
            self._record_failure(len(payload))
            return None
        except Exception:
            logger.exception("Session %s: unexpected error writing audio", self.session_id)
            self._record_failure(len(payload))
            return None

        self.stats.files_written += 1
        self.stats.bytes_written += len(payload)
        logger.info(
            "Session %s: saved %s (%d bytes, %.2fs)",
            self.session_id,
            path.name,
            len(payload),
            self.audio_format.duration_seconds(len(payload)),
        )
        return path

    async def close(self) -> None:
        """Stop the scheduler, then persist whatever is still buffered.

        Idempotent; later calls return immediately.
        """
        if self._closing:
            return
        self._closing = True

        if self._scheduler is not None:
            await self._scheduler.stop()
        try:
            await self.flush_now()
        finally:
            self._buffer = None
            self._scheduler = None
            self._closed = True
            logger.info(
                "Session %s closed: %d frames, %d bytes received, %d files written, "
                "%d write failures, %d bytes lost, %d bytes dropped",
                self.session_id,
                self.stats.frames_received,
                self.stats.bytes_received,
                self.stats.files_written,
                self.stats.write_failures,
                self.stats.bytes_lost,
                self.stats.bytes_dropped,
            )

    def _record_failure(self, num_bytes: int) -> None:
        self.stats.write_failures += 1
        self.stats.bytes_lost += num_bytes
