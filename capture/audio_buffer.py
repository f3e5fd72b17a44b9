"""PCM accumulation buffer shared by a session's producer and flusher."""

from __future__ import annotations

import threading


class AudioBuffer:
    """Accumulates raw PCM bytes between drains.

    ``append`` and ``drain_and_clear`` hold the same lock, so a drain never
    observes a half-written append and no chunk is lost or returned twice.
    Content is not validated; any byte sequence is accepted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._chunks: list[bytes] = []
        self._total_bytes = 0

    def append(self, chunk: bytes) -> None:
        """Append PCM bytes to the tail. Empty chunks are ignored."""
        if not chunk:
            return
        data = bytes(chunk)
        with self._lock:
            self._chunks.append(data)
            self._total_bytes += len(data)

    def drain_and_clear(self) -> bytes:
        """Return everything appended since the last drain and reset to empty."""
        with self._lock:
            chunks = self._chunks
            self._chunks = []
            self._total_bytes = 0
        return b"".join(chunks)

    @property
    def pending_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    @property
    def is_empty(self) -> bool:
        return self.pending_bytes == 0

    def __len__(self) -> int:
        return self.pending_bytes
