"""Local WAV file storage with unique timestamped names."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

logger = logging.getLogger(__name__)

_FILE_PREFIX = "audio_"
_FILE_SUFFIX = ".wav"


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


class CaptureStore:
    """Writes capture files into one output directory.

    Files are named ``audio_<unix-epoch-millis>.wav``. Timestamps handed out
    by one store strictly increase, so two flushes in the same millisecond
    still get distinct names. Existing files are never truncated.
    """

    def __init__(self, output_dir: Path | str = ".") -> None:
        self.output_dir = Path(output_dir)
        self._lock = threading.Lock()
        self._last_millis = 0

    def next_path(self) -> Path:
        """Reserve the next unique capture file path."""
        with self._lock:
            millis = max(_now_millis(), self._last_millis + 1)
            self._last_millis = millis
        return self.output_dir / f"{_FILE_PREFIX}{millis}{_FILE_SUFFIX}"

    def write(self, header: bytes, payload: bytes) -> Path:
        """Create a new file holding *header* followed by *payload*.

        Blocking; callers on the event loop should run it in an executor.

        Raises:
            OSError: If the directory cannot be created or the file written.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        while True:
            path = self.next_path()
            try:
                fh = path.open("xb")
            except FileExistsError:
                logger.debug("Capture file %s already exists, picking a new name", path)
                continue
            try:
                with fh:
                    fh.write(header)
                    fh.write(payload)
            except OSError:
                path.unlink(missing_ok=True)
                raise
            return path

    def list_files(self) -> list[Path]:
        """Capture files currently in the output directory, oldest first."""
        if not self.output_dir.is_dir():
            return []
        return sorted(
            self.output_dir.glob(f"{_FILE_PREFIX}*{_FILE_SUFFIX}"),
            key=lambda p: (len(p.name), p.name),
        )
