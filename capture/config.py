"""Capture service configuration loaded from environment variables."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from capture.audio_format import AudioFormat


@dataclass(frozen=True)
class CaptureConfig:
    """Immutable capture service configuration."""

    capture_host: str = "127.0.0.1"
    capture_port: int = 3000
    capture_path: str = "/audio"
    sample_rate: int = 16_000
    channels: int = 1
    bits_per_sample: int = 16
    flush_interval: float = 10.0
    output_dir: Path = field(default_factory=lambda: Path("."))
    max_frame_size: int = 2**20
    log_level: str = "INFO"

    @property
    def audio_format(self) -> AudioFormat:
        return AudioFormat(
            sample_rate=self.sample_rate,
            channels=self.channels,
            bits_per_sample=self.bits_per_sample,
        )


_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

_LOOPBACK_HOSTS = {"127.0.0.1", "localhost", "::1"}

logger = logging.getLogger(__name__)


def _parse_int_env(name: str, default: str) -> int:
    """Parse an integer environment variable with a clear error on bad values."""
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from exc


def _parse_float_env(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}") from exc


def load_config() -> CaptureConfig:
    """Load capture config from environment variables.

    Reads a ``.env`` file if present, then builds a :class:`CaptureConfig` from:

    - ``CAPTURE_HOST`` (default ``"127.0.0.1"``)
    - ``CAPTURE_PORT`` (default ``3000``)
    - ``CAPTURE_PATH`` (default ``"/audio"``; empty accepts any path)
    - ``SAMPLE_RATE`` (default ``16000``)
    - ``CHANNELS`` (default ``1``)
    - ``BITS_PER_SAMPLE`` (default ``16``)
    - ``FLUSH_INTERVAL`` (default ``10`` seconds)
    - ``OUTPUT_DIR`` (default ``"."``)
    - ``MAX_FRAME_SIZE`` (default ``1048576`` bytes)
    - ``LOG_LEVEL`` (default ``"INFO"``)

    Raises:
        ValueError: If a variable cannot be parsed or describes an invalid
            audio format.
    """
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")

    host = os.environ.get("CAPTURE_HOST", "127.0.0.1")
    port = _parse_int_env("CAPTURE_PORT", "3000")
    path = os.environ.get("CAPTURE_PATH", "/audio").strip()
    sample_rate = _parse_int_env("SAMPLE_RATE", "16000")
    channels = _parse_int_env("CHANNELS", "1")
    bits_per_sample = _parse_int_env("BITS_PER_SAMPLE", "16")
    flush_interval = _parse_float_env("FLUSH_INTERVAL", "10")
    output_dir = Path(os.environ.get("OUTPUT_DIR", ".") or ".")
    max_frame_size = _parse_int_env("MAX_FRAME_SIZE", str(2**20))
    log_level = os.environ.get("LOG_LEVEL", "INFO").strip().upper()

    if not math.isfinite(flush_interval) or flush_interval <= 0:
        raise ValueError(
            "Environment variable FLUSH_INTERVAL must be positive and finite, "
            f"got {flush_interval}"
        )
    if max_frame_size <= 0:
        raise ValueError(
            f"Environment variable MAX_FRAME_SIZE must be positive, got {max_frame_size}"
        )
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"Environment variable LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}")

    cfg = CaptureConfig(
        capture_host=host,
        capture_port=port,
        capture_path=path,
        sample_rate=sample_rate,
        channels=channels,
        bits_per_sample=bits_per_sample,
        flush_interval=flush_interval,
        output_dir=output_dir,
        max_frame_size=max_frame_size,
        log_level=log_level,
    )

    # AudioFormat validates itself on construction.
    try:
        cfg.audio_format
    except ValueError as exc:
        raise ValueError(f"Invalid audio format in environment: {exc}") from exc

    if cfg.capture_host not in _LOOPBACK_HOSTS:
        logger.warning(
            "Listening on non-loopback interface %s; any client that can reach it "
            "may stream audio to disk.",
            cfg.capture_host,
        )

    return cfg
