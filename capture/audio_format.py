"""Fixed PCM capture parameters shared by the encoder and sessions."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AudioFormat:
    """Immutable linear PCM format description."""

    sample_rate: int = 16_000
    channels: int = 1
    bits_per_sample: int = 16

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.channels <= 0:
            raise ValueError(f"channels must be positive, got {self.channels}")
        if self.bits_per_sample <= 0 or self.bits_per_sample % 8:
            raise ValueError(
                f"bits_per_sample must be a positive multiple of 8, got {self.bits_per_sample}"
            )

    @property
    def sample_width(self) -> int:
        """Bytes per sample (2 = 16-bit)."""
        return self.bits_per_sample // 8

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.channels * self.sample_width

    @property
    def block_align(self) -> int:
        return self.channels * self.sample_width

    def duration_seconds(self, num_bytes: int) -> float:
        """Playback duration of *num_bytes* of PCM in this format."""
        return num_bytes / self.byte_rate


DEFAULT_FORMAT = AudioFormat()
