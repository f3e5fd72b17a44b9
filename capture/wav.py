"""Canonical 44-byte RIFF/WAVE header encoding and decoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from capture.audio_format import DEFAULT_FORMAT, AudioFormat

HEADER_SIZE = 44

_PCM_FORMAT_TAG = 1
_FMT_CHUNK_SIZE = 16
_UINT32_MAX = 0xFFFFFFFF

# RIFF size, fmt size, format tag, channels, rate, byte rate, block align, bits, data size
_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")


class WavFormatError(ValueError):
    """Raised when bytes are not a canonical PCM WAV header."""


@dataclass(frozen=True)
class WavHeader:
    """Decoded fields of a canonical PCM WAV header."""

    audio_format: AudioFormat
    data_size: int
    riff_size: int

    @property
    def duration_seconds(self) -> float:
        return self.audio_format.duration_seconds(self.data_size)


def build_header(payload_length: int, audio_format: AudioFormat = DEFAULT_FORMAT) -> bytes:
    """Return the 44-byte header describing *payload_length* bytes of PCM.

    Raises ``ValueError`` if the length is negative or too large for a
    32-bit RIFF chunk size.
    """
    if payload_length < 0:
        raise ValueError(f"payload_length must be non-negative, got {payload_length}")
    if payload_length + 36 > _UINT32_MAX:
        raise ValueError(f"payload_length {payload_length} exceeds the 4 GiB WAV limit")

    return _HEADER_STRUCT.pack(
        b"RIFF",
        payload_length + 36,
        b"WAVE",
        b"fmt ",
        _FMT_CHUNK_SIZE,
        _PCM_FORMAT_TAG,
        audio_format.channels,
        audio_format.sample_rate,
        audio_format.byte_rate,
        audio_format.block_align,
        audio_format.bits_per_sample,
        b"data",
        payload_length,
    )


def parse_header(data: bytes) -> WavHeader:
    """Decode a header produced by :func:`build_header`.

    Only the leading 44 bytes are inspected.

    Raises:
        WavFormatError: If the bytes are short, carry the wrong chunk ids,
            are not PCM, or have inconsistent derived fields.
    """
    if len(data) < HEADER_SIZE:
        raise WavFormatError(f"Header needs {HEADER_SIZE} bytes, got {len(data)}")

    (
        riff,
        riff_size,
        wave_id,
        fmt_id,
        fmt_size,
        format_tag,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        data_id,
        data_size,
    ) = _HEADER_STRUCT.unpack_from(data)

    if riff != b"RIFF" or wave_id != b"WAVE":
        raise WavFormatError("Not a RIFF/WAVE file")
    if fmt_id != b"fmt " or fmt_size != _FMT_CHUNK_SIZE:
        raise WavFormatError("Missing 16-byte 'fmt ' chunk")
    if format_tag != _PCM_FORMAT_TAG:
        raise WavFormatError(f"Unsupported format tag {format_tag} (only PCM)")
    if data_id != b"data":
        raise WavFormatError("Missing 'data' chunk after 'fmt '")

    try:
        audio_format = AudioFormat(
            sample_rate=sample_rate,
            channels=channels,
            bits_per_sample=bits_per_sample,
        )
    except ValueError as exc:
        raise WavFormatError(str(exc)) from exc

    if byte_rate != audio_format.byte_rate or block_align != audio_format.block_align:
        raise WavFormatError("byte rate / block align inconsistent with format")
    if riff_size != data_size + 36:
        raise WavFormatError(f"RIFF size {riff_size} does not match data size {data_size}")

    return WavHeader(audio_format=audio_format, data_size=data_size, riff_size=riff_size)
