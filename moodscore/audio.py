from __future__ import annotations

import io
import logging
import struct
from pathlib import Path
from typing import Any

import numpy as np
import soundfile as sf  # type: ignore[import]
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, field_validator

from .config import CHANNELS, SAMPLE_RATE
from .errors import InvalidConfigError, RenderAllocationError, WavEncodeError

FloatArray = NDArray[np.float64]
PcmArray = NDArray[np.int16]

_LOGGER = logging.getLogger("moodscore.audio")

HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
_PCM_FORMAT = 1
_FMT_CHUNK_SIZE = 16
_U16_MAX = 0xFFFF
_U32_MAX = 0xFFFF_FFFF
# RIFF, size, WAVE, "fmt ", fmt size, format, channels, rate, byte rate, align, bits, data, size
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


class AudioBuffer(BaseModel):
    """Fixed-size ``(channels, frames)`` float sample array.

    The array is allocated once and only ever added to; ``mix`` refuses
    contributions that would change its length.
    """

    samples: FloatArray
    sample_rate: int = SAMPLE_RATE

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    @field_validator("samples")
    @classmethod
    def _two_dimensional(cls, value: Any) -> FloatArray:
        array = np.asarray(value, dtype=np.float64)
        if array.ndim != 2:
            raise ValueError("samples must be shaped (channels, frames)")
        return array

    @classmethod
    def allocate(
        cls,
        frames: int,
        *,
        channels: int = CHANNELS,
        sample_rate: int = SAMPLE_RATE,
    ) -> "AudioBuffer":
        try:
            samples = np.zeros((channels, frames), dtype=np.float64)
        except (MemoryError, ValueError) as exc:
            _LOGGER.error("Cannot allocate %d x %d render buffer", channels, frames)
            raise RenderAllocationError(
                f"cannot allocate {channels} x {frames} sample buffer"
            ) from exc
        return cls(samples=samples, sample_rate=sample_rate)

    @property
    def channels(self) -> int:
        return int(self.samples.shape[0])

    @property
    def frames(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate

    def mix(self, contribution: FloatArray, gain: float = 1.0) -> None:
        """Add a mono ``(frames,)`` or per-channel ``(channels, frames)`` signal."""
        signal = np.asarray(contribution, dtype=np.float64)
        if signal.shape[-1] != self.frames:
            raise InvalidConfigError(
                f"contribution has {signal.shape[-1]} frames, buffer has {self.frames}"
            )
        if signal.ndim == 2 and signal.shape[0] != self.channels:
            raise InvalidConfigError(
                f"contribution has {signal.shape[0]} channels, buffer has {self.channels}"
            )
        np.add(self.samples, gain * signal, out=self.samples)

    def to_numpy(self) -> FloatArray:
        return self.samples

    def peak(self) -> float:
        if self.samples.size == 0:
            return 0.0
        return float(np.max(np.abs(self.samples)))


class WavHeader(BaseModel):
    chunk_size: int
    num_channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_bytes: int

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def frames(self) -> int:
        return self.data_bytes // self.block_align if self.block_align else 0


def _check_width(name: str, value: int, limit: int) -> None:
    if value < 0 or value > limit:
        raise WavEncodeError(f"{name}={value} does not fit the WAV header field")


def build_header(frames: int, channels: int, sample_rate: int) -> bytes:
    """The 44-byte canonical PCM header for ``frames`` interleaved frames."""
    block_align = channels * BYTES_PER_SAMPLE
    byte_rate = sample_rate * block_align
    data_bytes = frames * block_align
    _check_width("channels", channels, _U16_MAX)
    _check_width("block_align", block_align, _U16_MAX)
    _check_width("sample_rate", sample_rate, _U32_MAX)
    _check_width("byte_rate", byte_rate, _U32_MAX)
    _check_width("chunk_size", 36 + data_bytes, _U32_MAX)
    return _HEADER.pack(
        b"RIFF",
        36 + data_bytes,
        b"WAVE",
        b"fmt ",
        _FMT_CHUNK_SIZE,
        _PCM_FORMAT,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_bytes,
    )


def to_pcm16(samples: FloatArray) -> PcmArray:
    """Clamp to [-1, 1], scale by 32767 (>= 0) or 32768 (< 0), truncate toward zero."""
    clamped = np.clip(np.nan_to_num(samples, nan=0.0), -1.0, 1.0)
    scaled = np.where(clamped < 0, clamped * 32768.0, clamped * 32767.0)
    return np.trunc(scaled).astype(np.int16)


def encode_wav(buffer: AudioBuffer) -> bytes:
    """Serialize a buffer as a 16-bit PCM RIFF/WAVE byte string."""
    header = build_header(buffer.frames, buffer.channels, buffer.sample_rate)
    interleaved = to_pcm16(buffer.samples).T
    return header + interleaved.astype("<i2").tobytes()


def parse_wav_header(data: bytes) -> WavHeader:
    if len(data) < HEADER_SIZE:
        raise WavEncodeError(f"expected at least {HEADER_SIZE} bytes, got {len(data)}")
    (
        riff,
        chunk_size,
        wave,
        fmt,
        fmt_size,
        audio_format,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits,
        data_tag,
        data_bytes,
    ) = _HEADER.unpack_from(data)
    if (riff, wave, fmt, data_tag) != (b"RIFF", b"WAVE", b"fmt ", b"data"):
        raise WavEncodeError("not a canonical RIFF/WAVE header")
    if fmt_size != _FMT_CHUNK_SIZE or audio_format != _PCM_FORMAT:
        raise WavEncodeError("only uncompressed PCM with a 16-byte fmt chunk is supported")
    return WavHeader(
        chunk_size=chunk_size,
        num_channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_bytes=data_bytes,
    )


def pcm_samples(data: bytes) -> PcmArray:
    """Decode the PCM payload of ``encode_wav`` output as ``(frames, channels)``."""
    header = parse_wav_header(data)
    if header.bits_per_sample != BITS_PER_SAMPLE:
        raise WavEncodeError(f"expected 16-bit samples, got {header.bits_per_sample}")
    payload = np.frombuffer(data, dtype="<i2", count=header.data_bytes // 2, offset=HEADER_SIZE)
    return payload.reshape(-1, header.num_channels).astype(np.int16)


def write_wav(path: str | Path, buffer: AudioBuffer) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(encode_wav(buffer))
    return target


def read_wav(source: str | Path | bytes) -> AudioBuffer:
    """Load any soundfile-readable file (or raw WAV bytes) into an AudioBuffer."""
    handle: Any = io.BytesIO(source) if isinstance(source, bytes) else Path(source)
    try:
        data, sample_rate = sf.read(handle, dtype="float64", always_2d=True)  # type: ignore[reportUnknownMemberType]
    except RuntimeError as exc:
        raise WavEncodeError(f"cannot read audio: {exc}") from exc
    samples = np.ascontiguousarray(np.asarray(data, dtype=np.float64).T)
    return AudioBuffer(samples=samples, sample_rate=int(sample_rate))
