from __future__ import annotations

from .audio import AudioBuffer, WavHeader, encode_wav, parse_wav_header, read_wav, write_wav
from .config import (
    CHANNELS,
    RENDER_SECONDS,
    SAMPLE_RATE,
    EffectSettings,
    Envelope,
    MixGains,
    RenderSettings,
    SoundEvent,
    SynthesisParameters,
    Waveform,
)
from .dx import Preview, RenderHooks, arender, arender_many, render
from .errors import InvalidConfigError, MoodScoreError, RenderAllocationError, WavEncodeError
from .logging_utils import configure_logging as _configure_logging
from .parser import explain, parse
from .renderer import render as render_parameters

__all__ = [
    "CHANNELS",
    "RENDER_SECONDS",
    "SAMPLE_RATE",
    "AudioBuffer",
    "EffectSettings",
    "Envelope",
    "InvalidConfigError",
    "MixGains",
    "MoodScoreError",
    "Preview",
    "RenderAllocationError",
    "RenderHooks",
    "RenderSettings",
    "SoundEvent",
    "SynthesisParameters",
    "WavEncodeError",
    "WavHeader",
    "Waveform",
    "arender",
    "arender_many",
    "encode_wav",
    "explain",
    "parse",
    "parse_wav_header",
    "read_wav",
    "render",
    "render_parameters",
    "write_wav",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
