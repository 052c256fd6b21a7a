from __future__ import annotations

import logging
import math
from types import MappingProxyType
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidConfigError

_LOGGER = logging.getLogger("moodscore.config")

Waveform = Literal["sine", "square", "sawtooth", "triangle"]
ScaleName = Literal["major", "minor", "dissonant", "pentatonic"]
LayerName = Literal["drums", "harmony", "bass", "melody"]
Chord = tuple[int, int, int]
NOISE: Literal["noise"] = "noise"

# -----------------------------------------------------------------------------
# Engine contract
# -----------------------------------------------------------------------------

SAMPLE_RATE = 44_100
CHANNELS = 2
RENDER_SECONDS = 10.0
BASE_FREQUENCY = 220.0  # A3

# Shortest beat: half a beat lasts one sample
MIN_BEAT_SECONDS = 2.0 / SAMPLE_RATE

# A feedback cycle cannot delay by less than one browser render quantum
RENDER_QUANTUM_FRAMES = 128
DEFAULT_DELAY_SECONDS = RENDER_QUANTUM_FRAMES / SAMPLE_RATE

LAYER_ORDER: tuple[LayerName, ...] = ("drums", "harmony", "bass", "melody")

SCALES: Mapping[ScaleName, tuple[int, ...]] = MappingProxyType(
    {
        "major": (0, 2, 4, 5, 7, 9, 11),
        "minor": (0, 2, 3, 5, 7, 8, 10),
        "dissonant": (0, 1, 4, 5, 8, 9),
        "pentatonic": (0, 2, 4, 7, 9),
    }
)

# I-V-vi-IV and i-VI-III-VII, as semitone offsets above the tonic
MAJOR_PROGRESSION: tuple[Chord, ...] = ((0, 4, 7), (7, 11, 2), (9, 0, 4), (5, 9, 0))
MINOR_PROGRESSION: tuple[Chord, ...] = ((0, 3, 7), (8, 0, 3), (3, 7, 10), (10, 2, 5))
PROGRESSION_LENGTH = 4


# -----------------------------------------------------------------------------
# Tunables
# -----------------------------------------------------------------------------


class MixGains(BaseModel):
    """Per-layer and master gain constants.

    The defaults keep the usual layer combinations inside [-1, 1]; descriptions
    that enable every layer plus both effects can exceed it, which the WAV
    encoder clamps.
    """

    drums: float = Field(default=0.8, ge=0.0)
    harmony: float = Field(default=0.4, ge=0.0)
    bass: float = Field(default=0.7, ge=0.0)
    melody: float = Field(default=0.6, ge=0.0)
    master: float = Field(default=0.5, ge=0.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def for_layer(self, layer: LayerName) -> float:
        return float(getattr(self, layer))


class EffectSettings(BaseModel):
    delay_seconds: float = Field(default=DEFAULT_DELAY_SECONDS, gt=0.0, le=1.0)
    delay_feedback: float = Field(default=0.4, ge=0.0, lt=1.0)
    delay_wet: float = Field(default=0.5, ge=0.0)
    reverb_seconds: float = Field(default=2.0, gt=0.0)
    reverb_wet: float = Field(default=0.6, ge=0.0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class RenderSettings(BaseModel):
    """Everything the renderer needs besides the parsed parameters."""

    duration: float = Field(default=RENDER_SECONDS, gt=0.0, le=RENDER_SECONDS)
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS
    base_frequency: float = Field(default=BASE_FREQUENCY, gt=0.0)
    harmony_cutoff_hz: float = Field(default=800.0, gt=0.0)
    bass_cutoff_hz: float = Field(default=400.0, gt=0.0)
    snare_highpass_hz: float = Field(default=1500.0, gt=0.0)
    noise_seed: int = 0
    gains: MixGains = Field(default_factory=MixGains)
    effects: EffectSettings = Field(default_factory=EffectSettings)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("sample_rate")
    @classmethod
    def _fixed_sample_rate(cls, value: int) -> int:
        if value != SAMPLE_RATE:
            raise ValueError(f"sample_rate must be {SAMPLE_RATE}")
        return value

    @field_validator("channels")
    @classmethod
    def _fixed_channels(cls, value: int) -> int:
        if value != CHANNELS:
            raise ValueError(f"channels must be {CHANNELS}")
        return value

    @property
    def frames(self) -> int:
        return int(round(self.duration * self.sample_rate))


SettingsInput = RenderSettings | Mapping[str, object] | None


def coerce_settings(settings: SettingsInput) -> RenderSettings:
    """Accept a RenderSettings, a plain mapping, or None (defaults)."""

    if settings is None:
        return RenderSettings()
    if isinstance(settings, RenderSettings):
        return settings
    try:
        return RenderSettings.model_validate(dict(settings))
    except ValidationError as exc:
        _LOGGER.warning("Failed to parse render settings: %s", exc)
        raise InvalidConfigError(str(exc)) from exc


# -----------------------------------------------------------------------------
# Parsed description
# -----------------------------------------------------------------------------


class SynthesisParameters(BaseModel):
    """Read-only synthesis inputs derived once per description."""

    beats_per_minute: int = Field(default=120, ge=0)
    scale_degrees: tuple[int, ...] = SCALES["major"]
    is_minor: bool = False
    chord_progression: tuple[Chord, ...] = MAJOR_PROGRESSION

    enable_drums: bool = False
    enable_harmony: bool = False
    enable_bass: bool = False
    enable_melody: bool = False
    enable_reverb: bool = False
    enable_delay: bool = False

    harmony_waveform: Waveform = "sawtooth"
    bass_waveform: Waveform = "square"
    melody_waveform: Waveform = "triangle"
    detune_cents: float = 0.0
    string_detune_spread: float = Field(default=0.0, ge=0.0)

    heartbeat: bool = False
    melody_long_decay: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("scale_degrees")
    @classmethod
    def _check_scale(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if not value:
            raise ValueError("scale_degrees must not be empty")
        if any(degree < 0 or degree > 11 for degree in value):
            raise ValueError("scale_degrees must lie within one octave (0-11)")
        if any(b <= a for a, b in zip(value, value[1:])):
            raise ValueError("scale_degrees must be strictly increasing")
        return value

    @field_validator("chord_progression")
    @classmethod
    def _check_progression(cls, value: tuple[Chord, ...]) -> tuple[Chord, ...]:
        if len(value) != PROGRESSION_LENGTH:
            raise ValueError(f"chord_progression must have exactly {PROGRESSION_LENGTH} chords")
        for chord in value:
            if any(offset < 0 or offset > 11 for offset in chord):
                raise ValueError("chord offsets must lie within one octave (0-11)")
        return value

    @property
    def beat_duration(self) -> float:
        if self.beats_per_minute <= 0:
            return math.inf
        return max(60.0 / self.beats_per_minute, MIN_BEAT_SECONDS)

    def layer_enabled(self, layer: LayerName) -> bool:
        return bool(getattr(self, f"enable_{layer}"))

    @property
    def enabled_layers(self) -> tuple[LayerName, ...]:
        return tuple(layer for layer in LAYER_ORDER if self.layer_enabled(layer))


# -----------------------------------------------------------------------------
# Scheduled sound
# -----------------------------------------------------------------------------


class Envelope(BaseModel):
    """Linear attack from silence to ``peak``, then exponential decay.

    ``decay_to`` is measured from the event start. The level holds at
    ``decay_target`` afterwards. ``attack == 0`` starts the event at peak.
    """

    peak: float = Field(default=1.0, gt=0.0)
    attack: float = Field(default=0.0, ge=0.0)
    decay_to: float = Field(default=0.0, ge=0.0)
    decay_target: float = Field(default=1.0, gt=0.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def sustain(cls, peak: float = 1.0) -> "Envelope":
        return cls(peak=peak, decay_target=peak)


class SoundEvent(BaseModel):
    start_seconds: float = Field(ge=0.0)
    duration_seconds: float = Field(gt=0.0)
    frequency_hz: float | Literal["noise"]
    frequency_end_hz: float | None = Field(default=None, gt=0.0)
    sweep_seconds: float = Field(default=0.0, ge=0.0)
    waveform: Waveform = "sine"
    detune_cents: float = 0.0
    highpass_hz: float | None = Field(default=None, gt=0.0)
    envelope: Envelope = Field(default_factory=Envelope.sustain)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("frequency_hz")
    @classmethod
    def _positive_frequency(cls, value: float | str) -> float | str:
        if isinstance(value, str):
            return value
        if value <= 0:
            raise ValueError("frequency_hz must be positive")
        return value

    @property
    def is_noise(self) -> bool:
        return self.frequency_hz == NOISE

    @property
    def end_seconds(self) -> float:
        return self.start_seconds + self.duration_seconds
