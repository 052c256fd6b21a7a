# pyright: reportUnknownVariableType=false
# pyright: reportUnknownMemberType=false
# pyright: reportUnknownArgumentType=false

"""
Architecture:

1. Primitives: oscillators, envelopes, filters
2. Schedulers: one per layer, parameters -> immutable SoundEvents
3. Layer rendering: events -> mono contribution (gain + layer filter applied)
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from functools import lru_cache
from types import MappingProxyType
from typing import Callable, TypeAlias, cast

import numpy as np
from numpy.typing import NDArray
from scipy.signal import butter, decimate, lfilter  # type: ignore[import]

from .config import (
    SAMPLE_RATE,
    Envelope,
    LayerName,
    RenderSettings,
    SoundEvent,
    SynthesisParameters,
    Waveform,
)

FloatArray: TypeAlias = NDArray[np.float64]
OscFn: TypeAlias = Callable[[float, int, int, float], FloatArray]
SchedulerFn: TypeAlias = Callable[
    [SynthesisParameters, RenderSettings, np.random.Generator],
    tuple[SoundEvent, ...],
]

# Kick: sine swept 150 Hz -> 0.01 Hz, amplitude 1 -> 0.01
KICK_START_HZ = 150.0
KICK_END_HZ = 0.01
KICK_SWEEP_SECONDS = 0.1
KICK_SECONDS = 0.15
KICK_FLOOR = 0.01

SNARE_PEAK = 0.8
SNARE_SECONDS = 0.15
SNARE_FLOOR = 0.01

CHORD_BEATS = 4
MELODY_GATE = 0.3
MELODY_FLOOR = 0.001
MELODY_ATTACK = 0.05
MELODY_STRUCK_ATTACK = 0.01
MELODY_STRUCK_DECAY_BEATS = 2.0

_MIN_BLEP_SAMPLES = 64


# =============================================================================
# PART 1: SYNTHESIS PRIMITIVES
# =============================================================================


def detuned(freq: float, cents: float) -> float:
    return freq * (2 ** (cents / 1200.0))


def _phase(freq: float, num_samples: int, sr: int, oversample: int = 1) -> FloatArray:
    """Cycle position (0..1) per sample, starting at 0."""
    t = np.arange(num_samples * oversample, dtype=np.float64) / (sr * oversample)
    return (t * freq) % 1.0


# Every oscillator starts at zero amplitude on a rising slope.


def generate_sine(
    freq: float, num_samples: int, sr: int = SAMPLE_RATE, amp: float = 1.0
) -> FloatArray:
    """Generate sine wave."""
    t = np.arange(num_samples, dtype=np.float64) / sr
    return amp * np.sin(2 * np.pi * freq * t)


def generate_triangle(
    freq: float, num_samples: int, sr: int = SAMPLE_RATE, amp: float = 1.0
) -> FloatArray:
    """Generate triangle wave."""
    p = (_phase(freq, num_samples, sr) + 0.25) % 1.0
    return amp * (2 * np.abs(2 * (p - np.floor(p + 0.5)))) - amp


def _blep(phase: FloatArray, dt: float) -> FloatArray:
    """4-point PolyBLEP residual for a unit step at phase 0."""
    corr = np.zeros_like(phase)

    # Region 1: 0 <= phase < dt
    m1 = phase < dt
    t1 = phase[m1] / dt
    corr[m1] = t1 * t1 * (2 * t1 - 3) + 1

    # Region 2: dt <= phase < 2*dt
    m2 = (phase >= dt) & (phase < 2 * dt)
    t2 = phase[m2] / dt - 1
    corr[m2] = t2 * t2 * (2 * t2 - 3)

    # Region 3: 1-2*dt < phase <= 1-dt
    m3 = (phase > 1 - 2 * dt) & (phase <= 1 - dt)
    t3 = (phase[m3] - 1) / dt + 1
    corr[m3] = t3 * t3 * (2 * t3 + 3)

    # Region 4: 1-dt < phase < 1
    m4 = phase > 1 - dt
    t4 = (phase[m4] - 1) / dt
    corr[m4] = t4 * t4 * (2 * t4 + 3) + 1
    return corr


def _downsample(signal_high: FloatArray, num_samples: int, oversample: int) -> FloatArray:
    signal = decimate(signal_high, oversample, ftype="fir", zero_phase=True)
    if len(signal) > num_samples:
        signal = signal[:num_samples]
    elif len(signal) < num_samples:
        signal = np.pad(signal, (0, num_samples - len(signal)))
    return np.asarray(signal, dtype=np.float64)


def generate_sawtooth(
    freq: float,
    num_samples: int,
    sr: int = SAMPLE_RATE,
    amp: float = 1.0,
    oversample: int = 2,
) -> FloatArray:
    """Generate anti-aliased sawtooth using 4-point PolyBLEP + oversampling."""
    if num_samples < _MIN_BLEP_SAMPLES:
        p = (_phase(freq, num_samples, sr) + 0.5) % 1.0
        return amp * (2.0 * p - 1.0)

    p = (_phase(freq, num_samples, sr, oversample) + 0.5) % 1.0
    dt = freq / (sr * oversample)
    naive = 2.0 * p - 1.0
    signal_high = naive - _blep(p, dt)
    return amp * _downsample(signal_high, num_samples, oversample)


def generate_square(
    freq: float,
    num_samples: int,
    sr: int = SAMPLE_RATE,
    amp: float = 1.0,
    oversample: int = 2,
) -> FloatArray:
    """Generate anti-aliased square wave using 4-point PolyBLEP + oversampling."""
    if num_samples < _MIN_BLEP_SAMPLES:
        p = _phase(freq, num_samples, sr)
        return amp * np.where(p < 0.5, 1.0, -1.0)

    p = _phase(freq, num_samples, sr, oversample)
    dt = freq / (sr * oversample)
    naive = np.where(p < 0.5, 1.0, -1.0)
    # Rising edge at phase 0, falling edge at phase 0.5
    correction = _blep(p, dt) - _blep((p + 0.5) % 1.0, dt)
    signal_high = naive + correction
    return amp * _downsample(signal_high, num_samples, oversample)


def generate_sweep(
    start_hz: float,
    end_hz: float,
    sweep_seconds: float,
    num_samples: int,
    sr: int = SAMPLE_RATE,
    amp: float = 1.0,
) -> FloatArray:
    """Sine whose pitch glides exponentially, then holds ``end_hz``."""
    t = np.arange(num_samples, dtype=np.float64) / sr
    if sweep_seconds > 0:
        progress = np.clip(t / sweep_seconds, 0.0, 1.0)
        freq = start_hz * (end_hz / start_hz) ** progress
    else:
        freq = np.full(num_samples, end_hz)
    phase = np.concatenate(([0.0], np.cumsum(freq[:-1]) / sr)) if num_samples else freq
    return amp * np.sin(2 * np.pi * phase)


def generate_noise(
    num_samples: int, rng: np.random.Generator, amp: float = 1.0
) -> FloatArray:
    """Generate uniform white noise in [-amp, amp)."""
    return amp * (rng.random(num_samples) * 2.0 - 1.0)


OSC_FUNCTIONS: Mapping[Waveform, OscFn] = MappingProxyType(
    {
        "sine": generate_sine,
        "triangle": generate_triangle,
        "sawtooth": generate_sawtooth,
        "square": generate_square,
    }
)


def envelope_curve(envelope: Envelope, num_samples: int, sr: int = SAMPLE_RATE) -> FloatArray:
    """Sample an attack/exponential-decay envelope."""
    t = np.arange(num_samples, dtype=np.float64) / sr
    peak = envelope.peak
    attack = envelope.attack
    decay_end = envelope.decay_to
    curve = np.full(num_samples, envelope.decay_target)

    if attack > 0:
        rising = t < attack
        curve[rising] = peak * t[rising] / attack

    if decay_end > attack:
        decaying = (t >= attack) & (t < decay_end)
        progress = (t[decaying] - attack) / (decay_end - attack)
        curve[decaying] = peak * (envelope.decay_target / peak) ** progress

    return curve


def _quantize(value: float, step: float = 0.001) -> float:
    return round(value / step) * step


@lru_cache(maxsize=512)
def _butter_cached(
    kind: str, normalized_cutoff: float
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    coeffs = butter(2, normalized_cutoff, btype=kind, output="ba")
    assert isinstance(coeffs, tuple)
    assert len(coeffs) == 2
    b_raw, a_raw = coeffs
    assert isinstance(b_raw, np.ndarray)
    assert isinstance(a_raw, np.ndarray)
    return b_raw, a_raw


def apply_lowpass(signal: FloatArray, cutoff: float, sr: int = SAMPLE_RATE) -> FloatArray:
    """Apply lowpass filter (causal, analog-style)."""
    nyquist = sr / 2
    normalized = min(max(cutoff / nyquist, 0.001), 0.99)
    b, a = _butter_cached("low", _quantize(normalized))
    filtered = lfilter(b, a, signal)
    return np.asarray(filtered, dtype=np.float64)


def apply_highpass(signal: FloatArray, cutoff: float, sr: int = SAMPLE_RATE) -> FloatArray:
    """Apply highpass filter (causal, analog-style)."""
    nyquist = sr / 2
    normalized = min(max(cutoff / nyquist, 0.001), 0.99)
    b, a = _butter_cached("high", _quantize(normalized))
    filtered = lfilter(b, a, signal)
    return np.asarray(filtered, dtype=np.float64)


def add_note(signal: FloatArray, note: FloatArray, start_index: int, sr: int = SAMPLE_RATE) -> None:
    """Safely adds a note to the signal buffer, clipping if necessary."""
    if start_index >= len(signal):
        return

    end_index = start_index + len(note)

    if end_index <= len(signal):
        signal[start_index:end_index] += note
    else:
        # Clip the note to fit the remaining signal space
        available = len(signal) - start_index
        clipped = note[:available].copy()

        # Apply quick fade-out to prevent click from abrupt cutoff
        fade_samples = min(int(sr * 0.01), available // 4)  # 10ms max
        if fade_samples > 1:
            clipped[-fade_samples:] *= np.linspace(1, 0, fade_samples)

        signal[start_index:] += clipped


# =============================================================================
# PART 2: EVENT RENDERING
# =============================================================================


def _event_span(event: SoundEvent, sr: int) -> tuple[int, int]:
    start = int(round(event.start_seconds * sr))
    end = int(round(event.end_seconds * sr))
    return start, max(0, end - start)


def render_event(
    event: SoundEvent,
    noise_rng: np.random.Generator,
    sr: int = SAMPLE_RATE,
) -> FloatArray:
    """Render one event (source -> optional highpass -> envelope)."""
    _, num_samples = _event_span(event, sr)
    if num_samples == 0:
        return np.zeros(0)

    if event.is_noise:
        source = generate_noise(num_samples, noise_rng)
    else:
        freq = detuned(cast(float, event.frequency_hz), event.detune_cents)
        if event.frequency_end_hz is not None:
            end_hz = detuned(event.frequency_end_hz, event.detune_cents)
            source = generate_sweep(freq, end_hz, event.sweep_seconds, num_samples, sr)
        else:
            source = OSC_FUNCTIONS[event.waveform](freq, num_samples, sr, 1.0)

    if event.highpass_hz is not None:
        source = apply_highpass(source, event.highpass_hz, sr)

    return source * envelope_curve(event.envelope, num_samples, sr)


def render_events(
    events: Iterable[SoundEvent],
    num_frames: int,
    noise_rng: np.random.Generator,
    sr: int = SAMPLE_RATE,
) -> FloatArray:
    """Sum events into a fresh mono signal of ``num_frames`` samples."""
    signal = np.zeros(num_frames)
    for event in events:
        start, _ = _event_span(event, sr)
        add_note(signal, render_event(event, noise_rng, sr), start, sr)
    return signal


# =============================================================================
# PART 3: LAYER SCHEDULERS
# =============================================================================


def _grid(duration: float, step: float, sr: int) -> Iterable[tuple[int, float]]:
    """Yield (index, start) for grid points inside the window, at most one per sample."""
    if not math.isfinite(step) or step <= 0:
        return
    frames = int(round(duration * sr))
    last_sample = -1
    for i in range(math.ceil(duration / step)):
        start = i * step
        sample = int(round(start * sr))
        if start >= duration or sample >= frames:
            break
        if sample == last_sample:
            continue
        last_sample = sample
        yield i, start


def _chord_spans(
    params: SynthesisParameters, settings: RenderSettings
) -> Iterable[tuple[int, float, float]]:
    """Yield (chord index, start, length) for chords that begin inside the window."""
    beat = params.beat_duration
    if not math.isfinite(beat):
        return
    span = beat * CHORD_BEATS
    for index in range(len(params.chord_progression)):
        start = index * span
        if start >= settings.duration:
            break
        yield index, start, span


def _pitch(base: float, semitones: float) -> float:
    return base * (2 ** (semitones / 12))


def percussion_events(
    params: SynthesisParameters,
    settings: RenderSettings,
    _rng: np.random.Generator,
) -> tuple[SoundEvent, ...]:
    """Kick on even beats (every beat for heartbeat), noise snare on odd beats."""
    events: list[SoundEvent] = []
    kick_env = Envelope(peak=1.0, decay_to=KICK_SWEEP_SECONDS, decay_target=KICK_FLOOR)
    snare_env = Envelope(peak=SNARE_PEAK, decay_to=SNARE_SECONDS, decay_target=SNARE_FLOOR)

    for i, start in _grid(settings.duration, params.beat_duration, settings.sample_rate):
        if i % 2 == 0 or params.heartbeat:
            events.append(
                SoundEvent(
                    start_seconds=start,
                    duration_seconds=KICK_SECONDS,
                    frequency_hz=KICK_START_HZ,
                    frequency_end_hz=KICK_END_HZ,
                    sweep_seconds=KICK_SWEEP_SECONDS,
                    waveform="sine",
                    envelope=kick_env,
                )
            )
        if i % 2 != 0 and not params.heartbeat:
            events.append(
                SoundEvent(
                    start_seconds=start,
                    duration_seconds=SNARE_SECONDS,
                    frequency_hz="noise",
                    highpass_hz=settings.snare_highpass_hz,
                    envelope=snare_env,
                )
            )
    return tuple(events)


def harmony_events(
    params: SynthesisParameters,
    settings: RenderSettings,
    _rng: np.random.Generator,
) -> tuple[SoundEvent, ...]:
    """Each chord held for four beats; strings stack a detuned pair per note."""
    spread = params.string_detune_spread
    detunes = (-spread, spread) if spread else (0.0,)
    tonic = params.scale_degrees[0]
    events: list[SoundEvent] = []

    for index, start, span in _chord_spans(params, settings):
        for offset in params.chord_progression[index]:
            freq = _pitch(settings.base_frequency, offset + tonic)
            for cents in detunes:
                events.append(
                    SoundEvent(
                        start_seconds=start,
                        duration_seconds=span,
                        frequency_hz=freq,
                        waveform=params.harmony_waveform,
                        detune_cents=cents,
                    )
                )
    return tuple(events)


def bass_events(
    params: SynthesisParameters,
    settings: RenderSettings,
    _rng: np.random.Generator,
) -> tuple[SoundEvent, ...]:
    """Chord roots one octave below the harmony."""
    tonic = params.scale_degrees[0]
    low_base = settings.base_frequency / 2
    return tuple(
        SoundEvent(
            start_seconds=start,
            duration_seconds=span,
            frequency_hz=_pitch(low_base, params.chord_progression[index][0] + tonic),
            waveform=params.bass_waveform,
        )
        for index, start, span in _chord_spans(params, settings)
    )


def melody_events(
    params: SynthesisParameters,
    settings: RenderSettings,
    rng: np.random.Generator,
) -> tuple[SoundEvent, ...]:
    """Random scale notes an octave up on a half-beat grid, gated at 70%."""
    beat = params.beat_duration
    scale = params.scale_degrees
    if params.melody_long_decay:
        attack, decay = MELODY_STRUCK_ATTACK, beat * MELODY_STRUCK_DECAY_BEATS
    else:
        attack, decay = MELODY_ATTACK, beat / 2
    attack = min(attack, decay)
    envelope = Envelope(peak=1.0, attack=attack, decay_to=decay, decay_target=MELODY_FLOOR)
    events: list[SoundEvent] = []

    for _, start in _grid(settings.duration, beat / 2, settings.sample_rate):
        if not rng.random() > MELODY_GATE:
            continue
        degree = scale[int(rng.random() * len(scale))]
        events.append(
            SoundEvent(
                start_seconds=start,
                duration_seconds=decay,
                frequency_hz=_pitch(settings.base_frequency, degree + 12),
                waveform=params.melody_waveform,
                detune_cents=params.detune_cents,
                envelope=envelope,
            )
        )
    return tuple(events)


LAYER_SCHEDULERS: Mapping[LayerName, SchedulerFn] = MappingProxyType(
    {
        "drums": percussion_events,
        "harmony": harmony_events,
        "bass": bass_events,
        "melody": melody_events,
    }
)


def _layer_filter(layer: LayerName, settings: RenderSettings) -> float | None:
    if layer == "harmony":
        return settings.harmony_cutoff_hz
    if layer == "bass":
        return settings.bass_cutoff_hz
    return None


def render_layer(
    layer: LayerName,
    params: SynthesisParameters,
    settings: RenderSettings,
    rng: np.random.Generator,
) -> FloatArray:
    """
    Schedule and render one layer into a mono contribution.

    Noise sources draw from a generator seeded by ``settings.noise_seed`` so
    only the melody depends on ``rng``.
    """
    sr = settings.sample_rate
    events = LAYER_SCHEDULERS[layer](params, settings, rng)
    noise_rng = np.random.default_rng(settings.noise_seed)
    signal = render_events(events, settings.frames, noise_rng, sr)
    signal *= settings.gains.for_layer(layer)
    cutoff = _layer_filter(layer, settings)
    if cutoff is not None:
        signal = apply_lowpass(signal, cutoff, sr)
    return signal
