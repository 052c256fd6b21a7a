"""Additive taps on the master bus: feedback delay and convolution reverb."""

from __future__ import annotations

import logging
import math

import numpy as np
from numpy.typing import NDArray
from scipy.signal import fftconvolve  # type: ignore[import]

from .config import SAMPLE_RATE, EffectSettings

FloatArray = NDArray[np.float64]

_LOGGER = logging.getLogger("moodscore.effects")

# Convolver loudness calibration (matches browser ConvolverNode normalisation)
_GAIN_CALIBRATION_DB = -58.0
_GAIN_CALIBRATION_SAMPLE_RATE = 44_100.0
_MIN_POWER = 0.000125


def feedback_delay(signal: FloatArray, delay_samples: int, feedback: float) -> FloatArray:
    """
    Output of a delay line whose output is fed back into its input.

    ``y[n] = x[n - D] + feedback * y[n - D]``. Works along the last axis, one
    block of ``D`` samples at a time, so the cost does not grow with ``D``.
    """
    output = np.zeros_like(signal)
    total = signal.shape[-1]
    if delay_samples <= 0 or delay_samples >= total:
        return output

    for start in range(delay_samples, total, delay_samples):
        end = min(start + delay_samples, total)
        src = slice(start - delay_samples, end - delay_samples)
        output[..., start:end] = signal[..., src] + feedback * output[..., src]
    return output


def delay_tap(
    master: FloatArray, effects: EffectSettings, sr: int = SAMPLE_RATE
) -> FloatArray:
    """Wet delay contribution for the master bus."""
    delay_samples = int(round(effects.delay_seconds * sr))
    return effects.delay_wet * feedback_delay(master, delay_samples, effects.delay_feedback)


def impulse_response(
    seconds: float,
    channels: int,
    rng: np.random.Generator,
    sr: int = SAMPLE_RATE,
) -> FloatArray:
    """Decaying white noise, one independent row per channel."""
    length = max(1, int(round(seconds * sr)))
    decay = (1.0 - np.arange(length, dtype=np.float64) / length) ** 2
    noise = rng.random((channels, length)) * 2.0 - 1.0
    return noise * decay


def normalize_impulse(impulse: FloatArray, sr: int = SAMPLE_RATE) -> FloatArray:
    """Scale a response so the reverb sits near the loudness of the dry signal."""
    power = math.sqrt(float(np.sum(impulse * impulse)) / impulse.size)
    if not math.isfinite(power) or power < _MIN_POWER:
        power = _MIN_POWER
    scale = 1.0 / power
    scale *= 10 ** (_GAIN_CALIBRATION_DB * 0.05)
    scale *= _GAIN_CALIBRATION_SAMPLE_RATE / sr
    return impulse * scale


def reverb_tap(
    master: FloatArray,
    effects: EffectSettings,
    rng: np.random.Generator,
    sr: int = SAMPLE_RATE,
) -> FloatArray:
    """Wet reverb contribution: each channel convolved with its own response."""
    channels, frames = master.shape
    impulse = normalize_impulse(impulse_response(effects.reverb_seconds, channels, rng, sr), sr)
    wet = np.empty_like(master)
    for channel in range(channels):
        convolved = fftconvolve(master[channel], impulse[channel], mode="full")
        wet[channel] = convolved[:frames]
    _LOGGER.debug("Reverb impulse: %d samples x %d channels", impulse.shape[1], channels)
    return effects.reverb_wet * wet
