from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from .audio import AudioBuffer, FloatArray
from .config import (
    LAYER_ORDER,
    LayerName,
    RenderSettings,
    SettingsInput,
    SynthesisParameters,
    coerce_settings,
)
from .effects import delay_tap, reverb_tap
from .errors import RenderAllocationError
from .synth import render_layer

_LOGGER = logging.getLogger("moodscore.renderer")

# Second entropy word for the reverb noise, so it never replays the snare noise
_REVERB_STREAM = 1


def _render_layers(
    layers: tuple[LayerName, ...],
    params: SynthesisParameters,
    settings: RenderSettings,
    rng: np.random.Generator,
    *,
    parallel: bool,
) -> Mapping[LayerName, FloatArray]:
    if not parallel or len(layers) < 2:
        return {layer: render_layer(layer, params, settings, rng) for layer in layers}

    # Only the melody touches ``rng``, so sharing it across workers is safe.
    with ThreadPoolExecutor(max_workers=len(layers), thread_name_prefix="moodscore-layer") as pool:
        futures = {
            layer: pool.submit(render_layer, layer, params, settings, rng) for layer in layers
        }
        return {layer: future.result() for layer, future in futures.items()}


def render(
    params: SynthesisParameters,
    *,
    settings: SettingsInput = None,
    rng: np.random.Generator | None = None,
    parallel: bool = False,
) -> AudioBuffer:
    """
    Render parameters into a fixed-length stereo buffer.

    Layers are summed in a fixed order onto a mono master bus and scaled by
    the master gain. The dry bus is copied to every channel; enabled effects
    then add their wet taps, computed from the complete dry bus. No clipping
    happens here.

    Args:
        params: Parsed synthesis parameters.
        settings: RenderSettings (or a mapping of overrides); defaults apply when None.
        rng: Random source for the melody; a fresh unseeded generator when None.
        parallel: Evaluate the layers on a thread pool. Output is identical.
    """
    resolved = coerce_settings(settings)
    local_rng = rng or np.random.default_rng()
    started = time.perf_counter()

    buffer = AudioBuffer.allocate(
        resolved.frames,
        channels=resolved.channels,
        sample_rate=resolved.sample_rate,
    )
    layers = params.enabled_layers
    try:
        contributions = _render_layers(layers, params, resolved, local_rng, parallel=parallel)
        master = np.zeros(buffer.frames)
        for layer in LAYER_ORDER:
            if layer in contributions:
                master += contributions[layer]
        master *= resolved.gains.master
        bus = np.tile(master, (buffer.channels, 1))
    except MemoryError as exc:
        _LOGGER.error("Out of memory while mixing %d frames", buffer.frames)
        raise RenderAllocationError("out of memory while mixing layers") from exc

    buffer.mix(bus)
    if params.enable_reverb:
        reverb_rng = np.random.default_rng((resolved.noise_seed, _REVERB_STREAM))
        buffer.mix(reverb_tap(bus, resolved.effects, reverb_rng, resolved.sample_rate))
    if params.enable_delay:
        buffer.mix(delay_tap(bus, resolved.effects, resolved.sample_rate))

    _LOGGER.debug(
        "Rendered %.2fs layers=%s reverb=%s delay=%s peak=%.3f in %.3fs",
        buffer.duration,
        ",".join(layers) or "none",
        params.enable_reverb,
        params.enable_delay,
        buffer.peak(),
        time.perf_counter() - started,
    )
    return buffer
