from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from functools import cached_property
from pathlib import Path
from typing import Literal

import numpy as np
from numpy.typing import DTypeLike, NDArray
from pydantic import BaseModel, ConfigDict

from .audio import AudioBuffer, FloatArray, encode_wav, write_wav
from .config import SettingsInput, SynthesisParameters
from .errors import InvalidConfigError
from .logging_utils import debug_enabled
from .parser import parse
from .renderer import render as render_parameters

_LOGGER = logging.getLogger("moodscore.dx")

HookKind = Literal["start", "parse_end", "synth_start", "synth_end", "end", "error"]


class RenderHooks(BaseModel):
    on_start: Callable[[], None] | None = None
    on_parse_end: Callable[[SynthesisParameters], None] | None = None
    on_synth_start: Callable[[], None] | None = None
    on_synth_end: Callable[[], None] | None = None
    on_end: Callable[[], None] | None = None
    on_error: Callable[[Exception], None] | None = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


class Preview(BaseModel):
    """A rendered description: parameters, samples, and the encoded WAV."""

    description: str
    parameters: SynthesisParameters
    buffer: AudioBuffer

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    @cached_property
    def wav_bytes(self) -> bytes:
        return encode_wav(self.buffer)

    @property
    def sample_rate(self) -> int:
        return self.buffer.sample_rate

    @property
    def duration(self) -> float:
        return self.buffer.duration

    def to_numpy(self) -> FloatArray:
        return self.buffer.samples

    def __array__(self, dtype: DTypeLike | None = None) -> NDArray[np.generic]:
        return np.asarray(self.buffer.samples, dtype=dtype)

    def save(self, path: str | Path) -> Path:
        return write_wav(path, self.buffer)


def _emit(
    hooks: RenderHooks | None,
    kind: HookKind,
    *,
    parameters: SynthesisParameters | None = None,
    error: Exception | None = None,
) -> None:
    if hooks is None:
        return
    try:
        match kind:
            case "start":
                if hooks.on_start is not None:
                    hooks.on_start()
            case "parse_end":
                if hooks.on_parse_end is not None and parameters is not None:
                    hooks.on_parse_end(parameters)
            case "synth_start":
                if hooks.on_synth_start is not None:
                    hooks.on_synth_start()
            case "synth_end":
                if hooks.on_synth_end is not None:
                    hooks.on_synth_end()
            case "end":
                if hooks.on_end is not None:
                    hooks.on_end()
            case "error":
                if hooks.on_error is not None and error is not None:
                    hooks.on_error(error)
            case _:
                raise InvalidConfigError(f"Unknown render hook kind: {kind}")
    except Exception as exc:
        _LOGGER.warning("Render hook failed: %s", exc, exc_info=debug_enabled())


def _resolve_rng(
    rng: np.random.Generator | None, seed: int | None
) -> np.random.Generator | None:
    if rng is not None and seed is not None:
        raise InvalidConfigError("pass either rng or seed, not both")
    if seed is not None:
        return np.random.default_rng(seed)
    return rng


def render(
    description: str,
    *,
    settings: SettingsInput = None,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
    parallel: bool = False,
    hooks: RenderHooks | None = None,
) -> Preview:
    """Parse a description and render it. ``seed`` fixes the melody."""

    if not isinstance(description, str):
        raise InvalidConfigError(
            f"description must be a string, got {type(description).__name__}"
        )
    melody_rng = _resolve_rng(rng, seed)

    _emit(hooks, "start")
    try:
        parameters = parse(description)
        _emit(hooks, "parse_end", parameters=parameters)
        _emit(hooks, "synth_start")
        buffer = render_parameters(
            parameters, settings=settings, rng=melody_rng, parallel=parallel
        )
        _emit(hooks, "synth_end")
        _emit(hooks, "end")
        return Preview(description=description, parameters=parameters, buffer=buffer)
    except Exception as exc:
        _emit(hooks, "error", error=exc)
        _LOGGER.warning("render failed: %s", exc, exc_info=debug_enabled())
        raise


async def arender(
    description: str,
    *,
    settings: SettingsInput = None,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
    parallel: bool = False,
    hooks: RenderHooks | None = None,
) -> Preview:
    """Render in a worker thread. Cancelling the awaiting task abandons the result."""

    return await asyncio.to_thread(
        render,
        description,
        settings=settings,
        rng=rng,
        seed=seed,
        parallel=parallel,
        hooks=hooks,
    )


async def arender_many(
    descriptions: Iterable[str],
    *,
    max_concurrency: int = 4,
    seed: int | None = None,
    settings: SettingsInput = None,
    parallel: bool = False,
    hooks: RenderHooks | None = None,
) -> list[Preview]:
    """
    Render a batch of descriptions concurrently, preserving input order.

    With ``seed`` set, item ``i`` uses melody seed ``seed + i``. The first
    failure cancels the renders that have not finished and is re-raised.
    """

    if max_concurrency < 1:
        raise InvalidConfigError("max_concurrency must be at least 1")
    items = list(descriptions)
    semaphore = asyncio.Semaphore(max_concurrency)

    async def _one(index: int, description: str) -> Preview:
        async with semaphore:
            return await arender(
                description,
                settings=settings,
                seed=None if seed is None else seed + index,
                parallel=parallel,
                hooks=hooks,
            )

    tasks = [asyncio.create_task(_one(i, d)) for i, d in enumerate(items)]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
