from __future__ import annotations

import sys
from typing import IO

from .config import SynthesisParameters
from .dx import RenderHooks
from .spinner import Spinner, render_error


class RichIndicator:
    """Render indicator that maps hooks to spinner updates."""

    def __init__(
        self,
        *,
        stream: IO[str] | None = None,
        enabled: bool | None = None,
        report_errors: bool = True,
    ) -> None:
        self._stream = stream or sys.stderr
        self._report_errors = report_errors
        self._spinner = Spinner("Starting", stream=self._stream, enabled=enabled)
        self._started = False
        self._stopped = False

    def render_hooks(self) -> RenderHooks:
        return RenderHooks(
            on_start=self._on_render_start,
            on_parse_end=self._on_parse_end,
            on_synth_start=self._on_synth_start,
            on_synth_end=self._on_synth_end,
            on_end=self._on_render_end,
            on_error=self._on_render_error,
        )

    @property
    def message(self) -> str:
        return self._spinner.message

    def _start(self, message: str) -> None:
        if self._stopped:
            return
        self._spinner.update(message)
        if not self._started:
            self._spinner.start()
            self._started = True

    def _stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._spinner.stop()

    def _on_render_start(self) -> None:
        self._start("Reading description")

    def _on_parse_end(self, params: SynthesisParameters) -> None:
        layers = ", ".join(params.enabled_layers) or "silence"
        self._start(f"{params.beats_per_minute} bpm: {layers}")

    def _on_synth_start(self) -> None:
        self._start("Synthesizing layers")

    def _on_synth_end(self) -> None:
        self._start("Finalizing audio")

    def _on_render_end(self) -> None:
        self._stop()

    def _on_render_error(self, exc: Exception) -> None:
        self._stop()
        if self._report_errors:
            render_error("render", exc, stream=self._stream)
