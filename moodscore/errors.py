from __future__ import annotations


class MoodScoreError(Exception):
    """Base error for the MoodScore library."""


class InvalidConfigError(MoodScoreError):
    """Raised when render settings or render input cannot be validated."""


class RenderAllocationError(MoodScoreError):
    """Raised when the fixed-size render buffer cannot be allocated."""


class WavEncodeError(MoodScoreError):
    """Raised when audio cannot be represented in (or read from) a 16-bit WAV container."""
