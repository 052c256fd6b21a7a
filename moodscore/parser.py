"""
Description → SynthesisParameters.

Every field is decided by its own ordered rule table. Rules are checked
highest priority first; the first rule that matches wins, otherwise the
field default applies. Matching is plain substring search on the
lower-cased description, so negations ("no drums") still match.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from .config import (
    MAJOR_PROGRESSION,
    MINOR_PROGRESSION,
    SCALES,
    Chord,
    SynthesisParameters,
    Waveform,
)

_LOGGER = logging.getLogger("moodscore.parser")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class KeywordRule(Generic[T]):
    """Yields ``value`` when any keyword occurs in the text."""

    name: str
    keywords: tuple[str, ...]
    value: T

    def apply(self, text: str) -> T | None:
        if any(keyword in text for keyword in self.keywords):
            return self.value
        return None


@dataclass(frozen=True, slots=True)
class PatternRule(Generic[T]):
    """Yields ``convert(first group)`` for the first regex match."""

    name: str
    pattern: re.Pattern[str]
    convert: Callable[[str], T]

    def apply(self, text: str) -> T | None:
        match = self.pattern.search(text)
        if match is None:
            return None
        return self.convert(match.group(1))


Rule = KeywordRule[T] | PatternRule[T]


@dataclass(frozen=True, slots=True)
class FieldRules(Generic[T]):
    field: str
    rules: tuple[Rule[T], ...]
    default: T

    def resolve(self, text: str) -> tuple[T, str]:
        """Return the decided value and the name of the deciding rule."""
        for rule in self.rules:
            value = rule.apply(text)
            if value is not None:
                return value, rule.name
        return self.default, "default"


# -----------------------------------------------------------------------------
# Rule tables (highest priority first)
# -----------------------------------------------------------------------------

TEMPO_RULES: FieldRules[int] = FieldRules(
    "beats_per_minute",
    (
        PatternRule("explicit_bpm", re.compile(r"(\d+)\s*bpm"), int),
        KeywordRule("fast", ("fast", "upbeat"), 140),
        KeywordRule("slow", ("slow",), 80),
    ),
    120,
)

SCALE_RULES: FieldRules[tuple[int, ...]] = FieldRules(
    "scale_degrees",
    (
        KeywordRule("pentatonic", ("pentatonic",), SCALES["pentatonic"]),
        KeywordRule("dissonant", ("dissonant", "atonal"), SCALES["dissonant"]),
        KeywordRule("minor", ("minor",), SCALES["minor"]),
    ),
    SCALES["major"],
)

MINOR_RULES: FieldRules[bool] = FieldRules(
    "is_minor",
    (KeywordRule("minor", ("minor",), True),),
    False,
)

DRUM_RULES: FieldRules[bool] = FieldRules(
    "enable_drums",
    (KeywordRule("drums", ("drum", "beat", "percussion", "heartbeat"), True),),
    False,
)

HARMONY_RULES: FieldRules[bool] = FieldRules(
    "enable_harmony",
    (KeywordRule("harmony", ("pad", "string", "choir", "chord"), True),),
    False,
)

BASS_RULES: FieldRules[bool] = FieldRules(
    "enable_bass",
    (KeywordRule("bass", ("bass", "drone", "rumble"), True),),
    False,
)

MELODY_RULES: FieldRules[bool] = FieldRules(
    "enable_melody",
    (
        KeywordRule(
            "melody",
            ("melody", "piano", "bell", "music box", "glockenspiel"),
            True,
        ),
    ),
    False,
)

REVERB_RULES: FieldRules[bool] = FieldRules(
    "enable_reverb",
    (KeywordRule("reverb", ("reverb",), True),),
    False,
)

DELAY_RULES: FieldRules[bool] = FieldRules(
    "enable_delay",
    (KeywordRule("delay", ("delay",), True),),
    False,
)

HARMONY_WAVEFORM_RULES: FieldRules[Waveform] = FieldRules(
    "harmony_waveform",
    (
        KeywordRule("synth", ("synth",), "square"),
        KeywordRule("smooth", ("choir", "soft"), "sine"),
    ),
    "sawtooth",
)

BASS_WAVEFORM_RULES: FieldRules[Waveform] = FieldRules(
    "bass_waveform",
    (KeywordRule("smooth", ("rumble", "drone"), "sine"),),
    "square",
)

MELODY_WAVEFORM_RULES: FieldRules[Waveform] = FieldRules(
    "melody_waveform",
    (KeywordRule("smooth", ("bell", "music box", "glockenspiel", "piano"), "sine"),),
    "triangle",
)

DETUNE_RULES: FieldRules[float] = FieldRules(
    "detune_cents",
    (KeywordRule("detuned", ("detuned",), -25.0),),
    0.0,
)

STRING_SPREAD_RULES: FieldRules[float] = FieldRules(
    "string_detune_spread",
    (KeywordRule("strings", ("string",), 5.0),),
    0.0,
)

HEARTBEAT_RULES: FieldRules[bool] = FieldRules(
    "heartbeat",
    (KeywordRule("heartbeat", ("heartbeat",), True),),
    False,
)

MELODY_DECAY_RULES: FieldRules[bool] = FieldRules(
    "melody_long_decay",
    (KeywordRule("struck", ("piano", "bell"), True),),
    False,
)

FIELD_RULES: tuple[FieldRules[Any], ...] = (
    TEMPO_RULES,
    SCALE_RULES,
    MINOR_RULES,
    DRUM_RULES,
    HARMONY_RULES,
    BASS_RULES,
    MELODY_RULES,
    REVERB_RULES,
    DELAY_RULES,
    HARMONY_WAVEFORM_RULES,
    BASS_WAVEFORM_RULES,
    MELODY_WAVEFORM_RULES,
    DETUNE_RULES,
    STRING_SPREAD_RULES,
    HEARTBEAT_RULES,
    MELODY_DECAY_RULES,
)


def progression_for(is_minor: bool) -> tuple[Chord, ...]:
    return MINOR_PROGRESSION if is_minor else MAJOR_PROGRESSION


def _resolve_all(
    description: str, tables: Sequence[FieldRules[Any]] = FIELD_RULES
) -> dict[str, tuple[object, str]]:
    text = description.lower()
    return {table.field: table.resolve(text) for table in tables}


def explain(description: str) -> dict[str, str]:
    """Map each parameter field to the name of the rule that decided it."""

    decisions = {field: rule for field, (_, rule) in _resolve_all(description).items()}
    decisions["chord_progression"] = decisions["is_minor"]
    return decisions


def parse(description: str) -> SynthesisParameters:
    """Derive synthesis parameters from a free-form description. Never fails."""

    values = {field: value for field, (value, _) in _resolve_all(description).items()}
    is_minor = bool(values["is_minor"])
    params = SynthesisParameters.model_validate(
        {**values, "chord_progression": progression_for(is_minor)}
    )
    _LOGGER.debug(
        "Parsed description (%d chars): bpm=%d layers=%s",
        len(description),
        params.beats_per_minute,
        ",".join(params.enabled_layers) or "none",
    )
    return params
