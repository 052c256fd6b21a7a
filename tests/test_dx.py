import logging

import numpy as np
import pytest

import moodscore as ms
from moodscore.audio import parse_wav_header
from moodscore.dx import Preview, RenderHooks, arender, arender_many, render
from moodscore.errors import InvalidConfigError

SHORT = {"duration": 1.0}


def test_render_returns_preview() -> None:
    preview = render("slow drums", settings=SHORT)
    assert isinstance(preview, Preview)
    assert preview.description == "slow drums"
    assert preview.parameters.beats_per_minute == 80
    assert preview.sample_rate == 44_100
    assert preview.duration == pytest.approx(1.0)
    assert preview.wav_bytes[:4] == b"RIFF"
    assert preview.wav_bytes is preview.wav_bytes
    assert parse_wav_header(preview.wav_bytes).frames == 44_100
    assert np.asarray(preview).shape == (2, 44_100)
    assert preview.to_numpy() is preview.buffer.samples


def test_seed_fixes_melody() -> None:
    first = render("a melody", seed=3, settings=SHORT)
    second = render("a melody", seed=3, settings=SHORT)
    assert first.wav_bytes == second.wav_bytes


def test_seed_and_rng_conflict() -> None:
    with pytest.raises(InvalidConfigError):
        render("drums", seed=1, rng=np.random.default_rng(1))


def test_non_string_description() -> None:
    with pytest.raises(InvalidConfigError):
        render(42)  # type: ignore[arg-type]


def test_save(tmp_path) -> None:
    preview = render("bass", settings=SHORT)
    path = preview.save(tmp_path / "bass.wav")
    assert path.read_bytes() == preview.wav_bytes


def test_package_exports() -> None:
    assert ms.render is render
    assert ms.parse("minor").is_minor
    assert ms.render_parameters(ms.parse(""), settings=SHORT).frames == 44_100


def test_hooks_fire_in_order() -> None:
    events: list[str] = []
    hooks = RenderHooks(
        on_start=lambda: events.append("start"),
        on_parse_end=lambda params: events.append(f"parse:{params.beats_per_minute}"),
        on_synth_start=lambda: events.append("synth_start"),
        on_synth_end=lambda: events.append("synth_end"),
        on_end=lambda: events.append("end"),
        on_error=lambda exc: events.append("error"),
    )
    render("90 bpm drums", settings=SHORT, hooks=hooks)
    assert events == ["start", "parse:90", "synth_start", "synth_end", "end"]


def test_hook_errors_are_logged_not_raised(caplog) -> None:
    def _boom() -> None:
        raise RuntimeError("hook exploded")

    caplog.set_level(logging.WARNING, logger="moodscore.dx")
    preview = render("drums", settings=SHORT, hooks=RenderHooks(on_start=_boom))
    assert preview.buffer.frames == 44_100
    assert "Render hook failed" in caplog.text


def test_error_hook_receives_failure() -> None:
    seen: list[Exception] = []
    hooks = RenderHooks(on_error=seen.append)
    with pytest.raises(InvalidConfigError):
        render("drums", settings={"sample_rate": 48_000}, hooks=hooks)
    assert len(seen) == 1
    assert isinstance(seen[0], InvalidConfigError)


@pytest.mark.asyncio
async def test_arender_matches_render() -> None:
    preview = await arender("a bell melody", seed=9, settings=SHORT)
    assert preview.wav_bytes == render("a bell melody", seed=9, settings=SHORT).wav_bytes


@pytest.mark.asyncio
async def test_arender_many_preserves_order_and_seeds() -> None:
    descriptions = ["a melody", "drums and bass", "soft pads"]
    previews = await arender_many(descriptions, seed=10, settings=SHORT, max_concurrency=2)
    assert [preview.description for preview in previews] == descriptions
    expected = render("a melody", seed=10, settings=SHORT)
    assert previews[0].wav_bytes == expected.wav_bytes
    assert previews[1].parameters.enable_bass


@pytest.mark.asyncio
async def test_arender_many_empty() -> None:
    assert await arender_many([]) == []


@pytest.mark.asyncio
async def test_arender_many_rejects_bad_concurrency() -> None:
    with pytest.raises(InvalidConfigError):
        await arender_many(["drums"], max_concurrency=0)


@pytest.mark.asyncio
async def test_arender_many_propagates_failure() -> None:
    with pytest.raises(InvalidConfigError):
        await arender_many(["drums", "bass"], settings={"channels": 1})
