import numpy as np
import pytest

from moodscore.audio import encode_wav, parse_wav_header, pcm_samples
from moodscore.config import RenderSettings
from moodscore.effects import delay_tap
from moodscore.errors import InvalidConfigError
from moodscore.parser import parse
from moodscore.renderer import render

SHORT = RenderSettings(duration=2.0)


def test_no_layers_renders_full_length_silence() -> None:
    buffer = render(parse("A quiet afternoon"))
    assert buffer.samples.shape == (2, 441_000)
    assert not np.any(buffer.samples)
    data = encode_wav(buffer)
    assert len(data) == 44 + 441_000 * 4
    assert not np.any(pcm_samples(data))


def test_effects_on_silence_stay_silent() -> None:
    buffer = render(parse("quiet room with reverb and delay"), settings=SHORT)
    assert not np.any(buffer.samples)


def test_render_without_melody_is_deterministic() -> None:
    params = parse("fast drums with string pads and a bass drone, reverb and delay")
    assert not params.enable_melody
    first = render(params, settings=SHORT, rng=np.random.default_rng(1))
    second = render(params, settings=SHORT, rng=np.random.default_rng(2))
    assert np.array_equal(first.samples, second.samples)
    assert encode_wav(first) == encode_wav(second)


def test_melody_follows_rng_seed() -> None:
    params = parse("a lonely melody")
    first = render(params, settings=SHORT, rng=np.random.default_rng(5))
    again = render(params, settings=SHORT, rng=np.random.default_rng(5))
    other = render(params, settings=SHORT, rng=np.random.default_rng(6))
    assert np.array_equal(first.samples, again.samples)
    assert not np.array_equal(first.samples, other.samples)


def test_parallel_layers_match_serial() -> None:
    params = parse("upbeat drums, synth pads, bass, bell melody")
    serial = render(params, settings=SHORT, rng=np.random.default_rng(3))
    parallel = render(params, settings=SHORT, rng=np.random.default_rng(3), parallel=True)
    assert np.array_equal(serial.samples, parallel.samples)


def test_dry_mix_is_identical_on_both_channels() -> None:
    buffer = render(parse("drums and bass"), settings=SHORT)
    assert np.array_equal(buffer.samples[0], buffer.samples[1])
    assert np.any(buffer.samples)


def test_delay_is_an_additive_tap() -> None:
    dry_params = parse("drums and bass")
    wet_params = dry_params.model_copy(update={"enable_delay": True})
    dry = render(dry_params, settings=SHORT)
    wet = render(wet_params, settings=SHORT)
    expected = delay_tap(dry.samples, SHORT.effects)
    assert np.allclose(wet.samples - dry.samples, expected)


def test_reverb_decorrelates_channels() -> None:
    buffer = render(parse("drums with heavy reverb"), settings=SHORT)
    assert not np.array_equal(buffer.samples[0], buffer.samples[1])


def test_everything_enabled_encodes() -> None:
    params = parse(
        "fast heartbeat drums, detuned synth strings, rumble bass, "
        "piano melody, reverb and delay"
    )
    buffer = render(params, rng=np.random.default_rng(0))
    data = encode_wav(buffer)
    assert parse_wav_header(data).frames == 441_000
    assert np.all(np.isfinite(buffer.samples))


def test_invalid_settings_mapping() -> None:
    with pytest.raises(InvalidConfigError):
        render(parse("drums"), settings={"sample_rate": 48_000})


def test_huge_tempo_renders_within_the_window() -> None:
    params = parse("10000000 bpm drums")
    assert params.beats_per_minute == 10_000_000
    buffer = render(params, settings={"duration": 0.1})
    assert buffer.samples.shape == (2, 4410)
    assert np.all(np.isfinite(buffer.samples))
