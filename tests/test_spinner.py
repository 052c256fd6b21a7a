from __future__ import annotations

import io

import pytest

from moodscore.dx import render
from moodscore.errors import InvalidConfigError
from moodscore.indicators import RichIndicator
from moodscore.parser import parse
from moodscore.spinner import Spinner, render_error


def test_spinner_disabled_is_noop() -> None:
    spinner = Spinner("Rendering", enabled=False)
    spinner.start()
    spinner.update("Still rendering")
    assert spinner.message == "Still rendering"
    spinner.stop()


def test_spinner_context_manager_with_non_tty_stream() -> None:
    stream = io.StringIO()
    with Spinner("Rendering", stream=stream) as spinner:
        spinner.update("Encoding")
    assert stream.getvalue() == ""


def test_render_error_escapes_markup() -> None:
    stream = io.StringIO()
    render_error("render", ValueError("bad [bold]input[/bold]"), stream=stream)
    text = stream.getvalue()
    assert "render failed" in text
    assert "ValueError" in text
    assert "[bold]input[/bold]" in text


def test_indicator_tracks_render_stages() -> None:
    indicator = RichIndicator(enabled=False)
    hooks = indicator.render_hooks()
    assert hooks.on_parse_end
    hooks.on_parse_end(parse("90 bpm drums and bass"))
    assert indicator.message == "90 bpm: drums, bass"

    finished = RichIndicator(enabled=False)
    render("drums", settings={"duration": 0.5}, hooks=finished.render_hooks())
    assert finished.message == "Finalizing audio"


def test_indicator_reports_errors() -> None:
    stream = io.StringIO()
    indicator = RichIndicator(stream=stream, enabled=False)
    with pytest.raises(InvalidConfigError):
        render("drums", settings={"channels": 1}, hooks=indicator.render_hooks())
    assert "render failed" in stream.getvalue()


def test_indicator_can_leave_error_reporting_to_caller() -> None:
    stream = io.StringIO()
    indicator = RichIndicator(stream=stream, enabled=False, report_errors=False)
    with pytest.raises(InvalidConfigError):
        render("drums", settings={"channels": 1}, hooks=indicator.render_hooks())
    assert stream.getvalue() == ""
