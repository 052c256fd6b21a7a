import io
import logging

from rich.console import Console

import moodscore.cli as cli
import moodscore.dx as dx
from moodscore.audio import parse_wav_header
from moodscore.errors import RenderAllocationError
from moodscore.logging_utils import LOG_DIR_ENV


def _capture(monkeypatch) -> io.StringIO:
    buffer = io.StringIO()
    monkeypatch.setattr(cli, "_CONSOLE", Console(file=buffer, width=200))
    return buffer


def test_inspect_prints_parameters_and_rules(monkeypatch) -> None:
    output = _capture(monkeypatch)
    assert cli.main(["inspect", "60 bpm minor strings"]) == 0
    text = output.getvalue()
    assert "beats_per_minute" in text
    assert "explicit_bpm" in text
    assert "60" in text


def test_render_writes_wav(tmp_path, monkeypatch) -> None:
    output = _capture(monkeypatch)
    target = tmp_path / "out.wav"
    assert cli.main(["render", "drums", "--output", str(target), "--seed", "1"]) == 0
    assert parse_wav_header(target.read_bytes()).frames == 441_000
    assert "out.wav" in output.getvalue()


def test_batch_writes_one_file_per_line(tmp_path, monkeypatch) -> None:
    _capture(monkeypatch)
    source = tmp_path / "moods.txt"
    source.write_text("a slow melody\n\nsoft pads\n", encoding="utf-8")
    out_dir = tmp_path / "previews"
    code = cli.main(["batch", str(source), "--output-dir", str(out_dir), "--seed", "1"])
    assert code == 0
    assert sorted(path.name for path in out_dir.iterdir()) == ["preview-00.wav", "preview-01.wav"]


def test_failure_returns_one_and_logs(tmp_path, monkeypatch) -> None:
    _capture(monkeypatch)
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    assert cli.main(["batch", str(tmp_path / "missing.txt")]) == 1
    log_text = (tmp_path / "moodscore.log").read_text(encoding="utf-8")
    assert "moodscore CLI failed" in log_text
    assert "FileNotFoundError" in log_text


def test_log_file_option_routes_library_logs(tmp_path, monkeypatch) -> None:
    _capture(monkeypatch)
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    logger = logging.getLogger("moodscore")
    before = list(logger.handlers)
    level = logger.level
    try:
        assert cli.main(["inspect", "slow drums", "--log-file", "cli.log"]) == 0
        for handler in logger.handlers:
            handler.flush()
        assert "Parsed description" in (tmp_path / "cli.log").read_text(encoding="utf-8")
    finally:
        for handler in list(logger.handlers):
            if handler not in before:
                handler.close()
                logger.removeHandler(handler)
        logger.setLevel(level)


def test_render_failure_is_reported_once(tmp_path, monkeypatch, capsys) -> None:
    _capture(monkeypatch)
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))

    def _fail(*args, **kwargs):
        raise RenderAllocationError("no room for samples")

    monkeypatch.setattr(dx, "render_parameters", _fail)
    assert cli.main(["render", "drums", "--output", str(tmp_path / "out.wav")]) == 1
    err = capsys.readouterr().err
    assert err.count("failed") == 1
    assert "no room for samples" in err
