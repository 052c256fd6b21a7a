import logging

import pytest

from moodscore.logging_utils import (
    DEBUG_ENV,
    LOG_DIR_ENV,
    LOG_LEVEL_ENV,
    configure_logging,
    debug_enabled,
    get_log_dir,
    get_log_path,
    log_exception,
    setup_file_logger,
)


def test_log_path_uses_env_override(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    assert get_log_dir() == tmp_path
    assert get_log_path("demo.log") == tmp_path / "demo.log"


def test_default_log_dir(monkeypatch) -> None:
    monkeypatch.delenv(LOG_DIR_ENV, raising=False)
    assert get_log_dir().parts[-3:] == (".cache", "moodscore", "logs")


def test_setup_file_logger_creates_handler(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    logger_name = f"moodscore.test.{tmp_path.name}"
    path = setup_file_logger(logger_name, "moodscore.log")
    assert path == tmp_path / "moodscore.log"
    logger = logging.getLogger(logger_name)
    assert any(isinstance(handler, logging.FileHandler) for handler in logger.handlers)
    setup_file_logger(logger_name, "moodscore.log")
    assert sum(isinstance(h, logging.FileHandler) for h in logger.handlers) == 1
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_log_exception_appends_traceback(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    try:
        raise ValueError("bad mood")
    except ValueError as exc:
        path = log_exception("render", exc)
    assert path == tmp_path / "moodscore.log"
    text = path.read_text(encoding="utf-8")
    assert "render failed: ValueError: bad mood" in text
    assert "Traceback" in text


def test_debug_flag(monkeypatch) -> None:
    monkeypatch.delenv(DEBUG_ENV, raising=False)
    assert debug_enabled() is False
    monkeypatch.setenv(DEBUG_ENV, "1")
    assert debug_enabled() is True


@pytest.fixture
def _clean_root_logger():
    logger = logging.getLogger("moodscore")
    before = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if handler not in before:
            logger.removeHandler(handler)
    logger.setLevel(level)


def test_configure_logging_level_env(monkeypatch, _clean_root_logger) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV, "debug")
    configure_logging()
    configure_logging()
    logger = _clean_root_logger
    assert logger.level == logging.DEBUG
    assert any(isinstance(h, logging.NullHandler) for h in logger.handlers)
    assert sum(type(h) is logging.StreamHandler for h in logger.handlers) == 1


def test_configure_logging_ignores_unknown_level(monkeypatch, caplog, _clean_root_logger) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV, "chatty")
    caplog.set_level(logging.WARNING, logger="moodscore.logging")
    configure_logging()
    assert "Ignoring unknown" in caplog.text
    assert not any(type(h) is logging.StreamHandler for h in _clean_root_logger.handlers)
