import logging

import pytest

from upscaler.utils import resolve_home_path, setup_logging


@pytest.fixture
def fresh_logger_name(request):
    name = f"upscaler-test-{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_trace_log_written_under_given_dir(tmp_path, fresh_logger_name):
    log_dir = tmp_path / "output" / "logs"
    logger = setup_logging(str(log_dir), name=fresh_logger_name)
    logger.debug("stage detail")
    for handler in logger.handlers:
        handler.flush()

    files = list(log_dir.glob("run_*.log"))
    assert len(files) == 1
    assert "stage detail" in files[0].read_text(encoding="utf-8")


@pytest.mark.parametrize("verbose, level", [(True, logging.INFO), (False, logging.WARNING)])
def test_console_level_follows_verbose(tmp_path, fresh_logger_name, verbose, level):
    logger = setup_logging(str(tmp_path), verbose=verbose, name=fresh_logger_name)
    console = [h for h in logger.handlers if not isinstance(h, logging.FileHandler)]
    assert [h.level for h in console] == [level]


def test_repeated_setup_does_not_stack_handlers(tmp_path, fresh_logger_name):
    setup_logging(str(tmp_path), name=fresh_logger_name)
    logger = setup_logging(str(tmp_path), name=fresh_logger_name)
    assert len(logger.handlers) == 2


def test_resolve_home_path(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert resolve_home_path("~/frames") == str(tmp_path / "frames")
    assert resolve_home_path("./frames") == "./frames"
