"""Tests for log setup."""

import logging
import re

import pytest

from tinyclaw.logger import setup_logging


@pytest.fixture
def restore_logger():
    logger = logging.getLogger("tinyclaw")
    level = logger.level
    yield
    setup_logging(None)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(level)


def test_log_lines_written_to_file_and_console(tmp_path, capsys, restore_logger):
    log_file = tmp_path / "logs" / "queue.log"
    setup_logging(log_file, "INFO")

    logging.getLogger("tinyclaw.processor").info("Queue processor started")
    logging.getLogger("tinyclaw.processor").debug("hidden")

    line = log_file.read_text().strip()
    assert re.fullmatch(r"\[\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\] \[INFO\] Queue processor started", line)
    assert "Queue processor started" in capsys.readouterr().out


def test_setup_is_repeatable(tmp_path, restore_logger):
    log_file = tmp_path / "queue.log"
    setup_logging(log_file, "DEBUG")
    setup_logging(log_file, "DEBUG")

    logging.getLogger("tinyclaw").debug("once")

    assert log_file.read_text().count("once") == 1


def test_log_file_appends(tmp_path, restore_logger):
    log_file = tmp_path / "queue.log"
    log_file.write_text("[earlier] [INFO] previous run\n")
    setup_logging(log_file)

    logging.getLogger("tinyclaw").warning("new run")

    content = log_file.read_text()
    assert content.startswith("[earlier] [INFO] previous run\n")
    assert "[WARNING] new run" in content
