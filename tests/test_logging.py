"""
Tests for the logging helpers and verbosity levels.
"""

import logging
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

import pointcloud_registration.pipeline.registration_pipeline  # noqa: F401  (creates the package loggers)
from pointcloud_registration.utils.logging import (
    PACKAGE_LOGGER_PREFIX,
    parse_verbose_level,
    set_log_level,
)


def _package_loggers():
    return [
        logging.getLogger(name)
        for name in list(logging.Logger.manager.loggerDict)
        if name.startswith(PACKAGE_LOGGER_PREFIX) and logging.getLogger(name).handlers
    ]


@pytest.fixture
def restore_levels():
    yield
    for logger in _package_loggers():
        for handler in list(logger.handlers):
            if isinstance(handler, logging.FileHandler):
                logger.removeHandler(handler)
                handler.close()
    set_log_level("info")


@pytest.mark.parametrize("name, expected", [
    ("trace", logging.DEBUG),
    ("DEBUG", logging.DEBUG),
    ("warning", logging.WARNING),
    ("fatal", logging.CRITICAL),
    ("critical", logging.CRITICAL),
    (logging.ERROR, logging.ERROR),
])
def test_parse_verbose_level(name, expected):
    assert parse_verbose_level(name) == expected


def test_unknown_verbose_level():
    with pytest.raises(ValueError):
        parse_verbose_level("loud")


def test_set_log_level_relevels_package_loggers(restore_levels):
    set_log_level("error")

    loggers = _package_loggers()
    assert len(loggers) > 1
    assert all(logger.level == logging.ERROR for logger in loggers)


def test_log_file_is_opened_once(tmp_path, restore_levels):
    log_file = tmp_path / "logs" / "run.log"

    set_log_level("debug", log_file=str(log_file))

    loggers = _package_loggers()
    file_handlers = {
        id(h): h for logger in loggers for h in logger.handlers if isinstance(h, logging.FileHandler)
    }
    assert len(loggers) > 1
    assert len(file_handlers) == 1
    handler = next(iter(file_handlers.values()))
    assert Path(handler.baseFilename).resolve() == log_file.resolve()
    assert handler.level == logging.DEBUG
    assert all(handler in logger.handlers for logger in loggers)

    loggers[0].debug("written once")
    handler.flush()
    assert log_file.read_text().count("written once") == 1
