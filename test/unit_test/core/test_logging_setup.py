from __future__ import annotations

import logging

import pytest

from pilot_governance.core import get_logger, setup_logging
from pilot_governance.core.logging_config import (
    DETAILED_FORMAT,
    JSON_FORMAT,
    LOG_FILE_NAME,
    MODULE_LOG_LEVELS,
    SIMPLE_FORMAT,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            if isinstance(handler, logging.FileHandler):
                handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize(
    "log_format,expected",
    [("simple", SIMPLE_FORMAT), ("json", JSON_FORMAT), ("detailed", DETAILED_FORMAT), (None, DETAILED_FORMAT)],
)
def test_console_handler_uses_requested_format(log_format, expected) -> None:
    setup_logging(log_level="warning", log_format=log_format)
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert handlers[0].level == logging.WARNING
    assert handlers[0].formatter._fmt == expected


def test_repeated_setup_does_not_duplicate_handlers() -> None:
    setup_logging()
    setup_logging()
    assert len(logging.getLogger().handlers) == 1


def test_file_logging_writes_debug_records(tmp_path) -> None:
    log_dir = tmp_path / "logs"
    setup_logging(log_level="ERROR", enable_file=True, log_file_dir=str(log_dir))
    get_logger("pilot_governance.gateway").debug("file only")

    for handler in logging.getLogger().handlers:
        handler.flush()
    content = (log_dir / LOG_FILE_NAME).read_text(encoding="utf-8")
    assert "file only" in content


def test_module_levels_are_applied() -> None:
    setup_logging()
    for name, level in MODULE_LOG_LEVELS.items():
        assert logging.getLogger(name).level == logging.getLevelName(level)
