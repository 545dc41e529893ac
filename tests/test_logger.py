"""Tests for the logging setup module."""

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from docmatch.utils.logger import get_logger, setup_logging


@pytest.fixture
def root() -> Iterator[logging.Logger]:
    """Root logger with no handlers, restored afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    root.handlers.clear()
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


class TestSetupLogging:
    def test_console_handler_and_level(self, root: logging.Logger) -> None:
        setup_logging("DEBUG")
        assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)
        assert root.level == logging.DEBUG

    def test_second_call_is_ignored(self, root: logging.Logger) -> None:
        setup_logging("WARNING")
        handlers = list(root.handlers)
        setup_logging("DEBUG")
        assert root.handlers == handlers
        assert root.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, root: logging.Logger) -> None:
        setup_logging("VERBOSE")
        assert root.level == logging.INFO

    def test_log_file_receives_records(self, root: logging.Logger, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "docmatch.log"

        setup_logging("INFO", str(log_file))
        get_logger("docmatch.matching").info("cycle finished")
        for handler in root.handlers:
            handler.flush()

        assert len(root.handlers) == 2
        assert "docmatch.matching - INFO - cycle finished" in log_file.read_text()

    def test_chatty_libraries_kept_at_warning(self, root: logging.Logger) -> None:
        setup_logging("DEBUG")
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("PIL").level == logging.WARNING


def test_get_logger_is_named_and_shared() -> None:
    logger = get_logger("docmatch.ingestion")
    assert logger.name == "docmatch.ingestion"
    assert logger is get_logger("docmatch.ingestion")
