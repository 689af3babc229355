"""Tests for CLI logging setup."""

import io
import logging

from rich.console import Console
from rich.logging import RichHandler

from invoicepulse.logging_config import setup_logging


class TestSetupLogging:
    def test_level_and_single_handler(self) -> None:
        setup_logging("info")
        setup_logging("DEBUG")
        logger = logging.getLogger("invoicepulse")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)
        assert logger.propagate is False

    def test_unknown_level_falls_back_to_warning(self) -> None:
        setup_logging("chatty")
        assert logging.getLogger("invoicepulse").level == logging.WARNING

    def test_child_loggers_reach_console(self) -> None:
        buffer = io.StringIO()
        setup_logging("INFO", console=Console(file=buffer, width=200))
        logging.getLogger("invoicepulse.analyzers.trend").info("window ready")
        assert "window ready" in buffer.getvalue()
