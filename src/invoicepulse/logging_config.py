"""Logging configuration for the InvoicePulse CLI."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str = "WARNING", console: Console | None = None) -> None:
    """Route the ``invoicepulse`` logger hierarchy through a Rich handler.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...).
        console: Console to write to (defaults to stderr).
    """
    logger = logging.getLogger("invoicepulse")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    # Remove existing handlers so repeated CLI invocations don't stack output
    logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
