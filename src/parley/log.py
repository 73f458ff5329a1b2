"""Logging setup for parley.

Library modules only create loggers with ``logging.getLogger(__name__)``.
Handlers are installed by the application entry point.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "parley"


def configure_logging(level: str | int = "WARNING", console: Console | None = None) -> logging.Logger:
    """Attach a Rich handler to the ``parley`` logger.

    Calling this again replaces the previously installed handler.

    Args:
        level: Level name ('debug', 'info', ...) or numeric level
        console: Optional Rich console (defaults to stderr)

    Returns:
        The configured ``parley`` logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
