import logging
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "llmwire"


def configure_logging(
    level: Union[int, str] = logging.INFO,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Send the package's log records to a rich console handler.

    Calling it again only updates the level; a second handler is never added.

    Args:
        level (int | str): Logging level, e.g. ``"DEBUG"`` or ``logging.INFO``.
        console (Console, optional): Console to write to (stderr by default).

    Returns:
        logging.Logger: The ``llmwire`` package logger.
    """
    if isinstance(level, str):
        level = level.upper()

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
    return logger
