"""
Logging setup for the wiki-pathfinder CLI.

Log records go to stderr so stdout carries only the search output. The
worker pool logs every retry at INFO, which is why the default CLI level
is WARNING.
"""

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

# Libraries that log once per HTTP request
NOISY_LOGGERS = ("httpx", "httpcore")

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _rich_handler() -> logging.Handler:
    handler = RichHandler(
        console=Console(file=sys.stderr),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
        log_time_format="[%H:%M:%S]",
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    return handler


def _plain_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        "[%(asctime)s] %(levelname)-5s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))
    return handler


def setup_logging(level: str = "INFO", use_rich: bool = True) -> None:
    """
    Replace the root logger's handlers with a single stderr handler.

    Args:
        level: One of DEBUG, INFO, WARNING or ERROR, case insensitive.
            Anything else falls back to INFO with a warning.
        use_rich: Colored Rich output instead of plain text lines.
    """
    name = level.upper()
    numeric_level = getattr(logging, name) if name in LEVELS else logging.INFO

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = _rich_handler() if use_rich else _plain_handler()
    handler.setLevel(numeric_level)
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))

    if name not in LEVELS:
        logging.getLogger(__name__).warning(f"Unknown log level '{level}', using INFO")
