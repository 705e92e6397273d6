"""Rich console logging for the API and the scripts.

Call setup_logging() once at startup; modules take their logger from get_logger().
"""

import logging
from typing import Optional

from rich.logging import RichHandler

from .config import get_settings

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "PIL", "multipart")


def setup_logging(level: Optional[str] = None):
    """Attach a RichHandler to the root logger. Calling it again only changes the level."""
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(rich_tracebacks=True, show_path=False, log_time_format="[%X]"))
    root.setLevel((level or get_settings().LOG_LEVEL).upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
