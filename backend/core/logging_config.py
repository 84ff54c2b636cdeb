"""Logging setup for processes embedding the menu builder.

The library itself only creates module loggers. The hosting process calls
``configure_logging()`` once at startup, before opening an editor; the
test session does so from ``backend/conftest.py``.
"""

import logging
from typing import Optional

from .config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging from settings unless a level is given."""
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)

    # httpx logs every request at INFO
    if level_name != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
