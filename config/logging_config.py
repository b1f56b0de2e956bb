"""
Logging configuration shared by the API server and the admin CLI.

Usage:
    from config.logging_config import get_logger
    logger = get_logger(__name__)
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Configure the root logger once.

    Args:
        level: Level name, defaults to settings.log_level
        log_file: Optional file path; logs go to stderr as well
    """
    global _configured
    if _configured:
        return

    if level is None:
        from config.settings import settings
        level = settings.log_level

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    root = logging.getLogger()
    root.setLevel(level.upper())

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger, configuring logging on first use."""
    setup_logging()
    return logging.getLogger(name)
