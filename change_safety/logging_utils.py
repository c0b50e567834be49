"""Logging setup for hosts embedding the protocol; the standalone API app calls it on startup."""

import logging
from pathlib import Path
from typing import List, Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_path: Optional[str] = None,
    also_console: bool = True,
) -> logging.Logger:
    """
    Attach handlers to the ``change_safety`` logger.

    Calling it again only adjusts the level; handlers are installed once.
    """
    logger = logging.getLogger("change_safety")
    logger.setLevel(level)

    if getattr(logger, "_change_safety_configured", False):
        return logger

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: List[logging.Handler] = []

    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    if also_console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    setattr(logger, "_change_safety_configured", True)
    logger.debug("Logging initialized (level=%s, file=%s)", level, log_path)
    return logger
