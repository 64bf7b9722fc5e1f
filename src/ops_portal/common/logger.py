"""Logging setup for the operations portal."""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

APP_LOGGER_NAME = "ops_portal"


def setup_logger(
    name: str = APP_LOGGER_NAME,
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure and return a logger.

    Args:
        name: Logger name. Module loggers (``ops_portal.*``) propagate to it.
        level: Logging level, as a number or a name such as ``"DEBUG"``.
        log_file: Optional path to log file. If None, logs to stderr only.

    Returns:
        Configured logger.
    """
    log = logging.getLogger(name)
    if log.handlers:
        return log

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    log.setLevel(level)
    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    h = logging.StreamHandler(sys.stderr)
    h.setFormatter(fmt)
    log.addHandler(h)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        log.addHandler(fh)

    return log


def get_logger(name: str = APP_LOGGER_NAME) -> logging.Logger:
    """Return a logger. Use after setup_logger has been called."""
    return logging.getLogger(name)
