"""
Logging helpers for stickycrop.

The engine and widget modules only call ``get_logger(__name__)``; the package
``__init__`` attaches a NullHandler, so nothing is printed unless the host
application sets up logging. Demo scripts call ``configure_logging()`` to get
engine decisions (commits, deferred edits, skipped reconciles) on stderr:

    from stickycrop.utils.logging import configure_logging
    configure_logging(level="DEBUG")

The level defaults to the STICKYCROP_LOG_LEVEL environment variable.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

LOGGER_NAME = "stickycrop"
LEVEL_ENV_VAR = "STICKYCROP_LOG_LEVEL"

DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d:%(funcName)s: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: Optional[Union[str, int]] = None,
    *,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Attach a stderr handler to the stickycrop logger (root is left alone).

    Parameters
    ----------
    level:
        Name or number; falls back to STICKYCROP_LOG_LEVEL, then "INFO".
    fmt, datefmt:
        Formatter overrides for DEFAULT_FMT / DEFAULT_DATEFMT.
    force:
        Drop existing handlers first. Without it, a call that finds a stderr
        handler already attached only updates the logger level.
    """
    if level is None:
        level = os.environ.get(LEVEL_ENV_VAR, "INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if fmt is None:
        fmt = DEFAULT_FMT
    if datefmt is None:
        datefmt = DEFAULT_DATEFMT

    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    if force:
        for h in logger.handlers[:]:
            h.close()
            logger.removeHandler(h)
    else:
        for h in logger.handlers:
            if isinstance(h, logging.StreamHandler) and h.stream is sys.stderr:
                return

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Named logger; the package logger when `name` is None."""
    if name is None:
        name = LOGGER_NAME
    return logging.getLogger(name)
