"""Package logging.

Library modules log through child loggers of ``textpulse`` and never
configure handlers themselves; ``setup_logging()`` is for applications
(the CLI calls it once at startup).
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

__all__ = ["log", "get_logger", "setup_logging"]

_LOG_NAME = "textpulse"

log = logging.getLogger(_LOG_NAME)
log.addHandler(logging.NullHandler())

_console: Optional[logging.Handler] = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a child logger: get_logger("reader") -> textpulse.reader"""
    if not name:
        return log
    return logging.getLogger(f"{_LOG_NAME}.{name}")


def setup_logging(level: Union[int, str] = "INFO", console: bool = True) -> logging.Logger:
    """Configure the package logger. Safe to call more than once."""
    global _console

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    log.setLevel(level)

    if console and _console is None:
        fmt = "[%(asctime)s] %(levelname).1s %(name)s: %(message)s"
        _console = logging.StreamHandler(sys.stderr)
        _console.setFormatter(logging.Formatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S"))
        log.addHandler(_console)
    if _console is not None:
        _console.setLevel(level)

    return log
