"""
Centralized logging configuration for Goodminton.

Usage:
- Production (default): concise INFO-level logs.
- Testing: set LOG_LEVEL=DEBUG (or call setup_logging(level="DEBUG")) to see every
  query, state transition and notification push.

Environment variables:
- LOG_LEVEL: DEBUG|INFO|WARNING|ERROR|CRITICAL
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Literal, Optional

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _resolve_level(level: Optional[str]) -> int:
    level_str = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    return _LEVELS.get(level_str, logging.INFO)


def setup_logging(level: Optional[LogLevel] = None, mode: Optional[Literal["test", "prod"]] = None) -> None:
    """Configure the root logger once for the bot process.

    Args:
        level: Optional string level (e.g., "DEBUG"). If omitted, uses LOG_LEVEL env var or INFO.
        mode: "test" forces the verbose format regardless of level.
    """
    numeric_level = _resolve_level(level)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    is_debug = numeric_level <= logging.DEBUG
    fmt_verbose = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(funcName)s | %(message)s"
    fmt_concise = "%(asctime)s %(levelname).1s %(name)s: %(message)s"
    fmt = fmt_verbose if (mode == "test" or is_debug) else fmt_concise

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt="%H:%M:%S"))

    root.setLevel(numeric_level)
    root.addHandler(handler)

    # discord.py's gateway chatter and aiosqlite's per-statement logs drown ours
    logging.getLogger("discord").setLevel(logging.INFO if is_debug else logging.WARNING)
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.INFO if is_debug else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Convenience wrapper to get a module logger."""
    return logging.getLogger(name)
