# src/agent/logging_config.py
"""
stdout logging for the miner's module loggers (agent.*, bot_core.*,
monitoring.*, runtime.*). Entry points call `configure_logging()` once.

Structured events go through monitoring.logger instead; this is only the
human-readable side.
"""

from __future__ import annotations

import logging
import sys
from typing import Union


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def resolve_level(level: Union[int, str]) -> int:
    """Accept 20, "INFO" or "info"; raise ValueError for anything else."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown logging level: {level!r}")
    return value


def configure_logging(level: Union[int, str] = logging.INFO) -> bool:
    """
    Attach a stdout handler to the root logger.

    Returns False and leaves logging alone when the host (or pytest) already
    installed handlers.
    """
    numeric = resolve_level(level)
    root = logging.getLogger()
    if root.handlers:
        return False

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric)
    return True
