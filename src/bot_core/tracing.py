# src/bot_core/tracing.py
"""
In-memory trace of the actuator calls ActionExecutor makes.

Tests and the debug snapshot read it to see which moves and interactions
actually went out, and how long the loop blocked on each one. Nothing here
retries or decides anything.
"""

from __future__ import annotations

import logging
import time
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional


@dataclass(frozen=True)
class ActionTraceRecord:
    timestamp: float
    duration_s: float
    action: str                # "move_to" | "interact"
    params: Dict[str, Any]
    success: bool
    error: Optional[str]       # "move_timeout", "interact_failed", ...


class ActionTracer:
    """Keeps the last `max_records` calls; older ones fall off the front."""

    def __init__(self, *, logger: Optional[logging.Logger] = None, max_records: int = 1_000) -> None:
        self._log = logger or logging.getLogger("bot_core.action")
        self._records: Deque[ActionTraceRecord] = deque(maxlen=max_records)

    def record(
        self,
        *,
        action: str,
        params: Dict[str, Any],
        success: bool,
        error: Optional[str],
        duration_s: float,
    ) -> ActionTraceRecord:
        entry = ActionTraceRecord(time.time(), duration_s, action, dict(params), success, error)
        self._records.append(entry)
        if success:
            self._log.debug("%s ok in %.3fs %r", action, duration_s, entry.params)
        else:
            self._log.info("%s failed (%s) after %.3fs %r", action, error, duration_s, entry.params)
        return entry

    def recent(self, limit: Optional[int] = None) -> List[ActionTraceRecord]:
        """Oldest first; `limit` keeps only the newest entries."""
        entries = list(self._records)
        return entries if limit is None else entries[-limit:]

    def error_counts(self) -> Dict[str, int]:
        """Failures in the current window keyed by error code."""
        return dict(Counter(r.error or "unknown" for r in self._records if not r.success))

    def clear(self) -> None:
        self._records.clear()
