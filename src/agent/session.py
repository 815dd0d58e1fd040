# src/agent/session.py
"""
In-memory session statistics.

Holds the diagnostic side of a run: the transition log, the number of
failures routed to ERROR, and the number of valuable objects seen. Control
logic never reads these; overlays and telemetry take a read-only
SessionView via snapshot().

The object is created explicitly and injected into the StateManager and the
EventDispatcher. The dispatcher writes from the host's notification thread,
so every mutation happens under a lock.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Deque, Tuple

from .state import TransitionRecord


@dataclass(frozen=True)
class SessionView:
    """Read-only copy of the statistics at one point in time."""

    transitions: Tuple[TransitionRecord, ...]
    error_count: int
    valuable_events_recorded: int
    started_at: float

    def to_dict(self) -> dict:
        return {
            "transitions": [r.to_dict() for r in self.transitions],
            "error_count": self.error_count,
            "valuable_events_recorded": self.valuable_events_recorded,
            "started_at": self.started_at,
        }


class SessionStatistics:
    def __init__(
        self,
        *,
        max_records: int = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = Lock()
        self._clock = clock
        self._transitions: Deque[TransitionRecord] = deque(maxlen=max_records)
        self._error_count = 0
        self._valuable = 0
        self._started_at = clock()

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def record_transition(self, record: TransitionRecord) -> None:
        with self._lock:
            self._transitions.append(record)

    def record_error(self) -> None:
        with self._lock:
            self._error_count += 1

    def record_valuable_event(self) -> None:
        with self._lock:
            self._valuable += 1

    def reset(self) -> None:
        """Start a fresh session (controller restart)."""
        with self._lock:
            self._transitions.clear()
            self._error_count = 0
            self._valuable = 0
            self._started_at = self._clock()

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionView:
        with self._lock:
            return SessionView(
                transitions=tuple(self._transitions),
                error_count=self._error_count,
                valuable_events_recorded=self._valuable,
                started_at=self._started_at,
            )

    @property
    def transition_count(self) -> int:
        with self._lock:
            return len(self._transitions)
