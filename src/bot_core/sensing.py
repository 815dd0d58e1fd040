# src/bot_core/sensing.py
"""
Rate-limited access to the Sensor capability.

SnapshotCache is the only component that calls Sensor.current_context().
It guarantees:
- at most one rebuild per `min_interval_s` (default 0.1 s, i.e. <= 10/s)
- a snapshot no older than `max_age_s` when the rate limit allows
- the same immutable ContextSnapshot for every reader between rebuilds

The control loop, the recovery strategies and telemetry readers may call
get() from different threads.
"""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, Optional

from contracts.capabilities import Sensor
from contracts.types import ContextSnapshot


log = logging.getLogger(__name__)


class SnapshotCache:
    def __init__(
        self,
        sensor: Sensor,
        *,
        min_interval_s: float = 0.1,
        max_age_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_interval_s <= 0:
            raise ValueError("min_interval_s must be > 0")
        self._sensor = sensor
        self._min_interval_s = min_interval_s
        self._max_age_s = max_age_s if max_age_s is not None else min_interval_s
        self._clock = clock
        self._lock = Lock()

        self._snapshot: Optional[ContextSnapshot] = None
        self._built_at: float = 0.0
        self._stale = False
        self.rebuilds = 0

    @property
    def sensor(self) -> Sensor:
        return self._sensor

    def get(self) -> ContextSnapshot:
        """Return the cached snapshot, rebuilding it when allowed and due."""
        with self._lock:
            now = self._clock()
            if self._snapshot is None or self._due(now):
                self._rebuild(now)
            return self._snapshot

    def peek(self) -> Optional[ContextSnapshot]:
        """Return the last snapshot without touching the sensor (telemetry)."""
        with self._lock:
            return self._snapshot

    def invalidate(self) -> None:
        """Mark the snapshot stale; the next allowed get() rebuilds it."""
        with self._lock:
            self._stale = True

    def _due(self, now: float) -> bool:
        age = now - self._built_at
        if age < self._min_interval_s:
            return False
        return self._stale or age >= self._max_age_s

    def _rebuild(self, now: float) -> None:
        snapshot = self._sensor.current_context()
        self._snapshot = snapshot
        self._built_at = now
        self._stale = False
        self.rebuilds += 1
        log.debug("SnapshotCache rebuilt snapshot #%d at %.3f", self.rebuilds, now)
