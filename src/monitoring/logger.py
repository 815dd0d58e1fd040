# JSON logger subscribing to EventBus
"""
JSONL persistence for MonitoringEvents, plus the `log_event` shortcut every
component uses to publish.

One run writes one file; monitoring.tools reads it back:

    bus = EventBus()
    with JsonFileLogger(Path("logs/monitoring/events.log"), bus):
        runtime.run()
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

from .bus import EventBus
from .events import EventType, MonitoringEvent


log = logging.getLogger(__name__)


class JsonFileLogger:
    """
    Appends every event on `bus` to `path`, one JSON object per line.

    The file is opened in append mode (parent directories are created) and
    flushed after each line. Events arriving after close(), or whose write
    fails, are counted in `dropped` instead of raising into the publisher.
    """

    def __init__(self, path: Path, bus: EventBus) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._path = path
        self._bus = bus
        self._lock = Lock()
        self._fh = path.open("a", encoding="utf-8")
        self.written = 0
        self.dropped = 0
        bus.subscribe(self._write)

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, event: MonitoringEvent) -> None:
        line = json.dumps(event.to_dict(), ensure_ascii=False, default=str) + "\n"
        with self._lock:
            if self._fh.closed:
                self.dropped += 1
                return
            try:
                self._fh.write(line)
                self._fh.flush()
            except OSError:
                self.dropped += 1
                log.warning("Could not append event to %s", self._path, exc_info=True)
            else:
                self.written += 1

    def close(self) -> None:
        """Stop listening and close the file; repeated calls are harmless."""
        self._bus.unsubscribe(self._write)
        with self._lock:
            if not self._fh.closed:
                self._fh.close()

    def __enter__(self) -> "JsonFileLogger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def log_event(
    bus: EventBus,
    module: str,
    event_type: EventType,
    message: str,
    payload: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> MonitoringEvent:
    """Publish a timestamped event on `bus` and hand it back to the caller."""
    event = MonitoringEvent(time.time(), module, event_type, message, dict(payload or {}), correlation_id)
    bus.publish(event)
    return event
