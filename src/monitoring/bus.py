# EventBus for monitoring events and control commands
"""
In-process pub/sub for the monitoring layer.

Two independent channels share one bus object:

    events    MonitoringEvent   -> JsonFileLogger, tests, host overlays
    commands  ControlCommand    -> AgentController

There is no module-level bus; one is built per runtime and injected. The
dispatcher publishes from the host's notification thread while the control
loop publishes from its own, so both channels are lock-guarded.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Callable, Generic, List, TypeVar

from .events import ControlCommand, MonitoringEvent


log = logging.getLogger(__name__)

T = TypeVar("T")

SubscriberFn = Callable[[MonitoringEvent], None]
CommandHandlerFn = Callable[[ControlCommand], None]


class _Channel(Generic[T]):
    """
    Listener list for one message type.

    Delivery runs on a snapshot of the list, so a listener may add or
    remove listeners from inside its callback. A raising listener is
    logged and counted; later listeners still receive the message.
    """

    def __init__(self, name: str, on_error: Callable[[], None]) -> None:
        self._name = name
        self._listeners: List[Callable[[T], None]] = []
        self._lock = Lock()
        self._on_error = on_error

    def add(self, fn: Callable[[T], None]) -> None:
        with self._lock:
            self._listeners.append(fn)

    def discard(self, fn: Callable[[T], None]) -> None:
        with self._lock:
            if fn in self._listeners:
                self._listeners.remove(fn)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def send(self, item: T) -> None:
        with self._lock:
            targets = tuple(self._listeners)
        for fn in targets:
            try:
                fn(item)
            except Exception:
                self._on_error()
                log.exception("%s listener %r raised on %r", self._name, fn, item)


class EventBus:
    """Events and control commands for one controller instance."""

    def __init__(self) -> None:
        self._errors_lock = Lock()
        self._listener_errors = 0
        self._events: _Channel[MonitoringEvent] = _Channel("event", self._count_error)
        self._commands: _Channel[ControlCommand] = _Channel("command", self._count_error)

    def subscribe(self, fn: SubscriberFn) -> None:
        self._events.add(fn)

    def unsubscribe(self, fn: SubscriberFn) -> None:
        """Remove `fn`; unknown listeners are ignored."""
        self._events.discard(fn)

    def publish(self, event: MonitoringEvent) -> None:
        self._events.send(event)

    def subscribe_commands(self, fn: CommandHandlerFn) -> None:
        self._commands.add(fn)

    def unsubscribe_commands(self, fn: CommandHandlerFn) -> None:
        self._commands.discard(fn)

    def publish_command(self, cmd: ControlCommand) -> None:
        self._commands.send(cmd)

    @property
    def listener_errors(self) -> int:
        """Callbacks on either channel that raised since construction."""
        with self._errors_lock:
            return self._listener_errors

    def clear(self) -> None:
        self._events.clear()
        self._commands.clear()

    def _count_error(self, *_: Any) -> None:
        with self._errors_lock:
            self._listener_errors += 1
