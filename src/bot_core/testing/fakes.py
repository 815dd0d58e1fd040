# src/bot_core/testing/fakes.py
"""
Deterministic in-memory capabilities for unit and scenario tests.

Provides:
- FakeSensor: returns whatever ContextSnapshot the test sets.
- FakeActuator: records calls and returns scripted results.
- FakeNotificationSource: typed subscribe()/emit() without a host.
- ManualClock: a clock the test advances by hand.
"""

from __future__ import annotations

import dataclasses
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple, Type

from contracts.types import ContextSnapshot, Point


class ManualClock:
    """Callable clock for SnapshotCache / SessionStatistics / CycleScheduler."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        """Drop-in for time.sleep that just moves the clock."""
        self.sleeps.append(seconds)
        self.now += seconds


# ---------------------------------------------------------------------------
# Sensor
# ---------------------------------------------------------------------------


class FakeSensor:
    def __init__(self, context: Optional[ContextSnapshot] = None) -> None:
        self.context = context or ContextSnapshot()
        self.players_near: Dict[Point, int] = {}
        self.unreachable: Set[Point] = set()
        self.context_calls = 0

    # Sensor protocol -------------------------------------------------------

    def current_context(self) -> ContextSnapshot:
        self.context_calls += 1
        return self.context

    def nearby_player_count(self, point: Point, radius: int) -> int:
        return self.players_near.get(point, 0)

    def reachable(self, point: Point) -> bool:
        return point not in self.unreachable

    # Test-only helpers -----------------------------------------------------

    def update(self, **changes: Any) -> ContextSnapshot:
        """Replace fields on the current snapshot (it is frozen, so copy)."""
        self.context = dataclasses.replace(self.context, **changes)
        return self.context


# ---------------------------------------------------------------------------
# Actuator
# ---------------------------------------------------------------------------


@dataclass
class ActuatorCall:
    name: str
    args: Tuple[Any, ...]


class FakeActuator:
    """
    Scripted Actuator.

    Each call pops the next scripted result for that action; when the script
    is empty the default applies. on_move / on_interact hooks let a test move
    the player or empty a container as a side effect.
    """

    def __init__(self, *, default_move: bool = True, default_interact: bool = True) -> None:
        self.calls: List[ActuatorCall] = []
        self.move_script: Deque[bool] = deque()
        self.interact_script: Deque[bool] = deque()
        self.default_move = default_move
        self.default_interact = default_interact
        self.on_move: Optional[Callable[[Point], None]] = None
        self.on_interact: Optional[Callable[[str, str], None]] = None

    def move_to(self, point: Point) -> bool:
        self.calls.append(ActuatorCall("move_to", (point,)))
        ok = self.move_script.popleft() if self.move_script else self.default_move
        if ok and self.on_move is not None:
            self.on_move(point)
        return ok

    def interact(self, target_ref: str, action: str) -> bool:
        self.calls.append(ActuatorCall("interact", (target_ref, action)))
        ok = self.interact_script.popleft() if self.interact_script else self.default_interact
        if ok and self.on_interact is not None:
            self.on_interact(target_ref, action)
        return ok

    def calls_named(self, name: str) -> List[ActuatorCall]:
        return [c for c in self.calls if c.name == name]


# ---------------------------------------------------------------------------
# Notification source
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class _FakeSubscription:
    source: "FakeNotificationSource"
    payload_type: type
    handler: Callable[[Any], None]
    active: bool = field(default=True)

    def unsubscribe(self) -> None:
        self.source._remove(self)


class FakeNotificationSource:
    """In-memory NotificationSource; emit() delivers on the caller's thread."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._subs: List[_FakeSubscription] = []

    def subscribe(self, payload_type: Type[Any], handler: Callable[[Any], None]) -> _FakeSubscription:
        sub = _FakeSubscription(self, payload_type, handler)
        with self._lock:
            self._subs.append(sub)
        return sub

    def emit(self, payload: Any) -> int:
        """Deliver `payload` to matching subscribers; return how many got it."""
        with self._lock:
            targets = [s for s in self._subs if s.active and type(payload) is s.payload_type]
        for sub in targets:
            sub.handler(payload)
        return len(targets)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def _remove(self, sub: _FakeSubscription) -> None:
        with self._lock:
            sub.active = False
            if sub in self._subs:
                self._subs.remove(sub)
