# src/agent/recovery.py
"""
Error recovery for the controller.

ErrorRecoveryService.handle(failure, state) is called by the ERROR state once
per cycle with the failure that sent the controller there:

1. Ceiling check first. Once `consecutive_failures` has reached the ceiling,
   every call returns SHUTDOWN without running a strategy, so no Success can
   reset the counter any more. Only reset() (controller restart) clears it.
2. Classify the failure by exception type (see agent.errors).
3. Run the matching strategy. Strategies retry a bounded number of times and
   always return; they never loop until success.
4. SUCCESS resets the counter to 0, FAILURE increments it.

Every call records a RecoveryEntry and publishes RECOVERY_ATTEMPTED on the
monitoring bus (SHUTDOWN additionally publishes a SHUTDOWN event).
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from threading import Lock
from typing import Deque, List, Mapping, Optional, Protocol

from bot_core.actions import ActionExecutor
from bot_core.sensing import SnapshotCache
from env.schema import ConfigError, MinerConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event
from runtime.failure_mitigation import emit_recovery_exhausted
from .errors import InteractionError, NavigationError, ResourceUnavailableError
from .state import StateId


log = logging.getLogger(__name__)


class FailureKind(Enum):
    NAVIGATION = auto()
    INTERACTION_TARGET_MISSING = auto()
    RESOURCE_UNAVAILABLE = auto()
    UNKNOWN = auto()


class RecoveryOutcomeKind(Enum):
    SUCCESS = auto()
    FAILURE = auto()
    SHUTDOWN = auto()


@dataclass(frozen=True)
class RecoveryOutcome:
    kind: RecoveryOutcomeKind
    reason: str

    @classmethod
    def success(cls, reason: str) -> "RecoveryOutcome":
        return cls(RecoveryOutcomeKind.SUCCESS, reason)

    @classmethod
    def failure(cls, reason: str) -> "RecoveryOutcome":
        return cls(RecoveryOutcomeKind.FAILURE, reason)

    @classmethod
    def shutdown(cls, reason: str) -> "RecoveryOutcome":
        return cls(RecoveryOutcomeKind.SHUTDOWN, reason)


@dataclass(frozen=True)
class RecoveryEntry:
    """One handled failure: how it was classified and what came of it."""

    kind: FailureKind
    strategy: str
    consecutive_failures: int
    outcome: RecoveryOutcomeKind
    state: StateId
    reason: str


def classify(failure: BaseException) -> FailureKind:
    if isinstance(failure, NavigationError):
        return FailureKind.NAVIGATION
    if isinstance(failure, InteractionError):
        return FailureKind.INTERACTION_TARGET_MISSING
    if isinstance(failure, ResourceUnavailableError):
        return FailureKind.RESOURCE_UNAVAILABLE
    return FailureKind.UNKNOWN


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class RecoveryStrategy(Protocol):
    name: str

    def attempt(self, failure: BaseException, state: StateId) -> RecoveryOutcome:
        ...


class NavigationRecovery:
    """Retry the failed route a bounded number of times, then fall back to the safe point."""

    name = "navigation"

    def __init__(self, actions: ActionExecutor, config: MinerConfig) -> None:
        self._actions = actions
        self._config = config

    def attempt(self, failure: BaseException, state: StateId) -> RecoveryOutcome:
        point = getattr(failure, "point", None)
        if point is not None:
            for attempt in range(1, self._config.max_recovery_attempts + 1):
                try:
                    self._actions.move_to(point)
                except NavigationError as exc:
                    log.info("Route retry %d/%d to %s failed: %s",
                             attempt, self._config.max_recovery_attempts, point, exc.code)
                    continue
                return RecoveryOutcome.success(f"route to {point.x},{point.y} recovered on attempt {attempt}")

        safe = self._config.safe_point
        if safe is None:
            return RecoveryOutcome.failure("route lost and no safe fallback point configured")
        try:
            self._actions.move_to(safe)
        except NavigationError as exc:
            return RecoveryOutcome.failure(f"safe fallback unreachable ({exc.code})")
        return RecoveryOutcome.success("moved to safe fallback point")


class InteractionRecovery:
    """Re-sense and succeed if there is still something to interact with."""

    name = "interaction"

    def __init__(self, cache: SnapshotCache, config: MinerConfig) -> None:
        self._cache = cache
        self._config = config

    def attempt(self, failure: BaseException, state: StateId) -> RecoveryOutcome:
        self._cache.invalidate()
        snapshot = self._cache.get()
        ref = getattr(failure, "target_ref", None)
        if ref is not None and snapshot.find_target(ref) is not None:
            return RecoveryOutcome.success(f"target {ref} visible again")
        if snapshot.targets:
            return RecoveryOutcome.success(f"{len(snapshot.targets)} other target(s) available")
        return RecoveryOutcome.failure("no interaction targets visible")


class ResourceRecovery:
    """Re-sense and succeed once the missing item (or free space) is back."""

    name = "resource"

    def __init__(self, cache: SnapshotCache, config: MinerConfig) -> None:
        self._cache = cache
        self._config = config

    def attempt(self, failure: BaseException, state: StateId) -> RecoveryOutcome:
        self._cache.invalidate()
        snapshot = self._cache.get()
        if getattr(failure, "code", None) == "inventory_full":
            if snapshot.inventory_full:
                return RecoveryOutcome.failure("inventory still full")
            return RecoveryOutcome.success("inventory space available again")
        item = getattr(failure, "item", None) or self._config.required_tool
        if snapshot.has_item(item):
            return RecoveryOutcome.success(f"{item} available again")
        return RecoveryOutcome.failure(f"{item} still missing")


class UnknownRecovery:
    """Re-sense and succeed only when the environment looks sane again."""

    name = "unknown"

    def __init__(self, cache: SnapshotCache, config: MinerConfig) -> None:
        self._cache = cache
        self._config = config

    def attempt(self, failure: BaseException, state: StateId) -> RecoveryOutcome:
        try:
            self._config.validate()
        except ConfigError as exc:
            return RecoveryOutcome.failure(f"configuration invalid: {exc}")
        self._cache.invalidate()
        snapshot = self._cache.get()
        if not snapshot.logged_in:
            return RecoveryOutcome.failure("host logged out")
        if not snapshot.has_item(self._config.required_tool):
            return RecoveryOutcome.failure(f"{self._config.required_tool} missing")
        return RecoveryOutcome.success("environment sane after unexpected failure")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ErrorRecoveryService:
    def __init__(
        self,
        strategies: Mapping[FailureKind, RecoveryStrategy],
        *,
        ceiling: int = 5,
        bus: Optional[EventBus] = None,
        max_history: int = 500,
    ) -> None:
        missing = set(FailureKind) - set(strategies)
        if missing:
            raise ValueError(f"No recovery strategy for: {sorted(k.name for k in missing)}")
        if ceiling < 1:
            raise ValueError("ceiling must be >= 1")
        self._strategies = dict(strategies)
        self._ceiling = ceiling
        self._bus = bus
        self._lock = Lock()
        self._consecutive = 0
        self._history: Deque[RecoveryEntry] = deque(maxlen=max_history)

    @classmethod
    def with_default_strategies(
        cls,
        actions: ActionExecutor,
        cache: SnapshotCache,
        config: MinerConfig,
        *,
        bus: Optional[EventBus] = None,
    ) -> "ErrorRecoveryService":
        return cls(
            {
                FailureKind.NAVIGATION: NavigationRecovery(actions, config),
                FailureKind.INTERACTION_TARGET_MISSING: InteractionRecovery(cache, config),
                FailureKind.RESOURCE_UNAVAILABLE: ResourceRecovery(cache, config),
                FailureKind.UNKNOWN: UnknownRecovery(cache, config),
            },
            ceiling=config.failure_ceiling,
            bus=bus,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def ceiling(self) -> int:
        return self._ceiling

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive

    @property
    def last_entry(self) -> Optional[RecoveryEntry]:
        with self._lock:
            return self._history[-1] if self._history else None

    def history(self) -> List[RecoveryEntry]:
        with self._lock:
            return list(self._history)

    def reset(self) -> None:
        """Controller restart: clear the counter and the history."""
        with self._lock:
            self._consecutive = 0
            self._history.clear()

    def handle(self, failure: BaseException, state: StateId) -> RecoveryOutcome:
        kind = classify(failure)

        if self.consecutive_failures >= self._ceiling:
            outcome = RecoveryOutcome.shutdown(
                f"{self._consecutive} consecutive failures reached ceiling {self._ceiling}"
            )
            self._record(kind, "ceiling", outcome, state)
            if self._bus is not None:
                emit_recovery_exhausted(
                    self._bus,
                    state=state.name,
                    consecutive_failures=self._consecutive,
                    ceiling=self._ceiling,
                    reason=outcome.reason,
                )
            return outcome

        strategy = self._strategies[kind]
        try:
            outcome = strategy.attempt(failure, state)
        except Exception as exc:
            log.exception("Recovery strategy %s raised for %r", strategy.name, failure)
            outcome = RecoveryOutcome.failure(f"strategy {strategy.name} raised {exc!r}")

        with self._lock:
            if outcome.kind is RecoveryOutcomeKind.SUCCESS:
                self._consecutive = 0
            elif outcome.kind is RecoveryOutcomeKind.FAILURE:
                self._consecutive += 1

        self._record(kind, strategy.name, outcome, state)
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(
        self,
        kind: FailureKind,
        strategy: str,
        outcome: RecoveryOutcome,
        state: StateId,
    ) -> None:
        with self._lock:
            entry = RecoveryEntry(
                kind=kind,
                strategy=strategy,
                consecutive_failures=self._consecutive,
                outcome=outcome.kind,
                state=state,
                reason=outcome.reason,
            )
            self._history.append(entry)

        level = logging.WARNING if outcome.kind is not RecoveryOutcomeKind.SUCCESS else logging.INFO
        log.log(level, "Recovery %s/%s in %s -> %s (%s), consecutive=%d",
                kind.name, strategy, state.name, outcome.kind.name, outcome.reason,
                entry.consecutive_failures)

        if self._bus is not None:
            log_event(
                bus=self._bus,
                module="agent.recovery",
                event_type=EventType.RECOVERY_ATTEMPTED,
                message=f"{kind.name} -> {outcome.kind.name}",
                payload={
                    "kind": kind.name,
                    "strategy": strategy,
                    "outcome": outcome.kind.name,
                    "reason": outcome.reason,
                    "state": state.name,
                    "consecutive_failures": entry.consecutive_failures,
                },
            )
