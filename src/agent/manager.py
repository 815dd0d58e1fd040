# src/agent/manager.py
"""
StateManager: owns current/previous state and runs the control cycle.

One call to execute_cycle():

    1. read the shared ContextSnapshot (SKIPPED while logged out; a sensor
       that raises is treated like a failing execute())
    2. consume a pending pre-emptive request, if validation accepts it
    3. otherwise run the current state's execute()
    4. exceptions from execute() go to ERROR (any -> ERROR)
    5. validate a requested transition and apply it atomically:
           on_exit(old) -> previous := current, current := new -> on_enter(new)
       then append exactly one TransitionRecord

A rejected transition leaves current/previous untouched and appends nothing.
The manager is driven from a single thread; other threads may only read it
through current_state(), session_statistics() and debug_state(), or enqueue
via request_transition().
"""

from __future__ import annotations

import logging
import time
from threading import RLock
from typing import Any, Callable, Dict, Optional

from bot_core.actions import ActionExecutor
from bot_core.sensing import SnapshotCache
from contracts.types import ContextSnapshot
from env.schema import MinerConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event
from .dispatcher import EventDispatcher
from .session import SessionStatistics, SessionView
from .state import (
    CycleOutcome,
    CycleOutcomeKind,
    LoopCounters,
    StateId,
    TransitionRecord,
    TransitionResult,
)
from .states import CycleContext, StateRegistry
from .validation import check_transition


log = logging.getLogger(__name__)

_MODULE = "agent.manager"


class StateManager:
    def __init__(
        self,
        registry: StateRegistry,
        cache: SnapshotCache,
        actions: ActionExecutor,
        config: MinerConfig,
        *,
        session: Optional[SessionStatistics] = None,
        dispatcher: Optional[EventDispatcher] = None,
        bus: Optional[EventBus] = None,
        counters: Optional[LoopCounters] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._actions = actions
        self._config = config
        self._session = session or SessionStatistics(clock=clock)
        self._dispatcher = dispatcher or EventDispatcher(
            config, self._session, cache=cache, bus=bus, clock=clock
        )
        self._bus = bus
        self._counters = counters or LoopCounters()
        self._clock = clock

        self._lock = RLock()
        self._current = StateId.INITIALIZING
        self._previous: Optional[StateId] = None
        self._entered = False
        self.cycles = 0

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    def current_state(self) -> StateId:
        with self._lock:
            return self._current

    @property
    def previous_state(self) -> Optional[StateId]:
        with self._lock:
            return self._previous

    @property
    def config(self) -> MinerConfig:
        return self._config

    @property
    def counters(self) -> LoopCounters:
        return self._counters

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    @property
    def registry(self) -> StateRegistry:
        return self._registry

    def session_statistics(self) -> SessionView:
        return self._session.snapshot()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def request_transition(self, target: StateId, reason: str) -> bool:
        """Enqueue a pre-emptive request for the next cycle."""
        return self._dispatcher.request_transition(target, reason)

    def execute_cycle(self) -> CycleOutcome:
        self.cycles += 1
        current = self.current_state()
        try:
            snapshot = self._cache.get()
        except Exception as exc:
            return self._sensing_failed(current, exc)

        if not snapshot.logged_in:
            return CycleOutcome(CycleOutcomeKind.SKIPPED, current, "not logged in")

        ctx = self._context(snapshot)
        if not self._entered:
            self._registry.get(current).on_enter(ctx, None)
            self._entered = True

        result = self._take_preemption(ctx, current)
        if result is None:
            try:
                result = self._registry.get(current).execute(ctx)
            except Exception as exc:
                return self._route_failure(ctx, current, exc)

        return self._finish(ctx, current, result)

    def reset(self) -> None:
        """Controller restart: back to INITIALIZING with fresh counters."""
        with self._lock:
            self._current = StateId.INITIALIZING
            self._previous = None
            self._entered = False
            self._counters.reset()
            self._session.reset()
            self._dispatcher.clear()
            self._registry.error_state.recovery.reset()
            self._cache.invalidate()
        log.info("StateManager reset")

    def debug_state(self) -> Dict[str, Any]:
        with self._lock:
            current = self._current
            previous = self._previous
        pending = self._dispatcher.pending
        counters = self._counters
        view = self._session.snapshot()
        return {
            "current": current.name,
            "previous": previous.name if previous else None,
            "state": self._registry.get(current).describe(),
            "pending": (
                {"target": pending.target.name, "reason": pending.reason} if pending else None
            ),
            "counters": {
                "deposits": counters.deposits,
                "unloads": counters.unloads,
                "unloads_since_bank": counters.unloads_since_bank,
                "bank_trips": counters.bank_trips,
            },
            "consecutive_failures": self._registry.error_state.recovery.consecutive_failures,
            "transitions": len(view.transitions),
            "error_count": view.error_count,
            "valuable_events_recorded": view.valuable_events_recorded,
            "cycles": self.cycles,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _context(self, snapshot: ContextSnapshot) -> CycleContext:
        return CycleContext(
            snapshot=snapshot,
            config=self._config,
            sensor=self._cache.sensor,
            actions=self._actions,
            counters=self._counters,
        )

    def _finish(self, ctx: CycleContext, current: StateId, result: TransitionResult) -> CycleOutcome:
        if result.is_shutdown:
            log.error("Shutdown requested in %s: %s", current.name, result.reason)
            return CycleOutcome(CycleOutcomeKind.SHUTDOWN, current, result.reason)

        if not result.requests_transition:
            return CycleOutcome(CycleOutcomeKind.REMAINED, current, result.reason, result.wait_s)

        return self._transition(ctx, result)

    def _sensing_failed(self, current: StateId, exc: Exception) -> CycleOutcome:
        """
        The sensor raised while building this cycle's snapshot.

        Hooks run against the last good snapshot (or an empty logged-out one).
        Outside ERROR the failure is routed there like any other; inside
        ERROR it replaces the stored failure and recovery runs on it, so a
        sensor that stays broken still counts towards the ceiling.
        """
        ctx = self._context(self._cache.peek() or ContextSnapshot(logged_in=False))
        self._entered = True
        if current is not StateId.ERROR:
            return self._route_failure(ctx, current, exc)

        log.warning("Snapshot failed during recovery: %r", exc)
        self._session.record_error()
        error_state = self._registry.error_state
        error_state.set_failure(exc, error_state.failed_in)
        return self._finish(ctx, current, error_state.execute(ctx))

    def _take_preemption(self, ctx: CycleContext, current: StateId) -> Optional[TransitionResult]:
        request = self._dispatcher.take_pending()
        if request is None:
            return None
        approved, why = check_transition(current, request.target, ctx.snapshot, ctx.config)
        if approved:
            log.info("Honouring pre-emptive request %s -> %s (%s)",
                     current.name, request.target.name, request.reason)
            return TransitionResult.to(request.target, request.reason)
        log.info("Dropping pre-emptive request %s -> %s: %s",
                 current.name, request.target.name, why)
        self._publish_rejection(current, request.target, why, preemptive=True)
        return None

    def _route_failure(self, ctx: CycleContext, current: StateId, exc: Exception) -> CycleOutcome:
        self._session.record_error()
        error_state = self._registry.error_state

        if current is StateId.ERROR:
            log.exception("ERROR state raised while recovering")
            error_state.set_failure(exc, error_state.failed_in)
            return CycleOutcome(CycleOutcomeKind.REMAINED, current, f"recovery raised {exc!r}")

        log.warning("%s failed: %s", current.name, exc)
        error_state.set_failure(exc, current)
        return self._transition(ctx, TransitionResult.to(StateId.ERROR, f"{type(exc).__name__}: {exc}"))

    def _transition(self, ctx: CycleContext, result: TransitionResult) -> CycleOutcome:
        assert result.target is not None
        target = result.target

        with self._lock:
            current = self._current
            approved, why = check_transition(current, target, ctx.snapshot, ctx.config)
            if not approved:
                rejected = True
            else:
                rejected = False
                self._registry.get(current).on_exit(ctx, target)
                self._previous = current
                self._current = target
                self._registry.get(target).on_enter(ctx, current)
                record = TransitionRecord(current, target, result.reason, self._clock())
                self._session.record_transition(record)

        if rejected:
            log.info("Transition %s -> %s rejected: %s", current.name, target.name, why)
            self._publish_rejection(current, target, why, preemptive=False)
            return CycleOutcome(CycleOutcomeKind.REJECTED, current, why)

        log.info("Transition %s -> %s (%s)", current.name, target.name, result.reason)
        if self._bus is not None:
            log_event(
                bus=self._bus,
                module=_MODULE,
                event_type=EventType.STATE_TRANSITION,
                message=f"{current.name} -> {target.name}",
                payload=record.to_dict(),
            )
        return CycleOutcome(CycleOutcomeKind.TRANSITIONED, target, result.reason, result.wait_s)

    def _publish_rejection(self, current: StateId, target: StateId, why: str, *, preemptive: bool) -> None:
        if self._bus is None:
            return
        log_event(
            bus=self._bus,
            module=_MODULE,
            event_type=EventType.TRANSITION_REJECTED,
            message=f"{current.name} -> {target.name} rejected",
            payload={
                "from": current.name,
                "to": target.name,
                "reason": why,
                "preemptive": preemptive,
            },
        )
