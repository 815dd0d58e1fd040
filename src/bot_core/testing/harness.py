# src/bot_core/testing/harness.py
"""
A fully wired controller on top of the fakes, for scenario tests.

    h = build_harness()
    h.cycle()                       # INITIALIZING -> IDLE
    h.run_until(StateId.MINING)
    h.sensor.update(free_slots=0, inventory={...})
    outcome = h.cycle()

Every cycle advances the ManualClock by one second first, so the snapshot
cache rebuilds and each cycle sees the sensor's latest context.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from agent.dispatcher import EventDispatcher
from agent.manager import StateManager
from agent.recovery import ErrorRecoveryService
from agent.session import SessionStatistics
from agent.state import CycleOutcome, LoopCounters, StateId
from agent.states import State, StateRegistry, build_state_registry
from bot_core.actions import ActionExecutor
from bot_core.sensing import SnapshotCache
from contracts.types import ContextSnapshot, MiningTarget, Point
from env.schema import MinerConfig
from monitoring.bus import EventBus
from monitoring.events import EventType, MonitoringEvent
from .fakes import FakeActuator, FakeNotificationSource, FakeSensor, ManualClock


def default_context(**changes) -> ContextSnapshot:
    """A logged-in player in the upper area next to one rock, with both tools."""
    base = ContextSnapshot(
        position=Point(100, 100),
        area="upper",
        targets=(MiningTarget("rock-a", Point(102, 100), "upper"),),
        inventory={"pickaxe": 1, "hammer": 1},
        free_slots=20,
        secondary_level=0,
        secondary_max=10,
        deposit_point=Point(90, 100),
        bank_point=Point(80, 100),
    )
    return dataclasses.replace(base, **changes)


@dataclass
class MinerHarness:
    config: MinerConfig
    clock: ManualClock
    sensor: FakeSensor
    actuator: FakeActuator
    source: FakeNotificationSource
    bus: EventBus
    cache: SnapshotCache
    actions: ActionExecutor
    session: SessionStatistics
    dispatcher: EventDispatcher
    recovery: ErrorRecoveryService
    registry: StateRegistry
    manager: StateManager
    events: List[MonitoringEvent] = field(default_factory=list)

    def cycle(self) -> CycleOutcome:
        self.clock.advance(1.0)
        return self.manager.execute_cycle()

    def run_until(self, state: StateId, max_cycles: int = 20) -> CycleOutcome:
        for _ in range(max_cycles):
            outcome = self.cycle()
            if self.manager.current_state() is state:
                return outcome
        raise AssertionError(
            f"never reached {state.name}; stuck in {self.manager.current_state().name}"
        )

    def events_of(self, event_type: EventType) -> List[MonitoringEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def close(self) -> None:
        self.dispatcher.detach()
        self.actions.close()


def build_harness(
    context: Optional[ContextSnapshot] = None,
    config: Optional[MinerConfig] = None,
    *,
    states: Iterable[State] = (),
) -> MinerHarness:
    """
    Wire the real controller to fakes. `states` replaces the default state
    objects with the same state_id (scripted states for edge-case tests).
    """
    config = config or MinerConfig(safe_point=Point(100, 100))
    clock = ManualClock()
    sensor = FakeSensor(context or default_context())
    actuator = FakeActuator()
    source = FakeNotificationSource()
    bus = EventBus()
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)

    cache = SnapshotCache(sensor, min_interval_s=config.snapshot_min_interval_s, clock=clock)
    actions = ActionExecutor(actuator, timeout_s=config.action_timeout_s, bus=bus)
    session = SessionStatistics(clock=clock)
    dispatcher = EventDispatcher(config, session, cache=cache, bus=bus, clock=clock)
    recovery = ErrorRecoveryService.with_default_strategies(actions, cache, config, bus=bus)

    registry = build_state_registry(recovery)
    overrides = {s.state_id: s for s in states}
    if overrides:
        merged = [overrides.get(sid, registry.get(sid)) for sid in StateId]
        registry = StateRegistry(merged)

    manager = StateManager(
        registry,
        cache,
        actions,
        config,
        session=session,
        dispatcher=dispatcher,
        bus=bus,
        counters=LoopCounters(),
        clock=clock,
    )
    dispatcher.attach(source)

    return MinerHarness(
        config=config,
        clock=clock,
        sensor=sensor,
        actuator=actuator,
        source=source,
        bus=bus,
        cache=cache,
        actions=actions,
        session=session,
        dispatcher=dispatcher,
        recovery=recovery,
        registry=registry,
        manager=manager,
        events=events,
    )
