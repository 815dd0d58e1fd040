#tests/test_event_dispatcher.py
"""
Tests for agent.dispatcher.EventDispatcher.

Covers:
- counter-change threshold -> UNLOAD_CONTAINER request
- duplicate delivery leaves exactly one pending request
- repairable sightings reaching the repeat count -> REPAIR request
- container change invalidates the snapshot and may request DEPOSIT / BANKING
- single-slot priority policy
- attach / detach of typed subscriptions
- concurrent delivery smoke check
"""

from __future__ import annotations

import threading
from typing import List

from agent.dispatcher import EventDispatcher
from agent.session import SessionStatistics
from agent.state import StateId
from bot_core.sensing import SnapshotCache
from bot_core.testing.fakes import FakeNotificationSource, FakeSensor, ManualClock
from contracts.notifications import ContainerChanged, CounterChanged, ObjectAppeared
from env.schema import BankingFrequency, MinerConfig
from monitoring.bus import EventBus
from monitoring.events import EventType, MonitoringEvent


def _dispatcher(config: MinerConfig = None, **kwargs) -> EventDispatcher:
    return EventDispatcher(config or MinerConfig(), SessionStatistics(), **kwargs)


def test_counter_over_threshold_requests_unload():
    d = _dispatcher()
    d.on_counter_changed(CounterChanged("sack", 9, 10))

    pending = d.pending
    assert pending is not None
    assert pending.target is StateId.UNLOAD_CONTAINER
    assert pending.reason == "Secondary container at 90%"


def test_counter_below_threshold_or_other_counter_is_ignored():
    d = _dispatcher()
    d.on_counter_changed(CounterChanged("sack", 8, 10))
    d.on_counter_changed(CounterChanged("run_energy", 100, 100))
    assert d.pending is None


def test_counter_ignored_without_secondary_container():
    d = _dispatcher(MinerConfig(use_secondary_container=False))
    d.on_counter_changed(CounterChanged("sack", 10, 10))
    assert d.pending is None


def test_duplicate_counter_events_leave_one_request():
    source = FakeNotificationSource()
    d = _dispatcher()
    d.attach(source)

    event = CounterChanged("sack", 27, 30)
    source.emit(event)
    source.emit(event)

    first = d.take_pending()
    assert first is not None and first.target is StateId.UNLOAD_CONTAINER
    assert d.take_pending() is None


def test_repairable_sightings_need_repeat_count():
    d = _dispatcher(MinerConfig(repair_event_threshold=2))
    d.on_object_appeared(ObjectAppeared("repairable", "strut-1"))
    assert d.pending is None
    assert d.repair_sightings == 1

    d.on_object_appeared(ObjectAppeared("repairable", "strut-1"))
    assert d.pending is not None
    assert d.pending.target is StateId.REPAIR
    assert d.repair_sightings == 0


def test_repair_not_requested_when_auto_repair_disabled():
    d = _dispatcher(MinerConfig(auto_repair_enabled=False, repair_event_threshold=1))
    d.on_object_appeared(ObjectAppeared("repairable", "strut-1"))
    assert d.pending is None


def test_valuable_objects_are_counted_in_session():
    session = SessionStatistics()
    d = EventDispatcher(MinerConfig(), session)
    d.on_object_appeared(ObjectAppeared("gem", "gem-1", valuable=True))
    d.on_object_appeared(ObjectAppeared("rock", "rock-1"))
    assert session.snapshot().valuable_events_recorded == 1
    assert d.pending is None


def test_inventory_change_invalidates_snapshot():
    clock = ManualClock()
    sensor = FakeSensor()
    cache = SnapshotCache(sensor, min_interval_s=0.1, max_age_s=60.0, clock=clock)
    cache.get()
    d = _dispatcher(cache=cache)

    d.on_container_changed(ContainerChanged("inventory", {"ore": 3}, free_slots=10))
    clock.advance(0.2)
    cache.get()
    assert sensor.context_calls == 2
    assert d.pending is None


def test_full_inventory_with_cargo_requests_deposit():
    d = _dispatcher()
    d.on_container_changed(ContainerChanged("inventory", {"pickaxe": 1, "ore": 27}, free_slots=0))
    assert d.pending.target is StateId.DEPOSIT
    assert d.pending.reason == "Inventory full"


def test_full_inventory_of_kept_items_requests_nothing():
    d = _dispatcher()
    d.on_container_changed(ContainerChanged("inventory", {"pickaxe": 1, "hammer": 1}, free_slots=0))
    assert d.pending is None


def test_full_inventory_banks_when_configured():
    d = _dispatcher(MinerConfig(use_secondary_container=False, bank_when_full=True))
    d.on_container_changed(ContainerChanged("inventory", {"ore": 28}, free_slots=0))
    assert d.pending.target is StateId.BANKING


def test_full_inventory_deposits_when_banking_is_disabled():
    config = MinerConfig(
        use_secondary_container=False, bank_when_full=True, banking_frequency=BankingFrequency.NEVER
    )
    d = _dispatcher(config)
    d.on_container_changed(ContainerChanged("inventory", {"ore": 28}, free_slots=0))
    assert d.pending.target is StateId.DEPOSIT


def test_other_containers_are_ignored():
    d = _dispatcher()
    d.on_container_changed(ContainerChanged("bank", {"ore": 500}, free_slots=0))
    assert d.pending is None


# ---------------------------------------------------------------------------
# Slot policy
# ---------------------------------------------------------------------------


def test_same_target_last_wins():
    d = _dispatcher()
    d.request_transition(StateId.DEPOSIT, "first")
    d.request_transition(StateId.DEPOSIT, "second")
    assert d.pending.reason == "second"


def test_lower_priority_request_is_dropped():
    d = _dispatcher()
    assert d.request_transition(StateId.REPAIR, "damage")
    assert d.request_transition(StateId.DEPOSIT, "full") is False
    assert d.pending.target is StateId.REPAIR


def test_higher_priority_request_replaces_pending():
    d = _dispatcher()
    d.request_transition(StateId.DEPOSIT, "full")
    d.request_transition(StateId.UNLOAD_CONTAINER, "sack")
    assert d.pending.target is StateId.UNLOAD_CONTAINER


def test_preempt_event_published():
    bus = EventBus()
    captured: List[MonitoringEvent] = []
    bus.subscribe(captured.append)
    d = _dispatcher(bus=bus)

    d.request_transition(StateId.BANKING, "test")
    assert [e.event_type for e in captured] == [EventType.PREEMPT_REQUESTED]
    assert captured[0].payload == {"target": "BANKING", "reason": "test"}


def test_clear_drops_pending_and_sightings():
    d = _dispatcher(MinerConfig(repair_event_threshold=3))
    d.on_object_appeared(ObjectAppeared("repairable", "s"))
    d.request_transition(StateId.DEPOSIT, "x")
    d.clear()
    assert d.pending is None
    assert d.repair_sightings == 0


# ---------------------------------------------------------------------------
# Lifecycle / threading
# ---------------------------------------------------------------------------


def test_attach_and_detach_manage_subscriptions():
    source = FakeNotificationSource()
    d = _dispatcher()
    d.attach(source)
    assert d.attached
    assert source.subscriber_count == 3

    d.detach()
    assert not d.attached
    assert source.subscriber_count == 0
    assert source.emit(CounterChanged("sack", 10, 10)) == 0
    assert d.pending is None


def test_concurrent_delivery_keeps_single_slot():
    source = FakeNotificationSource()
    session = SessionStatistics()
    d = EventDispatcher(MinerConfig(), session)
    d.attach(source)

    def worker():
        for _ in range(200):
            source.emit(CounterChanged("sack", 10, 10))
            source.emit(ObjectAppeared("gem", "g", valuable=True))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert session.snapshot().valuable_events_recorded == 800
    assert d.take_pending().target is StateId.UNLOAD_CONTAINER
    assert d.take_pending() is None
