# src/agent/dispatcher.py
"""
Event dispatcher: asynchronous notifications -> pre-emptive requests.

Runs on whatever thread the NotificationSource delivers on. The only state
written from that thread is:

- the single pending-request slot,
- the repair sighting counter,
- session statistics (which lock internally),
- the snapshot cache's stale flag.

A pending request is consumed by StateManager at the start of the next cycle;
it never interrupts an action that is already running.

Slot policy:
    - same target as the pending request: the newer one overwrites it
    - different target: replaces it only if its priority is at least as high
      (REPAIR > UNLOAD_CONTAINER > BANKING > DEPOSIT), otherwise dropped
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, List, Optional

from bot_core.sensing import SnapshotCache
from contracts.capabilities import NotificationSource, Subscription
from contracts.notifications import ContainerChanged, CounterChanged, ObjectAppeared
from env.schema import MinerConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event
from .scoring import counter_crosses_threshold
from .session import SessionStatistics
from .state import StateId


log = logging.getLogger(__name__)

REPAIRABLE_KIND = "repairable"
INVENTORY_CONTAINER = "inventory"

_PRIORITY = {
    StateId.REPAIR: 4,
    StateId.UNLOAD_CONTAINER: 3,
    StateId.BANKING: 2,
    StateId.DEPOSIT: 1,
}


@dataclass(frozen=True)
class PendingRequest:
    target: StateId
    reason: str
    requested_at: float


class EventDispatcher:
    def __init__(
        self,
        config: MinerConfig,
        session: SessionStatistics,
        *,
        cache: Optional[SnapshotCache] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._session = session
        self._cache = cache
        self._bus = bus
        self._clock = clock
        self._lock = Lock()
        self._pending: Optional[PendingRequest] = None
        self._repair_sightings = 0
        self._subscriptions: List[Subscription] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self, source: NotificationSource) -> None:
        """Register one typed handler per notification kind."""
        if self._subscriptions:
            raise RuntimeError("EventDispatcher is already attached")
        self._subscriptions = [
            source.subscribe(ObjectAppeared, self.on_object_appeared),
            source.subscribe(ContainerChanged, self.on_container_changed),
            source.subscribe(CounterChanged, self.on_counter_changed),
        ]

    def detach(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for sub in subscriptions:
            sub.unsubscribe()

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    # ------------------------------------------------------------------
    # Pending slot
    # ------------------------------------------------------------------

    def request_transition(self, target: StateId, reason: str) -> bool:
        """Store a pre-emptive request. Returns False if a stronger one is pending."""
        request = PendingRequest(target, reason, self._clock())
        with self._lock:
            current = self._pending
            if (
                current is not None
                and current.target is not target
                and _PRIORITY.get(target, 0) < _PRIORITY.get(current.target, 0)
            ):
                log.debug("Dropping %s request; %s already pending", target.name, current.target.name)
                return False
            self._pending = request

        log.info("Pre-emptive request -> %s (%s)", target.name, reason)
        if self._bus is not None:
            log_event(
                bus=self._bus,
                module="agent.dispatcher",
                event_type=EventType.PREEMPT_REQUESTED,
                message=f"request {target.name}",
                payload={"target": target.name, "reason": reason},
            )
        return True

    def take_pending(self) -> Optional[PendingRequest]:
        """Remove and return the pending request (control loop only)."""
        with self._lock:
            request, self._pending = self._pending, None
        return request

    @property
    def pending(self) -> Optional[PendingRequest]:
        with self._lock:
            return self._pending

    @property
    def repair_sightings(self) -> int:
        with self._lock:
            return self._repair_sightings

    def clear(self) -> None:
        with self._lock:
            self._pending = None
            self._repair_sightings = 0

    # ------------------------------------------------------------------
    # Handlers (notification thread)
    # ------------------------------------------------------------------

    def on_object_appeared(self, event: ObjectAppeared) -> None:
        if event.valuable:
            self._session.record_valuable_event()
        if event.kind != REPAIRABLE_KIND:
            return

        with self._lock:
            self._repair_sightings += 1
            due = self._repair_sightings >= self._config.repair_event_threshold
            if due:
                self._repair_sightings = 0
        if due and self._config.auto_repair_enabled:
            self.request_transition(StateId.REPAIR, f"Repairable fixture {event.ref} appeared")

    def on_container_changed(self, event: ContainerChanged) -> None:
        if event.container != INVENTORY_CONTAINER:
            return
        if self._cache is not None:
            self._cache.invalidate()
        if event.free_slots > 0:
            return

        config = self._config
        if config.bank_when_full and config.banking_enabled and not config.use_secondary_container:
            self.request_transition(StateId.BANKING, "Inventory full, banking")
            return
        kept = config.kept_items()
        if config.drop_low_value_items:
            # MINING drops these itself before anything is deposited.
            kept = kept | config.low_value_items
        if any(count > 0 and item not in kept for item, count in event.items.items()):
            self.request_transition(StateId.DEPOSIT, "Inventory full")

    def on_counter_changed(self, event: CounterChanged) -> None:
        config = self._config
        if event.name != config.secondary_container_counter or not config.use_secondary_container:
            return
        if counter_crosses_threshold(event.value, event.maximum, config.unload_threshold_percent):
            percent = 100 * event.value // event.maximum
            self.request_transition(StateId.UNLOAD_CONTAINER, f"Secondary container at {percent}%")
