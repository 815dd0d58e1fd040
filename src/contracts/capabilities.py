# Sensor / Actuator / NotificationSource interface definitions
# src/contracts/capabilities.py

from __future__ import annotations

from typing import Callable, Protocol, Type, TypeVar

from .types import ContextSnapshot, Point


P = TypeVar("P")


class Sensor(Protocol):
    """Read-only access to the live game world.

    Implementations are supplied by the host (client plugin, IPC bridge, ...).
    The controller never calls these more often than the snapshot cache
    allows.
    """

    def current_context(self) -> ContextSnapshot:
        """Return a fresh snapshot of the facts the controller decides on."""
        ...

    def nearby_player_count(self, point: Point, radius: int) -> int:
        """Return how many other players stand within `radius` tiles of `point`."""
        ...

    def reachable(self, point: Point) -> bool:
        """Return True if a walking path to `point` is known to exist."""
        ...


class Actuator(Protocol):
    """Performs a single external action and reports success.

    Calls may block; the controller wraps them in bot_core.actions.ActionExecutor
    which enforces a timeout.
    """

    def move_to(self, point: Point) -> bool:
        """Walk towards `point`. Returns False if the walker gave up."""
        ...

    def interact(self, target_ref: str, action: str) -> bool:
        """Click `action` ("Mine", "Deposit", ...) on the object `target_ref`."""
        ...


class Subscription(Protocol):
    """Handle returned by NotificationSource.subscribe()."""

    def unsubscribe(self) -> None:
        ...


class NotificationSource(Protocol):
    """Publishes typed environment notifications on the host's event thread."""

    def subscribe(
        self,
        payload_type: Type[P],
        handler: Callable[[P], None],
    ) -> Subscription:
        """Register `handler` for payloads of exactly `payload_type`."""
        ...
