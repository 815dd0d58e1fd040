# typed payloads delivered by a NotificationSource
# src/contracts/notifications.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Union

from .types import Point


@dataclass(frozen=True)
class ObjectAppeared:
    """
    An object became visible in the world.

    kind is a free-form label; the controller only cares about
    "repairable" fixtures. valuable marks objects worth counting in the
    session statistics (rare drops, gems, ...).
    """
    kind: str
    ref: str
    position: Optional[Point] = None
    valuable: bool = False


@dataclass(frozen=True)
class ContainerChanged:
    """The contents of a container (inventory, bank, ...) changed."""
    container: str
    items: Mapping[str, int] = field(default_factory=dict)
    free_slots: int = 0


@dataclass(frozen=True)
class CounterChanged:
    """A scalar counter (e.g. the sack fill gauge) changed value."""
    name: str
    value: int
    maximum: int


Notification = Union[ObjectAppeared, ContainerChanged, CounterChanged]
