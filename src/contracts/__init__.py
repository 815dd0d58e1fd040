# src/contracts/__init__.py

"""
Public contract surface for the mining controller.

This module re-exports *interfaces and data types* shared across packages:
  - world primitives (Point, MiningTarget, Fixture, ContextSnapshot)
  - notification payloads (ObjectAppeared, ContainerChanged, CounterChanged)
  - capability protocols (Sensor, Actuator, NotificationSource)

Concrete implementations live in bot_core (wrappers, fakes) and in the host.
"""

from __future__ import annotations

from .types import ContextSnapshot, Fixture, MiningTarget, Point
from .notifications import (
    ContainerChanged,
    CounterChanged,
    Notification,
    ObjectAppeared,
)
from .capabilities import Actuator, NotificationSource, Sensor, Subscription

__all__ = [
    "Point",
    "MiningTarget",
    "Fixture",
    "ContextSnapshot",
    "ObjectAppeared",
    "ContainerChanged",
    "CounterChanged",
    "Notification",
    "Sensor",
    "Actuator",
    "NotificationSource",
    "Subscription",
]
