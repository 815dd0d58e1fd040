# bot_core package
# src/bot_core/__init__.py
"""
bot_core package: the controller's side of the capability boundary.

Exports:
    - SnapshotCache: rate-limited, shared ContextSnapshot access
    - ActionExecutor: bounded, traced Actuator calls
    - ActionTracer: in-memory action trace
"""

from __future__ import annotations

from .sensing import SnapshotCache
from .actions import ActionExecutor
from .tracing import ActionTracer, ActionTraceRecord

__all__ = [
    "SnapshotCache",
    "ActionExecutor",
    "ActionTracer",
    "ActionTraceRecord",
]
