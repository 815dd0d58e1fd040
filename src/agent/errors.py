# src/agent/errors.py
"""
Failure taxonomy for the controller.

States and the action executor raise these; the state manager routes every
exception raised by a state's execute() to the ERROR state, where the
ErrorRecoveryService classifies it by type:

    NavigationError           -> FailureKind.NAVIGATION
    InteractionError          -> FailureKind.INTERACTION_TARGET_MISSING
    ResourceUnavailableError  -> FailureKind.RESOURCE_UNAVAILABLE
    anything else             -> FailureKind.UNKNOWN

A rejected transition is not an error; it is a REJECTED cycle outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from contracts.types import Point


@dataclass(eq=False)
class AutomationError(RuntimeError):
    """Base class for classified controller failures."""

    code: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, details={self.details!r})"


@dataclass(eq=False)
class NavigationError(AutomationError):
    """Target unreachable, path lost, or a move timed out."""

    point: Optional[Point] = None


@dataclass(eq=False)
class InteractionError(AutomationError):
    """Expected target absent, interaction rejected, or it timed out."""

    target_ref: Optional[str] = None
    action: Optional[str] = None


@dataclass(eq=False)
class ResourceUnavailableError(AutomationError):
    """A required item or tool is missing."""

    item: Optional[str] = None
