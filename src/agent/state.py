#"src/agent/state.py"

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class StateId(Enum):
    """
    Identifiers for the controller's state machine.

    Exactly one is current at any time. SHUTDOWN is not a state: it is an
    outcome returned to the host (see CycleOutcomeKind.SHUTDOWN).
    """

    INITIALIZING = auto()
    IDLE = auto()
    MINING = auto()
    DEPOSIT = auto()
    UNLOAD_CONTAINER = auto()
    REPAIR = auto()
    BANKING = auto()
    ERROR = auto()


class MiningPhase(Enum):
    """Sub-phases of MINING."""

    SEEKING_TARGET = auto()
    ACTIVE = auto()
    TARGET_DEPLETED = auto()


# ----------------------------------------------------------------------
# Per-cycle results
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class TransitionResult:
    """
    What a state's execute() asks for this cycle.

    Build with the factory helpers rather than the constructor:

        TransitionResult.remain("mining", wait_s=2.0)
        TransitionResult.to(StateId.DEPOSIT, "Inventory full")
        TransitionResult.shutdown("consecutive failure ceiling reached")

    wait_s is a request for a bounded pause before the next cycle; the
    scheduler enforces it (capped by config.max_wait_s).
    """

    reason: str
    target: Optional[StateId] = None
    wait_s: Optional[float] = None
    is_shutdown: bool = False

    @classmethod
    def remain(cls, reason: str, wait_s: Optional[float] = None) -> "TransitionResult":
        return cls(reason=reason, wait_s=wait_s)

    @classmethod
    def to(cls, target: StateId, reason: str) -> "TransitionResult":
        return cls(reason=reason, target=target)

    @classmethod
    def shutdown(cls, reason: str) -> "TransitionResult":
        return cls(reason=reason, is_shutdown=True)

    @property
    def requests_transition(self) -> bool:
        return self.target is not None


@dataclass(frozen=True)
class TransitionRecord:
    """Append-only diagnostic log entry for one approved transition."""

    from_state: StateId
    to_state: StateId
    reason: str
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "from": self.from_state.name,
            "to": self.to_state.name,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }


class CycleOutcomeKind(Enum):
    REMAINED = auto()
    TRANSITIONED = auto()
    REJECTED = auto()       # validation said no; a diagnostic, not an error
    SKIPPED = auto()        # host not logged in, no cycle logic ran
    SHUTDOWN = auto()       # failure ceiling crossed; host must stop the loop


@dataclass(frozen=True)
class CycleOutcome:
    """Returned by StateManager.execute_cycle() to the scheduler."""

    kind: CycleOutcomeKind
    state: StateId
    reason: str
    wait_s: Optional[float] = None

    @property
    def is_shutdown(self) -> bool:
        return self.kind is CycleOutcomeKind.SHUTDOWN


# ----------------------------------------------------------------------
# Loop-owned counters
# ----------------------------------------------------------------------


@dataclass
class LoopCounters:
    """
    Counters the decision logic reads (banking frequency, ...).

    Only the control loop writes these. Diagnostics live in
    agent.session.SessionStatistics instead.
    """

    deposits: int = 0
    unloads: int = 0
    unloads_since_bank: int = 0
    bank_trips: int = 0

    def reset(self) -> None:
        self.deposits = 0
        self.unloads = 0
        self.unloads_since_bank = 0
        self.bank_trips = 0
