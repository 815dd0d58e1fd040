# path: src/monitoring/events.py
"""
Wire types shared by the bus, the JSONL logger and the log tools.

Every MonitoringEvent survives a trip through `to_dict()` / `from_dict()`
unchanged, which is what monitoring.tools relies on when it reads a run
back from disk. ControlCommands never hit the log; they only travel over
EventBus.publish_command() to monitoring.controller.AgentController.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Mapping, Optional


class EventType(Enum):
    """What happened, from the point of view of a log reader."""

    # agent.manager
    STATE_TRANSITION = auto()       # one per approved TransitionRecord
    TRANSITION_REJECTED = auto()    # state left untouched

    # agent.dispatcher
    PREEMPT_REQUESTED = auto()

    # bot_core.actions
    ACTION_EXECUTED = auto()

    # agent.recovery
    RECOVERY_ATTEMPTED = auto()
    SHUTDOWN = auto()

    # monitoring.controller
    SNAPSHOT = auto()
    CONTROL_COMMAND = auto()

    # free-form, see payload["subtype"]
    LOG = auto()


@dataclass
class MonitoringEvent:
    """
    One structured record on the bus.

    `payload` and `correlation_id` (the run id) must hold JSON-safe values
    only; states and enums are written by name.
    """

    ts: float
    module: str
    event_type: EventType
    message: str
    payload: Dict[str, Any]
    correlation_id: Optional[str] = None

    @property
    def subtype(self) -> Optional[str]:
        return self.payload.get("subtype")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "module": self.module,
            "event_type": self.event_type.name,
            "message": self.message,
            "payload": dict(self.payload),
            "correlation_id": self.correlation_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MonitoringEvent":
        """
        Rebuild an event written by `to_dict()`.

        Raises KeyError for an unknown or missing event_type; every other
        field falls back to an empty value.
        """
        return cls(
            ts=float(data.get("ts") or 0.0),
            module=data.get("module") or "",
            event_type=EventType[data["event_type"]],
            message=data.get("message") or "",
            payload=dict(data.get("payload") or {}),
            correlation_id=data.get("correlation_id"),
        )


class ControlCommandType(Enum):
    PAUSE = auto()          # hold the loop, cycles return None
    RESUME = auto()
    SINGLE_STEP = auto()    # run one cycle while paused
    STOP = auto()           # ends the scheduler after the current cycle
    RESET = auto()          # manager.reset() before the next cycle
    DUMP_STATE = auto()     # publish a SNAPSHOT event


@dataclass
class ControlCommand:
    """Operator or host request for AgentController."""

    cmd: ControlCommandType
    args: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, cmd: ControlCommandType, **args: Any) -> "ControlCommand":
        return cls(cmd, dict(args))

    # Shorthands used by tools and tests.

    @classmethod
    def pause(cls) -> "ControlCommand":
        return cls.of(ControlCommandType.PAUSE)

    @classmethod
    def resume(cls) -> "ControlCommand":
        return cls.of(ControlCommandType.RESUME)

    @classmethod
    def single_step(cls) -> "ControlCommand":
        return cls.of(ControlCommandType.SINGLE_STEP)

    @classmethod
    def stop(cls) -> "ControlCommand":
        return cls.of(ControlCommandType.STOP)

    @classmethod
    def reset(cls) -> "ControlCommand":
        return cls.of(ControlCommandType.RESET)

    @classmethod
    def dump_state(cls, reason: Optional[str] = None) -> "ControlCommand":
        if reason is None:
            return cls.of(ControlCommandType.DUMP_STATE)
        return cls.of(ControlCommandType.DUMP_STATE, reason=reason)
