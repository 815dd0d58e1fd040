#tests/test_monitoring_controller.py
"""
Tests for monitoring.controller.AgentController.

Covers:
- pause/resume semantics
- single-step correctness
- STOP forwarding to the scheduler callback
- RESET deferred to the loop thread
- DUMP_STATE wiring (stub manager and a real StateManager)
"""

from __future__ import annotations

from typing import Any, Dict, List

from agent.state import StateId
from bot_core.testing.harness import build_harness
from monitoring.bus import EventBus
from monitoring.controller import AgentController
from monitoring.events import ControlCommand, ControlCommandType, EventType, MonitoringEvent


class FakeManager:
    """Minimal StateManager stand-in implementing the ManagerControl protocol."""

    def __init__(self, *, broken_debug: bool = False) -> None:
        self.cycles = 0
        self.resets = 0
        self.broken_debug = broken_debug

    def execute_cycle(self) -> str:
        self.cycles += 1
        return f"outcome-{self.cycles}"

    def reset(self) -> None:
        self.resets += 1

    def debug_state(self) -> Dict[str, Any]:
        if self.broken_debug:
            raise RuntimeError("manager torn down")
        return {"current": "MINING", "cycles": self.cycles}


def _capture(bus: EventBus) -> List[MonitoringEvent]:
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)
    return events


def test_controller_pause_resume():
    bus = EventBus()
    manager = FakeManager()
    controller = AgentController(manager, bus)
    assert controller.paused is False

    bus.publish_command(ControlCommand.pause())
    assert controller.paused is True
    assert controller.maybe_step() is None
    assert manager.cycles == 0

    bus.publish_command(ControlCommand.resume())
    assert controller.paused is False
    assert controller.maybe_step() == "outcome-1"


def test_single_step_runs_one_cycle_then_pauses():
    bus = EventBus()
    manager = FakeManager()
    controller = AgentController(manager, bus)
    events = _capture(bus)

    bus.publish_command(ControlCommand.pause())
    bus.publish_command(ControlCommand.single_step())
    assert controller.single_step_pending is True

    controller.maybe_step()
    controller.maybe_step()
    assert manager.cycles == 1
    assert controller.paused is True
    assert controller.single_step_pending is False

    cmds = [e.payload["cmd"] for e in events if e.event_type == EventType.CONTROL_COMMAND]
    assert cmds == ["PAUSE", "SINGLE_STEP", "SINGLE_STEP_COMPLETED"]


def test_stop_invokes_callback_and_blocks_cycles():
    bus = EventBus()
    manager = FakeManager()
    stopped: List[bool] = []
    controller = AgentController(manager, bus, on_stop=lambda: stopped.append(True))

    bus.publish_command(ControlCommand.stop())
    assert stopped == [True]
    assert controller.stop_requested is True
    assert controller.maybe_step() is None
    assert manager.cycles == 0


def test_stop_callback_can_be_set_later():
    bus = EventBus()
    controller = AgentController(FakeManager(), bus)
    stopped: List[bool] = []
    controller.set_stop_callback(lambda: stopped.append(True))

    bus.publish_command(ControlCommand(cmd=ControlCommandType.STOP, args={}))
    assert stopped == [True]


def test_reset_is_applied_on_next_step():
    bus = EventBus()
    manager = FakeManager()
    controller = AgentController(manager, bus)
    events = _capture(bus)

    bus.publish_command(ControlCommand.reset())
    assert manager.resets == 0

    controller.maybe_step()
    assert manager.resets == 1
    assert manager.cycles == 1
    cmds = [e.payload["cmd"] for e in events if e.event_type == EventType.CONTROL_COMMAND]
    assert cmds == ["RESET", "RESET_COMPLETED"]


def test_reset_applies_even_while_paused():
    bus = EventBus()
    manager = FakeManager()
    controller = AgentController(manager, bus)

    bus.publish_command(ControlCommand.pause())
    bus.publish_command(ControlCommand.reset())
    assert controller.maybe_step() is None
    assert manager.resets == 1
    assert manager.cycles == 0


def test_dump_state_emits_snapshot():
    bus = EventBus()
    controller = AgentController(FakeManager(), bus)
    events = _capture(bus)

    bus.publish_command(ControlCommand.dump_state())

    (snap,) = [e for e in events if e.event_type == EventType.SNAPSHOT]
    assert snap.payload["state"] == {"current": "MINING", "cycles": 0}
    controller.close()


def test_dump_state_survives_broken_manager():
    bus = EventBus()
    AgentController(FakeManager(broken_debug=True), bus)
    events = _capture(bus)

    bus.publish_command(ControlCommand.dump_state())
    (snap,) = [e for e in events if e.event_type == EventType.SNAPSHOT]
    assert snap.payload["state"]["error"] == "debug_state_failed"


def test_close_unsubscribes():
    bus = EventBus()
    controller = AgentController(FakeManager(), bus)
    controller.close()

    bus.publish_command(ControlCommand.pause())
    assert controller.paused is False


def test_controller_drives_real_state_manager():
    h = build_harness()
    controller = AgentController(h.manager, h.bus)

    h.clock.advance(1.0)
    controller.maybe_step()
    h.clock.advance(1.0)
    controller.maybe_step()
    assert h.manager.current_state() is StateId.MINING

    h.bus.publish_command(ControlCommand.dump_state())
    (snap,) = h.events_of(EventType.SNAPSHOT)
    assert snap.payload["state"]["current"] == "MINING"

    h.bus.publish_command(ControlCommand.reset())
    controller.maybe_step()
    # Reset put it back to INITIALIZING, and that cycle moved on to IDLE.
    assert h.manager.current_state() is StateId.IDLE
    controller.close()
    h.close()


def test_events_carry_run_id_and_dump_reason():
    bus = EventBus()
    controller = AgentController(FakeManager(), bus, run_id="run-9")
    events = _capture(bus)

    bus.publish_command(ControlCommand.pause())
    bus.publish_command(ControlCommand.dump_state(reason="operator"))

    assert {e.correlation_id for e in events} == {"run-9"}
    (snap,) = [e for e in events if e.event_type == EventType.SNAPSHOT]
    assert snap.payload["reason"] == "operator"
    controller.close()
