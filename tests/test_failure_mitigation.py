# path: tests/test_failure_mitigation.py

"""
runtime.failure_mitigation: each helper publishes exactly one event with the
event type, module and payload shape the log tools expect.
"""

from __future__ import annotations

from monitoring.events import EventType
from runtime.failure_mitigation import (
    emit_action_failure,
    emit_config_error,
    emit_recovery_exhausted,
)


def test_emit_config_error(bus, captured):
    emit_config_error(
        bus,
        "Failed to load config",
        profile="default",
        error_repr="ConfigError('unload_threshold_percent must be within 50..100, got 10')",
    )

    (evt,) = captured
    assert evt.event_type == EventType.LOG
    assert evt.module == "runtime.config"
    assert evt.subtype == "CONFIG_ERROR"
    assert evt.payload["profile"] == "default"
    assert "unload_threshold_percent" in evt.payload["error"]


def test_emit_action_failure(bus, captured):
    emit_action_failure(
        bus,
        action_name="move_to",
        action_args={"point": {"x": 1, "y": 2, "plane": 0}},
        error_code="move_timeout",
        duration_s=30.0,
        correlation_id="run-7",
    )

    (evt,) = captured
    assert evt.event_type == EventType.ACTION_EXECUTED
    assert evt.module == "bot_core.actions"
    assert evt.correlation_id == "run-7"
    assert evt.payload["action_name"] == "move_to"
    assert evt.payload["success"] is False
    assert evt.payload["error"] == "move_timeout"
    assert evt.payload["exception"] is None
    assert evt.payload["duration_s"] == 30.0


def test_emit_recovery_exhausted(bus, captured):
    emit_recovery_exhausted(
        bus,
        state="ERROR",
        consecutive_failures=5,
        ceiling=5,
        reason="5 consecutive failures reached ceiling 5",
    )

    (evt,) = captured
    assert evt.event_type == EventType.SHUTDOWN
    assert evt.module == "agent.recovery"
    assert evt.message == "5 consecutive failures reached ceiling 5"
    assert evt.payload == {"state": "ERROR", "consecutive_failures": 5, "ceiling": 5}
