#tests/test_runtime_wiring.py
"""
Integration tests for runtime.agent_runtime_main and runtime.error_handling.

Builds the real runtime around the fakes with short timings and checks that
control commands, shutdown and cycle exceptions reach the loop and the log.
"""

from __future__ import annotations

import dataclasses
import json
import random
from pathlib import Path
from typing import List

import pytest

from agent.state import StateId
from bot_core.testing.fakes import FakeActuator, FakeNotificationSource, FakeSensor
from bot_core.testing.harness import default_context
from contracts.types import Point
from env.schema import AntibanIntensity, ConfigError, MinerConfig
from monitoring.bus import EventBus
from monitoring.controller import AgentController
from monitoring.events import ControlCommand, EventType, MonitoringEvent
from runtime.agent_runtime_main import (
    build_monitoring_stack,
    build_runtime,
    load_runtime_config,
    run_miner_runtime,
)
from runtime.error_handling import safe_cycle_with_logging


FAST = MinerConfig(
    safe_point=Point(100, 100),
    cycle_interval_s=0.01,
    max_wait_s=0.02,
    settle_wait_s=0.01,
    idle_backoff_s=0.01,
    snapshot_min_interval_s=0.001,
    antiban_intensity=AntibanIntensity.OFF,
)


def _runtime(context=None, config: MinerConfig = FAST):
    bus = EventBus()
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)
    sensor = FakeSensor(context or default_context())
    actuator = FakeActuator()
    source = FakeNotificationSource()
    runtime = build_runtime(sensor, actuator, source, config, bus, rng=random.Random(0))
    return runtime, sensor, actuator, source, events


def test_runtime_runs_to_mining():
    runtime, _, actuator, source, events = _runtime()
    try:
        runtime.run(max_cycles=3)
    finally:
        runtime.close()

    assert runtime.manager.current_state() is StateId.MINING
    assert [c.args for c in actuator.calls_named("interact")] == [("rock-a", "Mine")]
    assert len([e for e in events if e.event_type == EventType.STATE_TRANSITION]) == 2
    assert source.subscriber_count == 0
    assert len(runtime.run_id) == 12


def test_build_runtime_validates_config():
    with pytest.raises(ConfigError):
        _runtime(config=dataclasses.replace(FAST, unload_threshold_percent=20))


def test_stop_command_ends_the_loop():
    runtime, _, actuator, _, _ = _runtime()

    def on_interact(ref, action):
        runtime.bus.publish_command(ControlCommand.stop())

    actuator.on_interact = on_interact
    try:
        runtime.run(max_cycles=50)
    finally:
        runtime.close()

    assert runtime.scheduler.stopped
    assert runtime.controller.stop_requested
    assert runtime.scheduler.cycles_run == 3


def test_shutdown_outcome_ends_the_loop():
    runtime, _, _, _, events = _runtime(default_context(inventory={"hammer": 1}))
    try:
        outcome = runtime.run(max_cycles=50)
    finally:
        runtime.close()

    assert outcome.is_shutdown
    # 1 cycle into ERROR, 5 failed recoveries, then the ceiling.
    assert runtime.scheduler.cycles_run == 7
    assert len([e for e in events if e.event_type == EventType.SHUTDOWN]) == 1


def test_cycle_exception_is_logged_and_reraised():
    class BrokenManager:
        def execute_cycle(self):
            raise RuntimeError("sensor died")

        def reset(self):
            pass

        def debug_state(self):
            return {}

    bus = EventBus()
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)
    controller = AgentController(BrokenManager(), bus)

    with pytest.raises(RuntimeError, match="sensor died"):
        safe_cycle_with_logging(controller, bus, run_id="run-1", profile="default")

    (event,) = events
    assert event.payload["subtype"] == "CYCLE_EXCEPTION"
    assert event.payload["run_id"] == "run-1"
    assert event.correlation_id == "run-1"
    assert "sensor died" in event.payload["exception_repr"]


def test_load_runtime_config_reports_errors(tmp_path: Path):
    bus = EventBus()
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)

    with pytest.raises(FileNotFoundError):
        load_runtime_config(bus, path=tmp_path / "missing.yaml", profile="default")

    (event,) = events
    assert event.payload["subtype"] == "CONFIG_ERROR"
    assert event.payload["profile"] == "default"


def test_load_runtime_config_uses_shipped_file():
    config = load_runtime_config(EventBus(), profile="lower_only")
    assert config.mining_areas == ("lower",)


def test_run_miner_runtime_writes_log(tmp_path: Path):
    log_path = tmp_path / "logs" / "events.log"
    outcome = run_miner_runtime(
        FakeSensor(default_context()),
        FakeActuator(),
        FakeNotificationSource(),
        FAST,
        profile="test",
        log_path=log_path,
        max_cycles=2,
    )

    assert outcome.state is StateId.MINING
    lines = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert [d["payload"]["to"] for d in lines if d["event_type"] == "STATE_TRANSITION"] == ["IDLE", "MINING"]


def test_monitoring_stack_creates_logger(tmp_path: Path):
    bus, logger = build_monitoring_stack(log_path=tmp_path / "m" / "events.log")
    assert logger.path.parent.exists()
    logger.close()


def test_contracts_package_keeps_its_docstring():
    import contracts

    assert contracts.__doc__ is not None
    assert contracts.__doc__.strip().startswith("Public contract surface")
    assert "ContextSnapshot" in contracts.__all__
