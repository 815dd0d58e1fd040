# path: src/runtime/agent_runtime_main.py

"""
Unified runtime wiring the controller and the monitoring layer.

This module shows:
- How the EventBus, JsonFileLogger, StateManager, AgentController and
  CycleScheduler fit together.
- How control commands affect the cycle loop.
- Where monitoring events flow and how logs are produced.

The host supplies the three capabilities (Sensor, Actuator,
NotificationSource) and a MinerConfig; everything else is built here.
tools/smoke_miner.py drives it against the in-memory fakes.
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from agent.dispatcher import EventDispatcher
from agent.loop import CycleScheduler
from agent.manager import StateManager
from agent.recovery import ErrorRecoveryService
from agent.session import SessionStatistics
from agent.state import CycleOutcome
from agent.states import build_state_registry
from bot_core.actions import ActionExecutor
from bot_core.sensing import SnapshotCache
from bot_core.tracing import ActionTracer
from contracts.capabilities import Actuator, NotificationSource, Sensor
from env.loader import load_config
from env.schema import ConfigError, MinerConfig
from monitoring.bus import EventBus
from monitoring.controller import AgentController
from monitoring.logger import JsonFileLogger
from runtime.error_handling import safe_cycle_with_logging
from runtime.failure_mitigation import emit_config_error


log = logging.getLogger(__name__)

DEFAULT_LOG_PATH = Path("logs") / "monitoring" / "events.log"


def build_monitoring_stack(
    bus: Optional[EventBus] = None,
    log_path: Optional[Path] = None,
) -> tuple[EventBus, JsonFileLogger]:
    """
    Construct the monitoring stack used by the runtime.

    Responsibilities:
    - Use the given EventBus or create a fresh one.
    - Attach a JsonFileLogger that writes MonitoringEvents as JSONL.

    Returns:
        (bus, logger)
    """
    if bus is None:
        bus = EventBus()

    # Default location: logs/monitoring/events.log (created if needed)
    if log_path is None:
        log_path = DEFAULT_LOG_PATH

    logger = JsonFileLogger(path=log_path, bus=bus)
    return bus, logger


def load_runtime_config(
    bus: EventBus,
    *,
    path: Optional[Path] = None,
    profile: Optional[str] = None,
) -> MinerConfig:
    """
    Load the active profile, reporting a bad or missing config on the bus
    before re-raising.
    """
    try:
        return load_config(path, profile=profile)
    except (ConfigError, KeyError, FileNotFoundError) as exc:
        log.error("Failed to load config (profile=%s): %s", profile, exc)
        emit_config_error(bus, "Failed to load config", profile=profile, error_repr=repr(exc))
        raise


@dataclass
class MinerRuntime:
    """Everything one controller run owns; torn down by close()."""

    config: MinerConfig
    bus: EventBus
    cache: SnapshotCache
    actions: ActionExecutor
    session: SessionStatistics
    dispatcher: EventDispatcher
    recovery: ErrorRecoveryService
    manager: StateManager
    controller: AgentController
    scheduler: CycleScheduler
    run_id: str
    profile: Optional[str] = None

    def run(self, max_cycles: Optional[int] = None) -> Optional[CycleOutcome]:
        return self.scheduler.run(max_cycles=max_cycles)

    def close(self) -> None:
        self.scheduler.stop()
        self.dispatcher.detach()
        self.controller.close()
        self.actions.close()


def build_runtime(
    sensor: Sensor,
    actuator: Actuator,
    source: NotificationSource,
    config: MinerConfig,
    bus: EventBus,
    *,
    profile: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> MinerRuntime:
    """
    Construct the controller around the host's capabilities.

    The dispatcher is attached to `source` here and detached by
    MinerRuntime.close(). The scheduler drives the AgentController through
    safe_cycle_with_logging, so a STOP command or a SHUTDOWN outcome ends
    the loop between cycles.
    """
    config.validate()
    run_id = uuid.uuid4().hex[:12]

    cache = SnapshotCache(sensor, min_interval_s=config.snapshot_min_interval_s)
    actions = ActionExecutor(
        actuator, timeout_s=config.action_timeout_s, tracer=ActionTracer(), bus=bus
    )
    session = SessionStatistics()
    dispatcher = EventDispatcher(config, session, cache=cache, bus=bus)
    recovery = ErrorRecoveryService.with_default_strategies(actions, cache, config, bus=bus)
    manager = StateManager(
        build_state_registry(recovery),
        cache,
        actions,
        config,
        session=session,
        dispatcher=dispatcher,
        bus=bus,
    )
    controller = AgentController(manager, bus, run_id=run_id)

    def _step() -> Optional[CycleOutcome]:
        return safe_cycle_with_logging(controller, bus, run_id=run_id, profile=profile)

    scheduler = CycleScheduler(_step, config, rng=rng)
    controller.set_stop_callback(scheduler.stop)
    dispatcher.attach(source)

    log.info("Controller built (run_id=%s, profile=%s)", run_id, profile)
    return MinerRuntime(
        config=config,
        bus=bus,
        cache=cache,
        actions=actions,
        session=session,
        dispatcher=dispatcher,
        recovery=recovery,
        manager=manager,
        controller=controller,
        scheduler=scheduler,
        run_id=run_id,
        profile=profile,
    )


def run_miner_runtime(
    sensor: Sensor,
    actuator: Actuator,
    source: NotificationSource,
    config: MinerConfig,
    *,
    profile: Optional[str] = None,
    log_path: Optional[Path] = None,
    max_cycles: Optional[int] = None,
) -> Optional[CycleOutcome]:
    """
    Main entrypoint for a host.

    Runtime responsibilities:
    - Build the monitoring stack (EventBus + JsonFileLogger).
    - Build the controller bound to that bus.
    - Run the scheduler until STOP, SHUTDOWN, Ctrl+C or `max_cycles`.
    - Tear everything down and flush the log.
    """
    bus, logger = build_monitoring_stack(log_path=log_path)
    runtime = build_runtime(sensor, actuator, source, config, bus, profile=profile)
    try:
        outcome = runtime.run(max_cycles=max_cycles)
        if outcome is not None and outcome.is_shutdown:
            log.error("Controller shut down: %s", outcome.reason)
        return outcome
    except KeyboardInterrupt:
        log.info("Interrupted; stopping controller")
        return runtime.scheduler.last_outcome
    finally:
        runtime.close()
        # Close the JSONL logger so buffered events are flushed to disk
        logger.close()
