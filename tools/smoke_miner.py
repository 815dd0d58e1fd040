#!/usr/bin/env python3
"""
tools/smoke_miner.py

Minimal harness to sanity-check the controller wiring.

Uses the in-memory fakes (no game client):
    - FakeSensor holds a tiny mine with a few rocks, a deposit hopper and
      a bank
    - FakeActuator hooks mutate that world ("Mine" removes the rock and
      adds ore, "Deposit" empties the inventory, ...)
    - FakeNotificationSource is fed a sack counter event half way through

Runs the full runtime (monitoring bus, JSONL log, scheduler) for a number of
cycles and prints the transition log and the final debug state.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure src/ is on sys.path when running as a script
# ---------------------------------------------------------------------------

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# ---------------------------------------------------------------------------
# Imports from the project
# ---------------------------------------------------------------------------

from agent.logging_config import configure_logging  # type: ignore[import]
from bot_core.testing.fakes import (  # type: ignore[import]
    FakeActuator,
    FakeNotificationSource,
    FakeSensor,
)
from contracts.notifications import CounterChanged  # type: ignore[import]
from contracts.types import ContextSnapshot, MiningTarget, Point  # type: ignore[import]
from env.schema import AntibanIntensity  # type: ignore[import]
from monitoring.tools import render_summary, load_monitoring_events, summarize_events  # type: ignore[import]
from runtime.agent_runtime_main import (  # type: ignore[import]
    build_monitoring_stack,
    build_runtime,
    load_runtime_config,
)


# ---------------------------------------------------------------------------
# Demo world
# ---------------------------------------------------------------------------


def _initial_context() -> ContextSnapshot:
    rocks = tuple(
        MiningTarget(f"vein-{i}", Point(3750 + i, 5675), "upper") for i in range(6)
    )
    return ContextSnapshot(
        position=Point(3749, 5674),
        area="upper",
        targets=rocks,
        inventory={"pickaxe": 1, "hammer": 1},
        free_slots=3,
        secondary_max=10,
        deposit_point=Point(3748, 5660),
        bank_point=Point(3758, 5652),
    )


def _wire_world(sensor: FakeSensor, actuator: FakeActuator) -> None:
    def on_move(point: Point) -> None:
        sensor.update(position=point)

    def on_interact(ref: str, action: str) -> None:
        ctx = sensor.context
        if action == "Mine":
            targets = tuple(t for t in ctx.targets if t.ref != ref)
            inventory = dict(ctx.inventory)
            inventory["ore"] = inventory.get("ore", 0) + 1
            sensor.update(
                targets=targets,
                inventory=inventory,
                free_slots=max(ctx.free_slots - 1, 0),
                secondary_level=min(ctx.secondary_level + 2, ctx.secondary_max),
            )
        elif action in ("Deposit", "Deposit-All"):
            ore = ctx.inventory.get("ore", 0)
            inventory = {k: v for k, v in ctx.inventory.items() if k != "ore"}
            sensor.update(inventory=inventory, free_slots=ctx.free_slots + ore)
        elif action == "Empty":
            sensor.update(secondary_level=0)

    actuator.on_move = on_move
    actuator.on_interact = on_interact


def _print_header(title: str) -> None:
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)


def run(cycles: int, profile: str, log_path: Path) -> None:
    bus, logger = build_monitoring_stack(log_path=log_path)
    config = dataclasses.replace(
        load_runtime_config(bus, profile=profile),
        cycle_interval_s=0.15,
        snapshot_min_interval_s=0.05,
        settle_wait_s=0.2,
        idle_backoff_s=0.2,
        max_wait_s=0.5,
        antiban_intensity=AntibanIntensity.OFF,
    )

    sensor = FakeSensor(_initial_context())
    actuator = FakeActuator()
    source = FakeNotificationSource()
    _wire_world(sensor, actuator)

    runtime = build_runtime(sensor, actuator, source, config, bus, profile=profile)

    _print_header(f"Running {cycles} cycles with profile {profile!r}")
    try:
        runtime.run(max_cycles=cycles // 2)
        delivered = source.emit(CounterChanged(config.secondary_container_counter, 9, 10))
        print(f"Sack counter event delivered to {delivered} handler(s)")
        runtime.run(max_cycles=cycles - cycles // 2)
    finally:
        runtime.close()
        logger.close()

    _print_header("Transitions")
    for record in runtime.manager.session_statistics().transitions:
        print(f"  {record.from_state.name:>16} -> {record.to_state.name:<16} {record.reason}")

    _print_header("Debug state")
    print(json.dumps(runtime.manager.debug_state(), indent=2))

    _print_header(f"Monitoring log summary ({log_path})")
    render_summary(summarize_events(load_monitoring_events(log_path)))


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the miner controller against fakes.")
    parser.add_argument("--cycles", type=int, default=40)
    parser.add_argument("--profile", default="default")
    parser.add_argument(
        "--log-path",
        type=Path,
        default=ROOT / "logs" / "monitoring" / "smoke_events.log",
    )
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    run(args.cycles, args.profile, args.log_path)


if __name__ == "__main__":
    main()
