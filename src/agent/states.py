# src/agent/states.py
"""
State objects for the controller.

One object per StateId, all sharing the contract:

    on_enter(ctx, from_state)   called once after a transition into the state
    execute(ctx)                called once per cycle, returns a TransitionResult
    on_exit(ctx, to_state)      called once before leaving the state

States never sleep. A state that wants to give the world time to settle
returns a TransitionResult with wait_s and the scheduler enforces it.
Failures are raised as agent.errors exceptions; the StateManager routes them
to ERROR.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from bot_core.actions import ActionExecutor
from contracts.capabilities import Sensor
from contracts.types import ContextSnapshot, Fixture, MiningTarget, Point
from env.schema import MinerConfig
from .errors import NavigationError, ResourceUnavailableError
from .recovery import ErrorRecoveryService, RecoveryOutcomeKind
from .scoring import (
    ScoredTarget,
    banking_due,
    deposit_due,
    rank_idle_candidates,
    secondary_over_threshold,
    select_target,
)
from .state import LoopCounters, MiningPhase, StateId, TransitionResult
from .validation import can_transition


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleContext:
    """Everything a state may use during one cycle."""

    snapshot: ContextSnapshot
    config: MinerConfig
    sensor: Sensor
    actions: ActionExecutor
    counters: LoopCounters


def survey_targets(ctx: CycleContext) -> Optional[ScoredTarget]:
    """Ask the sensor about reachability and crowding, then pick the best target."""
    areas = set(ctx.config.mining_areas)
    nearby: Dict[str, int] = {}
    reachable = set()
    for target in ctx.snapshot.targets:
        if target.area not in areas:
            continue
        if not ctx.sensor.reachable(target.position):
            continue
        reachable.add(target.ref)
        nearby[target.ref] = ctx.sensor.nearby_player_count(
            target.position, ctx.config.contention_radius
        )
    return select_target(ctx.snapshot, ctx.config, nearby, reachable)


def nearest_fixture(position: Point, fixtures: Iterable[Fixture]) -> Optional[Fixture]:
    ordered = sorted(fixtures, key=lambda f: (position.distance_to(f.position), f.ref))
    return ordered[0] if ordered else None


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class State:
    state_id: StateId

    def on_enter(self, ctx: CycleContext, from_state: Optional[StateId]) -> None:
        pass

    def on_exit(self, ctx: CycleContext, to_state: StateId) -> None:
        pass

    def execute(self, ctx: CycleContext) -> TransitionResult:
        raise NotImplementedError

    def describe(self) -> dict:
        """State-local details for DUMP_STATE / telemetry."""
        return {"state": self.state_id.name}

    # Helpers ------------------------------------------------------------

    @staticmethod
    def _busy(ctx: CycleContext) -> Optional[TransitionResult]:
        if ctx.snapshot.busy:
            return TransitionResult.remain("player busy")
        return None

    @staticmethod
    def _approach_and_interact(ctx: CycleContext, ref: str, point: Point, action: str) -> None:
        """Walk to `point` first when it is outside the interaction radius."""
        if ctx.snapshot.position.distance_to(point) > ctx.config.interaction_radius:
            log.debug("Walking to %s before %s on %s", point, action, ref)
            ctx.actions.move_to(point)
        ctx.actions.interact(ref, action)


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


class InitializingState(State):
    state_id = StateId.INITIALIZING

    def execute(self, ctx: CycleContext) -> TransitionResult:
        ctx.config.validate()
        snapshot = ctx.snapshot
        if not snapshot.has_item(ctx.config.required_tool):
            raise ResourceUnavailableError(
                code="missing_tool",
                details={"item": ctx.config.required_tool},
                item=ctx.config.required_tool,
            )
        if snapshot.area not in ctx.config.mining_areas:
            raise NavigationError(
                code="outside_mining_area",
                details={"area": snapshot.area, "mining_areas": list(ctx.config.mining_areas)},
                point=ctx.config.safe_point,
            )
        return TransitionResult.to(StateId.IDLE, "Preconditions satisfied")


class IdleState(State):
    """Pick the highest-precedence candidate that validation accepts."""

    state_id = StateId.IDLE

    def execute(self, ctx: CycleContext) -> TransitionResult:
        best = survey_targets(ctx)
        candidates = rank_idle_candidates(ctx.snapshot, ctx.config, ctx.counters, best)
        for target, reason in candidates:
            if can_transition(StateId.IDLE, target, ctx.snapshot, ctx.config):
                return TransitionResult.to(target, reason)
            log.debug("IDLE candidate %s not allowed in this context", target.name)
        if ctx.snapshot.inventory_full:
            # Nothing depositable and no room to mine: needs the operator.
            log.warning("Inventory full of kept items %s", sorted(ctx.config.kept_items()))
            return TransitionResult.remain(
                "Inventory full of kept items", wait_s=ctx.config.idle_backoff_s
            )
        return TransitionResult.remain("no target", wait_s=ctx.config.idle_backoff_s)


class MiningState(State):
    state_id = StateId.MINING

    def __init__(self) -> None:
        self.phase = MiningPhase.SEEKING_TARGET
        self.target: Optional[MiningTarget] = None

    def on_enter(self, ctx: CycleContext, from_state: Optional[StateId]) -> None:
        self.phase = MiningPhase.SEEKING_TARGET
        self.target = None

    def on_exit(self, ctx: CycleContext, to_state: StateId) -> None:
        self.target = None

    def describe(self) -> dict:
        return {
            "state": self.state_id.name,
            "phase": self.phase.name,
            "target": self.target.ref if self.target else None,
        }

    def execute(self, ctx: CycleContext) -> TransitionResult:
        snapshot, config = ctx.snapshot, ctx.config

        if snapshot.inventory_full and config.drop_low_value_items:
            dropped = self._drop_low_value(ctx)
            if dropped:
                return TransitionResult.remain(f"Dropped {dropped} low-value item(s)")
        if deposit_due(snapshot, config):
            return TransitionResult.to(StateId.DEPOSIT, "Inventory full")
        if snapshot.inventory_full:
            return TransitionResult.to(StateId.IDLE, "Inventory full of kept items")
        if secondary_over_threshold(snapshot, config):
            return TransitionResult.to(
                StateId.UNLOAD_CONTAINER,
                f"Secondary container at {snapshot.secondary_percent():.0f}%",
            )

        if self.phase is MiningPhase.ACTIVE:
            return self._active(ctx)
        if self.phase is MiningPhase.TARGET_DEPLETED:
            self.phase = MiningPhase.SEEKING_TARGET
            self.target = None
        return self._seek(ctx)

    def _seek(self, ctx: CycleContext) -> TransitionResult:
        busy = self._busy(ctx)
        if busy is not None:
            return busy
        best = survey_targets(ctx)
        if best is None:
            return TransitionResult.to(StateId.IDLE, "No reachable target")
        self.target = best.target
        self._approach_and_interact(ctx, best.target.ref, best.target.position, "Mine")
        self.phase = MiningPhase.ACTIVE
        return TransitionResult.remain(f"Mining {best.target.ref}", wait_s=ctx.config.settle_wait_s)

    def _active(self, ctx: CycleContext) -> TransitionResult:
        assert self.target is not None
        if ctx.snapshot.find_target(self.target.ref) is None:
            log.info("Target %s depleted", self.target.ref)
            self.phase = MiningPhase.TARGET_DEPLETED
            return TransitionResult.remain(f"Target {self.target.ref} depleted")
        if ctx.snapshot.busy:
            return TransitionResult.remain(f"Mining {self.target.ref}")
        # Target still there but the player stopped: swing again.
        self._approach_and_interact(ctx, self.target.ref, self.target.position, "Mine")
        return TransitionResult.remain(f"Mining {self.target.ref}", wait_s=ctx.config.settle_wait_s)

    @staticmethod
    def _drop_low_value(ctx: CycleContext) -> int:
        """Drop every low-value item held; returns how many kinds were dropped."""
        kept = ctx.config.kept_items()
        droppable = sorted(
            item for item in ctx.config.low_value_items
            if ctx.snapshot.has_item(item) and item not in kept
        )
        for item in droppable:
            ctx.actions.interact(item, "Drop")
        return len(droppable)


class DepositState(State):
    state_id = StateId.DEPOSIT

    def execute(self, ctx: CycleContext) -> TransitionResult:
        snapshot, config = ctx.snapshot, ctx.config

        if not snapshot.has_depositable_cargo(config.kept_items()):
            if secondary_over_threshold(snapshot, config):
                return TransitionResult.to(
                    StateId.UNLOAD_CONTAINER,
                    f"Secondary container at {snapshot.secondary_percent():.0f}%",
                )
            return TransitionResult.to(StateId.MINING, "Deposit complete")

        busy = self._busy(ctx)
        if busy is not None:
            return busy
        if snapshot.deposit_point is None:
            raise NavigationError(code="deposit_point_unknown", details={"state": "DEPOSIT"})
        self._approach_and_interact(ctx, "deposit", snapshot.deposit_point, "Deposit")
        ctx.counters.deposits += 1
        return TransitionResult.remain("Depositing", wait_s=config.settle_wait_s)


class UnloadContainerState(State):
    state_id = StateId.UNLOAD_CONTAINER

    def __init__(self) -> None:
        self._emptied = False
        self._counted = False

    def on_enter(self, ctx: CycleContext, from_state: Optional[StateId]) -> None:
        self._emptied = False
        self._counted = False

    def execute(self, ctx: CycleContext) -> TransitionResult:
        snapshot, config = ctx.snapshot, ctx.config

        if snapshot.secondary_level <= 0:
            # Only an "Empty" sent during this visit counts as an unload.
            if not self._emptied:
                return TransitionResult.to(StateId.MINING, "Secondary container already empty")
            if not self._counted:
                ctx.counters.unloads += 1
                ctx.counters.unloads_since_bank += 1
                self._counted = True
            if banking_due(config, ctx.counters):
                return TransitionResult.to(StateId.BANKING, "Banking threshold reached")
            return TransitionResult.to(StateId.MINING, "Secondary container emptied")

        busy = self._busy(ctx)
        if busy is not None:
            return busy

        if snapshot.inventory_full:
            if can_transition(StateId.UNLOAD_CONTAINER, StateId.BANKING, snapshot, config):
                return TransitionResult.to(StateId.BANKING, "Inventory full while unloading")
            raise ResourceUnavailableError(
                code="inventory_full",
                details={"secondary_level": snapshot.secondary_level},
            )

        ctx.actions.interact(config.secondary_container_counter, "Empty")
        self._emptied = True
        return TransitionResult.remain(f"Emptying {config.secondary_container_counter}")


class BankingState(State):
    state_id = StateId.BANKING

    def __init__(self) -> None:
        self._counted = False

    def on_enter(self, ctx: CycleContext, from_state: Optional[StateId]) -> None:
        self._counted = False

    def execute(self, ctx: CycleContext) -> TransitionResult:
        snapshot, config = ctx.snapshot, ctx.config

        if not snapshot.has_depositable_cargo(config.kept_items()):
            if not self._counted:
                ctx.counters.bank_trips += 1
                ctx.counters.unloads_since_bank = 0
                self._counted = True
            return TransitionResult.to(StateId.MINING, "Banking complete")

        busy = self._busy(ctx)
        if busy is not None:
            return busy
        if snapshot.bank_point is None:
            raise NavigationError(code="bank_point_unknown", details={"state": "BANKING"})
        self._approach_and_interact(ctx, "bank", snapshot.bank_point, "Deposit-All")
        return TransitionResult.remain("Banking", wait_s=config.settle_wait_s)


class RepairState(State):
    """Fix every visible damaged fixture, then go back where we came from."""

    state_id = StateId.REPAIR

    _RETURNABLE = frozenset({
        StateId.IDLE, StateId.MINING, StateId.DEPOSIT,
        StateId.UNLOAD_CONTAINER, StateId.BANKING,
    })

    def __init__(self) -> None:
        self.return_to = StateId.IDLE

    def on_enter(self, ctx: CycleContext, from_state: Optional[StateId]) -> None:
        self.return_to = from_state if from_state in self._RETURNABLE else StateId.IDLE

    def describe(self) -> dict:
        return {"state": self.state_id.name, "return_to": self.return_to.name}

    def execute(self, ctx: CycleContext) -> TransitionResult:
        snapshot, config = ctx.snapshot, ctx.config

        fixture = nearest_fixture(snapshot.position, snapshot.damaged_fixtures)
        if fixture is None:
            return TransitionResult.to(self.return_to, "Repair complete")

        busy = self._busy(ctx)
        if busy is not None:
            return busy
        if not snapshot.has_item(config.repair_tool):
            raise ResourceUnavailableError(
                code="missing_tool", details={"item": config.repair_tool}, item=config.repair_tool
            )
        self._approach_and_interact(ctx, fixture.ref, fixture.position, "Repair")
        return TransitionResult.remain(f"Repairing {fixture.ref}", wait_s=config.settle_wait_s)


class ErrorState(State):
    """Hand the stored failure to the recovery service once per cycle."""

    state_id = StateId.ERROR

    def __init__(self, recovery: ErrorRecoveryService) -> None:
        self.recovery = recovery
        self.failure: Optional[BaseException] = None
        self.failed_in: StateId = StateId.INITIALIZING

    def set_failure(self, failure: BaseException, failed_in: StateId) -> None:
        self.failure = failure
        self.failed_in = failed_in

    def on_exit(self, ctx: CycleContext, to_state: StateId) -> None:
        self.failure = None

    def describe(self) -> dict:
        return {
            "state": self.state_id.name,
            "failed_in": self.failed_in.name,
            "failure": repr(self.failure) if self.failure is not None else None,
            "consecutive_failures": self.recovery.consecutive_failures,
        }

    def execute(self, ctx: CycleContext) -> TransitionResult:
        if self.failure is None:
            return TransitionResult.to(StateId.IDLE, "No failure to recover from")

        outcome = self.recovery.handle(self.failure, self.failed_in)
        if outcome.kind is RecoveryOutcomeKind.SUCCESS:
            return TransitionResult.to(StateId.IDLE, f"Recovered: {outcome.reason}")
        if outcome.kind is RecoveryOutcomeKind.SHUTDOWN:
            return TransitionResult.shutdown(outcome.reason)
        return TransitionResult.remain(
            f"Recovery failed: {outcome.reason}", wait_s=ctx.config.idle_backoff_s
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class StateRegistry:
    def __init__(self, states: Iterable[State]) -> None:
        self._states: Dict[StateId, State] = {}
        for state in states:
            if state.state_id in self._states:
                raise ValueError(f"Duplicate state object for {state.state_id.name}")
            self._states[state.state_id] = state
        missing = set(StateId) - set(self._states)
        if missing:
            raise ValueError(f"No state object for: {sorted(s.name for s in missing)}")

    def get(self, state_id: StateId) -> State:
        return self._states[state_id]

    @property
    def error_state(self) -> ErrorState:
        state = self._states[StateId.ERROR]
        assert isinstance(state, ErrorState)
        return state


def build_state_registry(recovery: ErrorRecoveryService) -> StateRegistry:
    return StateRegistry([
        InitializingState(),
        IdleState(),
        MiningState(),
        DepositState(),
        UnloadContainerState(),
        BankingState(),
        RepairState(),
        ErrorState(recovery),
    ])
