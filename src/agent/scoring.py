# src/agent/scoring.py
"""
Pure decision helpers for the controller.

Everything here takes the ContextSnapshot and MinerConfig (plus any sensor
readings already taken) as explicit arguments and returns plain values, so the
IDLE ranking and the target choice can be tested without a state machine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, List, Mapping, Optional, Tuple

from contracts.types import ContextSnapshot, MiningTarget
from env.schema import MinerConfig
from .state import LoopCounters, StateId


@dataclass(frozen=True)
class ScoredTarget:
    target: MiningTarget
    distance: float
    nearby_agents: int
    score: float


def target_score(distance: float, nearby_agents: int, contention_weight: float) -> float:
    """Lower is better: walking distance plus a penalty per nearby agent."""
    return distance + nearby_agents * contention_weight


def score_targets(
    snapshot: ContextSnapshot,
    config: MinerConfig,
    nearby_counts: Mapping[str, int],
    reachable_refs: AbstractSet[str],
) -> List[ScoredTarget]:
    """
    Score every viable target, best first.

    A target is viable when it is reachable, lies in one of the configured
    mining areas and, with anti-crash on, is not crowded beyond
    max_agents_per_target. Areas earlier in config.mining_areas win outright;
    inside an area the lowest score wins and ties go to the lower ref.
    """
    area_rank = {area: idx for idx, area in enumerate(config.mining_areas)}
    scored: List[Tuple[int, ScoredTarget]] = []

    for target in snapshot.targets:
        if target.ref not in reachable_refs:
            continue
        rank = area_rank.get(target.area)
        if rank is None:
            continue
        nearby = nearby_counts.get(target.ref, 0)
        if config.anti_crash_enabled and nearby > config.max_agents_per_target:
            continue
        distance = snapshot.position.distance_to(target.position)
        entry = ScoredTarget(
            target=target,
            distance=distance,
            nearby_agents=nearby,
            score=target_score(distance, nearby, config.contention_weight),
        )
        scored.append((rank, entry))

    scored.sort(key=lambda item: (item[0], item[1].score, item[1].target.ref))
    return [entry for _, entry in scored]


def select_target(
    snapshot: ContextSnapshot,
    config: MinerConfig,
    nearby_counts: Mapping[str, int],
    reachable_refs: AbstractSet[str],
) -> Optional[ScoredTarget]:
    ranked = score_targets(snapshot, config, nearby_counts, reachable_refs)
    return ranked[0] if ranked else None


# ---------------------------------------------------------------------------
# Threshold predicates
# ---------------------------------------------------------------------------


def needs_repair(snapshot: ContextSnapshot, config: MinerConfig) -> bool:
    return config.auto_repair_enabled and snapshot.damage_signal


def counter_crosses_threshold(value: int, maximum: int, threshold_percent: int) -> bool:
    """True when value is at least threshold_percent of maximum (integer math)."""
    if maximum <= 0:
        return False
    return value * 100 >= maximum * threshold_percent


def secondary_over_threshold(snapshot: ContextSnapshot, config: MinerConfig) -> bool:
    if not config.use_secondary_container:
        return False
    return counter_crosses_threshold(
        snapshot.secondary_level, snapshot.secondary_max, config.unload_threshold_percent
    )


def banking_due(config: MinerConfig, counters: LoopCounters) -> bool:
    every = config.banking_frequency.unloads_between_trips
    if every is None:
        return False
    return counters.unloads_since_bank >= every


def deposit_due(snapshot: ContextSnapshot, config: MinerConfig) -> bool:
    return snapshot.inventory_full and snapshot.has_depositable_cargo(config.kept_items())


# ---------------------------------------------------------------------------
# IDLE ranking
# ---------------------------------------------------------------------------


def rank_idle_candidates(
    snapshot: ContextSnapshot,
    config: MinerConfig,
    counters: LoopCounters,
    best_target: Optional[ScoredTarget],
) -> List[Tuple[StateId, str]]:
    """
    Return (state, reason) candidates in fixed precedence:

        REPAIR > UNLOAD_CONTAINER > BANKING > DEPOSIT > MINING

    MINING is only a candidate when a viable target exists and the
    inventory has room. An empty list means the caller should remain in IDLE.
    """
    candidates: List[Tuple[StateId, str]] = []
    if needs_repair(snapshot, config):
        candidates.append((StateId.REPAIR, "Damage detected"))
    if secondary_over_threshold(snapshot, config):
        candidates.append(
            (StateId.UNLOAD_CONTAINER, f"Secondary container at {snapshot.secondary_percent():.0f}%")
        )
    if banking_due(config, counters):
        candidates.append((StateId.BANKING, "Banking due"))
    if deposit_due(snapshot, config):
        candidates.append((StateId.DEPOSIT, "Inventory full"))
    if best_target is not None and not snapshot.inventory_full:
        candidates.append((StateId.MINING, f"Target {best_target.target.ref} selected"))
    return candidates
