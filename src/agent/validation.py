# src/agent/validation.py
"""
Transition validation.

The legal transitions are held in a directed graph (one edge per row of the
edge table, annotated with the guard that motivates it). Validation is a pure
function of (from, to, snapshot, config): no side effects, same answer for the
same inputs. StateManager consults it before every transition, and tests call
it directly without building any state objects.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional, Set, Tuple

import networkx as nx

from contracts.types import ContextSnapshot
from env.schema import MinerConfig
from .state import StateId


S = StateId

# from -> {to: guard description}
_EDGE_TABLE: Dict[StateId, Dict[StateId, str]] = {
    S.INITIALIZING: {
        S.IDLE: "preconditions satisfied",
    },
    S.IDLE: {
        S.MINING: "viable target selected",
        S.DEPOSIT: "inventory full with depositable cargo",
        S.UNLOAD_CONTAINER: "secondary container over threshold",
        S.BANKING: "banking condition met",
        S.REPAIR: "damage signal with auto-repair enabled",
    },
    S.MINING: {
        S.DEPOSIT: "holding capacity full with depositable cargo",
        S.IDLE: "no reachable target, repositioning required",
        S.UNLOAD_CONTAINER: "secondary container counter crossed threshold",
        S.BANKING: "container change requested banking",
        S.REPAIR: "repairable fixture appeared",
    },
    S.DEPOSIT: {
        S.MINING: "deposit complete, capacity available",
        S.UNLOAD_CONTAINER: "secondary container over threshold",
        S.REPAIR: "repairable fixture appeared",
    },
    S.UNLOAD_CONTAINER: {
        S.MINING: "secondary container emptied",
        S.BANKING: "banking threshold reached",
        S.REPAIR: "repairable fixture appeared",
    },
    S.BANKING: {
        S.MINING: "resupply / deposit complete",
    },
    S.REPAIR: {
        S.IDLE: "repair complete, return to saved state",
        S.MINING: "repair complete, return to saved state",
        S.DEPOSIT: "repair complete, return to saved state",
        S.UNLOAD_CONTAINER: "repair complete, return to saved state",
        S.BANKING: "repair complete, return to saved state",
    },
    S.ERROR: {
        S.IDLE: "recovery strategy reported success",
    },
}


def _build_graph() -> nx.DiGraph:
    graph = nx.DiGraph()
    graph.add_nodes_from(StateId)
    for src, targets in _EDGE_TABLE.items():
        for dst, guard in targets.items():
            graph.add_edge(src, dst, guard=guard)
    # Any failure raised during execute() routes to ERROR.
    for src in StateId:
        if src is not S.ERROR and not graph.has_edge(src, S.ERROR):
            graph.add_edge(src, S.ERROR, guard="failure raised during execute()")
    return graph


TRANSITION_GRAPH: nx.DiGraph = _build_graph()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def legal_targets(from_state: StateId) -> FrozenSet[StateId]:
    """Return every state reachable from `from_state` in one transition."""
    return frozenset(TRANSITION_GRAPH.successors(from_state))


def edge_pairs() -> Set[Tuple[StateId, StateId]]:
    return set(TRANSITION_GRAPH.edges())


def _context_guard(
    to_state: StateId,
    snapshot: Optional[ContextSnapshot],
    config: Optional[MinerConfig],
) -> Optional[str]:
    """Return a rejection reason, or None when the context allows `to_state`."""
    if config is None:
        return None

    if to_state is S.REPAIR:
        if not config.auto_repair_enabled:
            return "auto-repair disabled"
        if snapshot is not None and not snapshot.has_item(config.repair_tool):
            return f"required tool missing: {config.repair_tool}"

    elif to_state is S.UNLOAD_CONTAINER:
        if not config.use_secondary_container:
            return "secondary container disabled"

    elif to_state is S.BANKING:
        if not config.banking_enabled:
            return "banking disabled"

    return None


def check_transition(
    from_state: StateId,
    to_state: StateId,
    snapshot: Optional[ContextSnapshot] = None,
    config: Optional[MinerConfig] = None,
) -> Tuple[bool, str]:
    """
    Decide whether `from_state -> to_state` is legal.

    Returns (approved, reason). On approval the reason is the edge's guard
    description; on rejection it says why.
    """
    if not TRANSITION_GRAPH.has_edge(from_state, to_state):
        return False, f"no transition {from_state.name} -> {to_state.name}"

    rejection = _context_guard(to_state, snapshot, config)
    if rejection is not None:
        return False, rejection

    return True, TRANSITION_GRAPH.edges[from_state, to_state]["guard"]


def can_transition(
    from_state: StateId,
    to_state: StateId,
    snapshot: Optional[ContextSnapshot] = None,
    config: Optional[MinerConfig] = None,
) -> bool:
    approved, _ = check_transition(from_state, to_state, snapshot, config)
    return approved
