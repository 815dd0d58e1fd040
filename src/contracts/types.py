# core shared types: Point, MiningTarget, Fixture, ContextSnapshot
# src/contracts/types.py

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Tuple


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Point:
    """Tile coordinate in the game world (plane is the floor level)."""
    x: int
    y: int
    plane: int = 0

    def distance_to(self, other: "Point") -> float:
        """
        Chebyshev distance in tiles, matching how the game measures walking
        distance on a grid. Points on different planes are infinitely far.
        """
        if self.plane != other.plane:
            return math.inf
        return float(max(abs(self.x - other.x), abs(self.y - other.y)))

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "plane": self.plane}


# ---------------------------------------------------------------------------
# World objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MiningTarget:
    """A minable object (vein / rock) visible to the sensor."""
    ref: str            # stable identifier used by Actuator.interact
    position: Point
    area: str           # mining area label ("upper", "lower", ...)


@dataclass(frozen=True)
class Fixture:
    """A repairable fixture (e.g. a broken strut) visible to the sensor."""
    ref: str
    position: Point


# ---------------------------------------------------------------------------
# Context snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContextSnapshot:
    """Read-only view of the environment facts used for decision-making.

    Built by the Sensor capability and cached by bot_core.sensing. Every state
    in one control cycle sees the same instance.

    Fields:

      - logged_in:
          False while the host is on a login screen; no cycle logic runs.

      - position / area:
          Player tile and the mining area label it sits in (None when outside
          every known area).

      - busy:
          True while the player is moving, interacting or animating.

      - targets / damaged_fixtures:
          Visible minable targets and repairable fixtures.

      - inventory / free_slots:
          Item id -> count for the main inventory and the number of empty
          slots left.

      - secondary_level / secondary_max:
          Fill level of the secondary container (sack) and its capacity.

      - deposit_point / bank_point:
          Where the deposit hopper and the bank are, if known.

      - damage_signal (derived):
          True while any damaged fixture is visible.
    """
    logged_in: bool = True
    position: Point = Point(0, 0)
    area: Optional[str] = None
    busy: bool = False
    targets: Tuple[MiningTarget, ...] = ()
    damaged_fixtures: Tuple[Fixture, ...] = ()
    inventory: Mapping[str, int] = field(default_factory=dict)
    free_slots: int = 28
    secondary_level: int = 0
    secondary_max: int = 0
    deposit_point: Optional[Point] = None
    bank_point: Optional[Point] = None
    timestamp: float = 0.0

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------

    @property
    def damage_signal(self) -> bool:
        return bool(self.damaged_fixtures)

    @property
    def inventory_full(self) -> bool:
        return self.free_slots <= 0

    def has_item(self, item_id: str) -> bool:
        return self.inventory.get(item_id, 0) > 0

    def depositable_items(self, keep: Iterable[str]) -> dict:
        """Return inventory entries that are not on the keep list."""
        keep_set = set(keep)
        return {
            item: count
            for item, count in self.inventory.items()
            if count > 0 and item not in keep_set
        }

    def has_depositable_cargo(self, keep: Iterable[str]) -> bool:
        return bool(self.depositable_items(keep))

    def secondary_percent(self) -> float:
        """Fill level of the secondary container as a percentage (0 when unknown)."""
        if self.secondary_max <= 0:
            return 0.0
        return 100.0 * self.secondary_level / self.secondary_max

    def find_target(self, ref: str) -> Optional[MiningTarget]:
        for target in self.targets:
            if target.ref == ref:
                return target
        return None
