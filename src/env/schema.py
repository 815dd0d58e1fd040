# MinerConfig, BankingFrequency, AntibanIntensity dataclasses
# src/env/schema.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from contracts.types import Point


class ConfigError(ValueError):
    """Raised when a configuration profile is missing or out of range."""


class BankingFrequency(Enum):
    """How often unloaded cargo is taken to the bank."""

    NEVER = "never"
    RARELY = "rarely"
    SOMETIMES = "sometimes"
    ALWAYS = "always"

    @property
    def unloads_between_trips(self) -> Optional[int]:
        """Completed unloads before a bank trip is due; None means never."""
        return {
            BankingFrequency.NEVER: None,
            BankingFrequency.RARELY: 5,
            BankingFrequency.SOMETIMES: 3,
            BankingFrequency.ALWAYS: 1,
        }[self]


class AntibanIntensity(Enum):
    """Scales the random tick delay added between control cycles."""

    OFF = "off"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def factor(self) -> float:
        return {
            AntibanIntensity.OFF: 0.0,
            AntibanIntensity.LOW: 0.5,
            AntibanIntensity.MEDIUM: 1.0,
            AntibanIntensity.HIGH: 1.5,
        }[self]


@dataclass(frozen=True)
class MinerConfig:
    """Resolved, immutable configuration for one controller run.

    The host's menu layer owns the values; the controller reads them once per
    cycle and never writes them.
    """

    # --- user-facing options -------------------------------------------
    mining_areas: Tuple[str, ...] = ("upper", "lower")   # priority order
    anti_crash_enabled: bool = True
    max_agents_per_target: int = 1
    auto_repair_enabled: bool = True
    unload_threshold_percent: int = 90
    banking_frequency: BankingFrequency = BankingFrequency.SOMETIMES
    tick_delay_range: Tuple[int, int] = (1, 3)
    antiban_intensity: AntibanIntensity = AntibanIntensity.MEDIUM
    use_secondary_container: bool = True
    keep_items: FrozenSet[str] = frozenset({"pickaxe", "hammer"})
    drop_low_value_items: bool = False

    # --- tuning --------------------------------------------------------
    low_value_items: FrozenSet[str] = frozenset()
    contention_weight: float = 5.0
    contention_radius: int = 2
    repair_event_threshold: int = 2
    secondary_container_counter: str = "sack"
    required_tool: str = "pickaxe"
    repair_tool: str = "hammer"
    interaction_radius: int = 20
    safe_point: Optional[Point] = None
    bank_when_full: bool = False

    # --- timing --------------------------------------------------------
    cycle_interval_s: float = 1.0
    tick_s: float = 0.6
    snapshot_min_interval_s: float = 0.1
    action_timeout_s: float = 30.0
    idle_backoff_s: float = 3.0
    settle_wait_s: float = 2.0
    max_wait_s: float = 10.0

    # --- recovery ------------------------------------------------------
    max_recovery_attempts: int = 3
    failure_ceiling: int = 5

    @property
    def banking_enabled(self) -> bool:
        return self.banking_frequency is not BankingFrequency.NEVER

    def kept_items(self) -> FrozenSet[str]:
        """Items never deposited: the keep list plus both tools."""
        return self.keep_items | {self.required_tool, self.repair_tool}

    def validate(self) -> None:
        """Raise ConfigError if any option is out of its allowed range."""
        if not self.mining_areas:
            raise ConfigError("mining_areas must list at least one area")
        if not 50 <= self.unload_threshold_percent <= 100:
            raise ConfigError(
                f"unload_threshold_percent must be within 50..100, got {self.unload_threshold_percent}"
            )
        low, high = self.tick_delay_range
        if low < 0 or high < low:
            raise ConfigError(f"tick_delay_range must be 0 <= min <= max, got {self.tick_delay_range}")
        if self.max_agents_per_target < 0:
            raise ConfigError("max_agents_per_target must be >= 0")
        if self.repair_event_threshold < 1:
            raise ConfigError("repair_event_threshold must be >= 1")
        if self.failure_ceiling < 1:
            raise ConfigError("failure_ceiling must be >= 1")
        if self.max_recovery_attempts < 1:
            raise ConfigError("max_recovery_attempts must be >= 1")
        if self.contention_weight < 0:
            raise ConfigError("contention_weight must be >= 0")
        for name in ("cycle_interval_s", "tick_s", "snapshot_min_interval_s", "action_timeout_s"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0")
        if self.max_wait_s < self.cycle_interval_s:
            raise ConfigError("max_wait_s must be >= cycle_interval_s")
