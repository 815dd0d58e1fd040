from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from contracts.types import Point
from .schema import AntibanIntensity, BankingFrequency, ConfigError, MinerConfig


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_ROOT = PROJECT_ROOT / "config"
DEFAULT_CONFIG_PATH = CONFIG_ROOT / "miner.yaml"


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML config file and insist on a mapping at the top."""
    if not path.exists():
        raise FileNotFoundError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at top of {path}, got {type(data)}")
    return data


def _select_profile(cfg: Dict[str, Any], profile: Optional[str]) -> Tuple[str, Dict[str, Any]]:
    """Return (active_profile_name, active_profile_mapping)."""
    profile_name = profile or cfg.get("profile")
    if not profile_name:
        raise ConfigError("miner.yaml must define a 'profile' key.")
    profiles = cfg.get("profiles")
    if not isinstance(profiles, dict):
        raise ConfigError("miner.yaml must define a 'profiles' mapping.")
    if profile_name not in profiles:
        raise KeyError(f"Profile '{profile_name}' not found in miner.yaml profiles.")
    return profile_name, profiles[profile_name] or {}


def _enum(enum_cls, raw: Any, key: str):
    try:
        return enum_cls(str(raw).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"{key} must be one of: {allowed}; got {raw!r}") from None


def _point(raw: Any, key: str) -> Optional[Point]:
    if raw is None:
        return None
    if not isinstance(raw, Mapping) or "x" not in raw or "y" not in raw:
        raise ConfigError(f"{key} must be a mapping with x, y (and optional plane)")
    return Point(int(raw["x"]), int(raw["y"]), int(raw.get("plane", 0)))


def config_from_mapping(raw: Mapping[str, Any]) -> MinerConfig:
    """
    Build a MinerConfig from one profile mapping.

    Unknown keys are rejected so typos do not silently fall back to defaults.
    Missing keys take the MinerConfig default.
    """
    known = set(MinerConfig.__dataclass_fields__)
    unknown = set(raw) - known
    if unknown:
        raise ConfigError(f"Unknown config keys: {sorted(unknown)}")

    kwargs: Dict[str, Any] = dict(raw)

    if "mining_areas" in kwargs:
        kwargs["mining_areas"] = tuple(str(a) for a in kwargs["mining_areas"] or ())
    if "tick_delay_range" in kwargs:
        rng = kwargs["tick_delay_range"]
        if not isinstance(rng, (list, tuple)) or len(rng) != 2:
            raise ConfigError("tick_delay_range must be a [min, max] pair")
        kwargs["tick_delay_range"] = (int(rng[0]), int(rng[1]))
    for key in ("keep_items", "low_value_items"):
        if key in kwargs:
            kwargs[key] = frozenset(str(i) for i in kwargs[key] or ())
    if "banking_frequency" in kwargs:
        kwargs["banking_frequency"] = _enum(BankingFrequency, kwargs["banking_frequency"], "banking_frequency")
    if "antiban_intensity" in kwargs:
        raw_intensity = kwargs["antiban_intensity"]
        if raw_intensity is False:
            # YAML 1.1 reads a bare `off` as False.
            raw_intensity = "off"
        kwargs["antiban_intensity"] = _enum(AntibanIntensity, raw_intensity, "antiban_intensity")
    if "safe_point" in kwargs:
        kwargs["safe_point"] = _point(kwargs["safe_point"], "safe_point")

    config = MinerConfig(**kwargs)
    config.validate()
    return config


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: Optional[Path] = None, profile: Optional[str] = None) -> MinerConfig:
    """Main entry point: returns the validated MinerConfig for the active profile."""
    cfg = _load_yaml(path or DEFAULT_CONFIG_PATH)
    _, active = _select_profile(cfg, profile)
    return config_from_mapping(active)


def active_profile_name(path: Optional[Path] = None) -> str:
    cfg = _load_yaml(path or DEFAULT_CONFIG_PATH)
    name, _ = _select_profile(cfg, None)
    return name
