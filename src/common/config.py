# ABOUTME: Declares tunable constants for the mastery tracker and difficulty bandit.
# ABOUTME: Loads overrides from YAML configs so experiments stay reproducible.

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml


@dataclass(frozen=True)
class MasteryConfig:
    """Initial state and clamp bounds for the mastery estimator."""

    initial_mastery: float = 0.1
    initial_learning_rate: float = 0.15
    forgetting_rate: float = 0.05
    initial_confidence: float = 0.3
    mastery_bounds: Tuple[float, float] = (0.01, 0.99)
    learning_rate_bounds: Tuple[float, float] = (0.05, 0.3)
    confidence_bounds: Tuple[float, float] = (0.05, 0.5)
    mastery_threshold: float = 0.8
    reference_time_seconds: float = 30.0
    transfer_ceiling: float = 0.3


@dataclass(frozen=True)
class BanditConfig:
    """Priors, decay, and output range for the difficulty bandit."""

    priors: Mapping[str, Tuple[float, float]] = field(
        default_factory=lambda: {"easy": (2.0, 1.0), "medium": (1.5, 1.5), "hard": (1.0, 2.0)}
    )
    arm_difficulty: Mapping[str, float] = field(
        default_factory=lambda: {"easy": 0.3, "medium": 0.6, "hard": 0.9}
    )
    decay: float = 0.995
    parameter_floor: float = 1.0
    exploration_noise: float = 0.1
    difficulty_range: Tuple[float, float] = (0.1, 1.0)
    # Shifted success counts below this are floored before sampling.
    min_sampling_shape: float = 0.05


@dataclass(frozen=True)
class EngineConfig:
    mastery: MasteryConfig = field(default_factory=MasteryConfig)
    bandit: BanditConfig = field(default_factory=BanditConfig)
    seed: Optional[int] = None


def load_engine_config(path: Path) -> EngineConfig:
    """
    Load an EngineConfig from YAML.

    Expected layout::

        seed: 42
        mastery:
          initial_mastery: 0.1
        bandit:
          decay: 0.995
          priors:
            easy: [2, 1]
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Engine config not found at {path}")
    with open(path) as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Engine config at {path} must be a mapping.")
    return engine_config_from_dict(cfg)


def engine_config_from_dict(cfg: Mapping[str, Any]) -> EngineConfig:
    unknown = set(cfg) - {"mastery", "bandit", "seed"}
    if unknown:
        raise ValueError(f"Unknown config key '{sorted(unknown)[0]}'.")

    mastery = _apply_overrides(MasteryConfig(), cfg.get("mastery") or {}, "mastery")
    bandit = _apply_overrides(BanditConfig(), cfg.get("bandit") or {}, "bandit")
    seed = cfg.get("seed")
    _validate(mastery, bandit)
    return EngineConfig(mastery=mastery, bandit=bandit, seed=None if seed is None else int(seed))


def _validate(mastery: MasteryConfig, bandit: BanditConfig) -> None:
    for name, (low, high) in (
        ("mastery.mastery_bounds", mastery.mastery_bounds),
        ("mastery.learning_rate_bounds", mastery.learning_rate_bounds),
        ("mastery.confidence_bounds", mastery.confidence_bounds),
        ("bandit.difficulty_range", bandit.difficulty_range),
    ):
        if not low < high:
            raise ValueError(f"Config '{name}' needs low < high, got [{low}, {high}].")

    # Posterior pseudo-counts must never drop below one.
    if bandit.parameter_floor < 1.0:
        raise ValueError(f"Config 'bandit.parameter_floor' must be >= 1, got {bandit.parameter_floor}.")
    if not bandit.min_sampling_shape > 0.0:
        raise ValueError(f"Config 'bandit.min_sampling_shape' must be > 0, got {bandit.min_sampling_shape}.")
    if not 0.0 < bandit.decay <= 1.0:
        raise ValueError(f"Config 'bandit.decay' must be in (0, 1], got {bandit.decay}.")
    for arm, (alpha, beta) in bandit.priors.items():
        if alpha < bandit.parameter_floor or beta < bandit.parameter_floor:
            raise ValueError(f"Config 'bandit.priors.{arm}' must be >= parameter_floor, got [{alpha}, {beta}].")


def _apply_overrides(base, overrides: Mapping[str, Any], section: str):
    known = {f.name: getattr(base, f.name) for f in fields(base)}
    updates: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            raise ValueError(f"Unknown config key '{section}.{key}'.")
        updates[key] = _coerce(known[key], value, f"{section}.{key}")
    return replace(base, **updates)


def _coerce(default: Any, value: Any, name: str) -> Any:
    if isinstance(default, tuple):
        if not isinstance(value, (list, tuple)) or len(value) != len(default):
            raise ValueError(f"Config '{name}' expects {len(default)} numbers.")
        return tuple(float(v) for v in value)
    if isinstance(default, Mapping):
        if not isinstance(value, Mapping):
            raise ValueError(f"Config '{name}' expects a mapping.")
        merged = dict(default)
        for key, item in value.items():
            if key not in default:
                raise ValueError(f"Unknown arm '{key}' in '{name}'.")
            merged[key] = _coerce(default[key], item, f"{name}.{key}")
        return merged
    return float(value)
