"""Run-settings loader for goal-inference experiments."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from inference.sips import REJUV_CONDS, RESAMPLE_CONDS

DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parent / "configs" / "dkg_default.json"
DEFAULT_BUDGET = {"r": 2, "p": 0.05, "shift": 1}
DEFAULT_OBS_NOISE = {"position_std": 1.0, "flip_prob": 0.05}


@dataclass(frozen=True)
class InferenceSettings:
    """Particle filter and agent-model settings for one experiment."""

    name: str = "doors-keys-gems"
    n_particles: int = 120
    seed: int = 0
    batch_size: int = 1
    resample_cond: str = "ess"
    rejuv_cond: str = "periodic"
    period: int = 2
    rejuv_window: int = 2
    prob_replan: float = 0.1
    act_epsilon: float = 0.05
    budget: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_BUDGET))
    search_noise: float = 0.1
    obs_noise: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_OBS_NOISE))


def validate_settings(data: Dict[str, Any]) -> Dict[str, Any]:
    """Check types and ranges of a raw settings mapping."""
    required = {"n_particles", "seed"}
    missing = required.difference(data.keys())
    if missing:
        raise ValueError(f"Missing required settings fields: {sorted(missing)}")
    unknown = set(data.keys()).difference(InferenceSettings.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown settings fields: {sorted(unknown)}")

    if int(data["n_particles"]) <= 0:
        raise ValueError("n_particles must be positive")
    if int(data.get("batch_size", 1)) <= 0:
        raise ValueError("batch_size must be positive")
    if int(data.get("period", 1)) <= 0:
        raise ValueError("period must be positive")
    if data.get("resample_cond", "ess") not in RESAMPLE_CONDS:
        raise ValueError(f"resample_cond must be one of {RESAMPLE_CONDS}")
    if data.get("rejuv_cond", "none") not in REJUV_CONDS:
        raise ValueError(f"rejuv_cond must be one of {REJUV_CONDS}")
    for key in ("prob_replan", "act_epsilon"):
        if not 0.0 <= float(data.get(key, 0.0)) <= 1.0:
            raise ValueError(f"{key} must be in [0, 1]")

    data = dict(data)
    budget = data["budget"] = _merge_defaults("budget", data.get("budget"), DEFAULT_BUDGET)
    if float(budget["r"]) <= 0.0 or not 0.0 < float(budget["p"]) <= 1.0 or int(budget["shift"]) < 0:
        raise ValueError("budget needs r > 0, p in (0, 1] and shift >= 0")

    obs_noise = data["obs_noise"] = _merge_defaults("obs_noise", data.get("obs_noise"), DEFAULT_OBS_NOISE)
    if float(obs_noise["position_std"]) <= 0.0:
        raise ValueError("obs_noise.position_std must be positive")
    if not 0.0 <= float(obs_noise["flip_prob"]) <= 1.0:
        raise ValueError("obs_noise.flip_prob must be in [0, 1]")
    return data


def _merge_defaults(name: str, value: Any, defaults: Dict[str, float]) -> Dict[str, float]:
    """Fill missing sub-keys of a nested settings block from ``defaults``."""
    if value is None:
        return dict(defaults)
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be an object")
    unknown = set(value).difference(defaults)
    if unknown:
        raise ValueError(f"Unknown {name} fields: {sorted(unknown)}")
    return {**defaults, **value}


def load_settings(path: str | Path = DEFAULT_SETTINGS_PATH) -> InferenceSettings:
    """Load and validate settings from JSON."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return InferenceSettings(**validate_settings(data))
