"""Observation noise models.

Each observable feature of the environment state gets its own noise model:
continuous features are observed with additive Gaussian noise, boolean
features are flipped with a fixed probability. The same feature set is used
to sample synthetic observations and to score real ones.
"""

from __future__ import annotations

import fnmatch
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Sequence, Tuple

import numpy as np

from world.errors import ModelConfigurationError

LOG_SQRT_2PI = 0.5 * math.log(2.0 * math.pi)


@dataclass(frozen=True)
class GaussianNoise:
    """Additive Gaussian noise with standard deviation ``std``."""

    std: float

    def __post_init__(self):
        if not self.std > 0.0:
            raise ModelConfigurationError("Gaussian noise std must be positive.")

    def sample(self, rng: np.random.Generator, value: Any) -> float:
        return float(value) + self.std * float(rng.standard_normal())

    def logpdf(self, observed: Any, value: Any) -> float:
        z = (float(observed) - float(value)) / self.std
        return -0.5 * z * z - math.log(self.std) - LOG_SQRT_2PI


@dataclass(frozen=True)
class BitFlipNoise:
    """Boolean corruption: the true value is flipped with probability ``flip_prob``."""

    flip_prob: float

    def __post_init__(self):
        if not 0.0 <= self.flip_prob <= 1.0:
            raise ModelConfigurationError("Flip probability must be in [0, 1].")

    def sample(self, rng: np.random.Generator, value: Any) -> bool:
        flip = self.flip_prob > 0.0 and rng.random() < self.flip_prob
        return (not bool(value)) if flip else bool(value)

    def logpdf(self, observed: Any, value: Any) -> float:
        p = self.flip_prob if bool(observed) != bool(value) else 1.0 - self.flip_prob
        return math.log(p) if p > 0.0 else -math.inf


_KIND_ALIASES = {
    "normal": GaussianNoise,
    "gaussian": GaussianNoise,
    "bitflip": BitFlipNoise,
    "flip": BitFlipNoise,
}


def make_noise(kind: str, param: float):
    """Build a noise model from its kind name and single parameter."""
    try:
        cls = _KIND_ALIASES[kind.lower()]
    except KeyError as exc:
        raise ModelConfigurationError(f"Unknown observation noise kind {kind!r}.") from exc
    return cls(float(param))


@dataclass(frozen=True)
class ObsConfig:
    """Observed features and their noise models, in a fixed order."""

    features: Tuple[Tuple[str, Any], ...] = ()

    def __post_init__(self):
        names = [name for name, _ in self.features]
        if len(set(names)) != len(names):
            raise ModelConfigurationError("Observed features must be unique.")

    @classmethod
    def from_params(cls, *entries: Sequence[Any]) -> "ObsConfig":
        """Build from ``(feature, kind, param)`` or ``(feature, flip_prob)`` tuples."""
        return cls(features=tuple(_parse_entry(entry) for entry in entries))

    @classmethod
    def grounded(cls, entries: Iterable[Sequence[Any]], state: Any) -> "ObsConfig":
        """Expand glob patterns such as ``"has:*"`` against the features of ``state``."""
        available = list(state)
        features = []
        for entry in entries:
            pattern, noise = _parse_entry(entry)
            matches = [f for f in available if fnmatch.fnmatchcase(f, pattern)]
            if not matches:
                raise ModelConfigurationError(f"Feature pattern {pattern!r} matches nothing in the state.")
            features.extend((f, noise) for f in matches)
        return cls(features=tuple(features))

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.features)

    def noise_for(self, feature: str):
        for name, noise in self.features:
            if name == feature:
                return noise
        raise ModelConfigurationError(f"Feature {feature!r} is not observed by this model.")

    def validate(self, env_state: Any) -> None:
        """Fail fast when an observed feature is missing from the environment state."""
        for name, _ in self.features:
            if name not in env_state:
                raise ModelConfigurationError(f"Observed feature {name!r} is not part of the environment state.")

    def sample(self, rng: np.random.Generator, env_state: Any) -> Dict[str, Any]:
        return {name: noise.sample(rng, env_state[name]) for name, noise in self.features}

    def logpdf(self, observed: Mapping[str, Any], env_state: Any) -> float:
        """Log-likelihood of the supplied observed values given the true state."""
        total = 0.0
        for name, value in observed.items():
            total += self.noise_for(name).logpdf(value, env_state[name])
        return total


def _parse_entry(entry: Sequence[Any]) -> Tuple[str, Any]:
    if len(entry) == 3:
        feature, kind, param = entry
        return str(feature), make_noise(str(kind), param)
    if len(entry) == 2:
        feature, param = entry
        if isinstance(param, (GaussianNoise, BitFlipNoise)):
            return str(feature), param
        return str(feature), BitFlipNoise(float(param))
    raise ModelConfigurationError(f"Malformed observation parameter entry {entry!r}.")
