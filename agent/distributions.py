"""Search-budget distributions used by stochastic replanning."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from world.errors import ModelConfigurationError


@dataclass(frozen=True)
class ShiftedNegativeBinomial:
    """Negative binomial over failures before ``r`` successes, shifted by ``shift``.

    Draws model "how many search expansions to allow"; the shift keeps the
    budget at least ``shift``.
    """

    r: float
    p: float
    shift: int = 0

    def __post_init__(self):
        if self.r <= 0:
            raise ModelConfigurationError("Negative binomial r must be positive.")
        if not 0.0 < float(self.p) <= 1.0:
            raise ModelConfigurationError("Negative binomial p must be in (0, 1].")

    def sample(self, rng: np.random.Generator) -> int:
        return int(self.shift + rng.negative_binomial(self.r, self.p))

    def logpdf(self, value: int) -> float:
        k = int(value) - int(self.shift)
        if k < 0:
            return -math.inf
        if self.p == 1.0:
            return 0.0 if k == 0 else -math.inf
        log_coef = math.lgamma(k + self.r) - math.lgamma(self.r) - math.lgamma(k + 1)
        return log_coef + self.r * math.log(self.p) + k * math.log1p(-self.p)


@dataclass(frozen=True)
class FixedBudget:
    """Point mass on a single search budget."""

    budget: int

    def __post_init__(self):
        if self.budget <= 0:
            raise ModelConfigurationError("Fixed search budget must be positive.")

    def sample(self, rng: np.random.Generator) -> int:
        return int(self.budget)

    def logpdf(self, value: int) -> float:
        return 0.0 if int(value) == self.budget else -math.inf
