"""Weighted particle population."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable, List, Sequence, Tuple

import numpy as np

from inference.weights import (
    goal_marginals,
    log_effective_sample_size,
    log_sum_exp,
    normalized_weights,
)
from world.trace import Trace


@dataclass(frozen=True)
class Particle:
    """One hypothesis: its trace, unnormalized log weight and ancestor index."""

    trace: Trace
    log_weight: float
    ancestor: int


@dataclass(frozen=True)
class PopulationSnapshot:
    """Read-only view of the population handed to callbacks."""

    t: int
    traces: Tuple[Trace, ...]
    log_weights: np.ndarray
    weights: np.ndarray
    ancestors: np.ndarray
    ess: float
    log_ml_est: float
    resampled: bool = False
    rejuvenated: bool = False
    goal_support: Tuple[Hashable, ...] = ()

    @property
    def goals(self) -> List[Hashable]:
        return [trace.goal for trace in self.traces]

    def goal_probs(self, support: Sequence[Hashable] | None = None) -> np.ndarray:
        return goal_marginals(self.goals, self.weights, support or self.goal_support)


def _frozen(arr: np.ndarray, dtype=float) -> np.ndarray:
    out = np.array(arr, dtype=dtype, copy=True)
    out.setflags(write=False)
    return out


@dataclass
class ParticleFilterState:
    """Mutable population owned by the engine.

    Log weights are unnormalized. ``log_ml_est`` accumulates the log marginal
    likelihood mass removed by each resampling step. ``ancestors`` maps each
    particle to its parent index at the latest step and ``n_updates`` counts
    the observation batches absorbed so far.
    """

    traces: List[Trace]
    log_weights: np.ndarray
    ancestors: np.ndarray = field(default=None)
    log_ml_est: float = 0.0
    t: int = 0
    n_updates: int = 0

    def __post_init__(self):
        self.log_weights = np.asarray(self.log_weights, dtype=float)
        if self.ancestors is None:
            self.ancestors = np.arange(len(self.traces))
        if len(self.traces) != len(self.log_weights):
            raise ValueError("Need exactly one log weight per trace.")

    def __len__(self) -> int:
        return len(self.traces)

    @property
    def particles(self) -> List[Particle]:
        return [
            Particle(trace=tr, log_weight=float(lw), ancestor=int(a))
            for tr, lw, a in zip(self.traces, self.log_weights, self.ancestors)
        ]

    def normalized_weights(self) -> np.ndarray:
        return normalized_weights(self.log_weights)

    def ess(self) -> float:
        return log_effective_sample_size(self.log_weights)

    def log_total_weight(self) -> float:
        return log_sum_exp(self.log_weights)

    def log_marginal_likelihood(self) -> float:
        """Running estimate of the log evidence of all observations so far."""
        return self.log_ml_est + self.log_total_weight() - np.log(len(self))

    def goal_probs(self, support: Sequence[Hashable]) -> np.ndarray:
        return goal_marginals([tr.goal for tr in self.traces], self.normalized_weights(), support)

    def snapshot(self, **flags) -> PopulationSnapshot:
        return PopulationSnapshot(
            t=self.t,
            traces=tuple(self.traces),
            log_weights=_frozen(self.log_weights),
            weights=_frozen(self.normalized_weights()),
            ancestors=_frozen(self.ancestors, dtype=int),
            ess=self.ess(),
            log_ml_est=self.log_marginal_likelihood(),
            **flags,
        )
