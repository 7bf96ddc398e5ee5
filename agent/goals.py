"""Goal priors and goal submodel configurations.

A static goal is drawn once at t=0 and carried unchanged. A switching goal is
redrawn each step from a Markov kernel over the prior's support, which lets
the posterior follow an agent that changes its mind.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Sequence, Tuple

import numpy as np

from world.config import ModelConfig
from world.errors import ModelConfigurationError


class UniformGoalPrior:
    """Uniform prior over a finite set of goal hypotheses."""

    def __init__(self, goals: Sequence[Hashable]):
        if len(goals) == 0:
            raise ModelConfigurationError("Goal prior needs at least one goal.")
        if len(set(goals)) != len(goals):
            raise ModelConfigurationError("Goal hypotheses must be distinct.")
        self._goals = tuple(goals)

    @property
    def support(self) -> Tuple[Hashable, ...]:
        return self._goals

    def probs(self) -> np.ndarray:
        return np.full(len(self._goals), 1.0 / len(self._goals))

    def sample(self, rng: np.random.Generator) -> Hashable:
        return self._goals[int(rng.integers(len(self._goals)))]

    def logpdf(self, goal: Hashable) -> float:
        if goal not in self._goals:
            return -math.inf
        return -math.log(len(self._goals))


class CategoricalGoalPrior(UniformGoalPrior):
    """Categorical prior over goals with explicit probabilities."""

    def __init__(self, goals: Sequence[Hashable], probs: Sequence[float]):
        super().__init__(goals)
        p = np.asarray(probs, dtype=float)
        if p.shape != (len(self._goals),):
            raise ModelConfigurationError("Need exactly one probability per goal.")
        if np.any(p < 0.0) or p.sum() <= 0.0:
            raise ModelConfigurationError("Goal probabilities must be non-negative with positive mass.")
        self._probs = p / p.sum()

    def probs(self) -> np.ndarray:
        return self._probs.copy()

    def sample(self, rng: np.random.Generator) -> Hashable:
        return self._goals[int(rng.choice(len(self._goals), p=self._probs))]

    def logpdf(self, goal: Hashable) -> float:
        if goal not in self._goals:
            return -math.inf
        p = self._probs[self._goals.index(goal)]
        return math.log(p) if p > 0.0 else -math.inf


@dataclass(frozen=True)
class GoalConfig(ModelConfig):
    """Goal submodel.

    ``init_fn(rng, *init_args)`` draws the initial goal and
    ``step_fn(rng, t, goal, belief, *step_args)`` draws the next one.
    ``init_logpdf_fn(goal, *init_args)`` scores a forced initial goal, which
    stratified initialization needs for its importance weights.
    """

    init_logpdf_fn: Callable[..., float] | None = None

    def init_logpdf(self, goal: Hashable) -> float:
        if self.init_logpdf_fn is None:
            raise ModelConfigurationError("This goal model cannot score a forced initial goal.")
        return float(self.init_logpdf_fn(goal, *self.init_args))

    @property
    def support(self) -> Tuple[Hashable, ...]:
        prior = self.init_args[0] if self.init_args else None
        return tuple(getattr(prior, "support", ()))


def _prior_sample(rng, prior) -> Any:
    return prior.sample(rng)


def _prior_logpdf(goal, prior) -> float:
    return prior.logpdf(goal)


def static_goal_step(rng, t, goal, belief) -> Any:
    """Identity transition: the goal never changes."""
    return goal


def markov_goal_step(rng, t, goal, belief, prior, transition) -> Any:
    """Draw the next goal from ``transition(goal)``, a row over ``prior.support``."""
    support = prior.support
    row = np.asarray(transition(goal), dtype=float)
    return support[int(rng.choice(len(support), p=row / row.sum()))]


def static_goal_config(prior) -> GoalConfig:
    """Goal drawn once from ``prior`` and held fixed for the episode."""
    return GoalConfig(
        init_fn=_prior_sample,
        init_args=(prior,),
        step_fn=static_goal_step,
        step_args=(),
        init_logpdf_fn=_prior_logpdf,
    )


def sticky_transition(prior, switch_prob: float) -> Callable[[Hashable], np.ndarray]:
    """Kernel that keeps the goal with probability ``1 - switch_prob``, else redraws uniformly among the others."""
    if not 0.0 <= switch_prob <= 1.0:
        raise ModelConfigurationError("switch_prob must be in [0, 1].")
    support = prior.support
    n_goals = len(support)

    def transition(goal: Hashable) -> np.ndarray:
        if n_goals == 1:
            return np.ones(1)
        row = np.full(n_goals, switch_prob / (n_goals - 1))
        row[support.index(goal)] = 1.0 - switch_prob
        return row

    return transition


def markov_goal_config(prior, transition: Callable[[Hashable], Sequence[float]]) -> GoalConfig:
    """Goal that may switch every step according to a Markov kernel."""
    for goal in prior.support:
        row = np.asarray(transition(goal), dtype=float)
        if row.shape != (len(prior.support),) or np.any(row < 0.0) or row.sum() <= 0.0:
            raise ModelConfigurationError(f"Invalid goal transition row for {goal!r}.")
    return GoalConfig(
        init_fn=_prior_sample,
        init_args=(prior,),
        step_fn=markov_goal_step,
        step_args=(prior, transition),
        init_logpdf_fn=_prior_logpdf,
    )
