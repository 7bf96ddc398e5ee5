"""Rejuvenation kernels.

Kernels are MCMC moves applied to single traces between observations. They
target the filtering posterior, so they never touch importance weights.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np
import structlog

from world.errors import ModelConfigurationError
from world.trace import Trace

logger = structlog.get_logger(__name__)


class RejuvenationKernel:
    """MCMC move on one trace. Returns ``(trace, n_accepted)``."""

    def check(self, model) -> None:
        """Raise ``ModelConfigurationError`` if the kernel cannot act on ``model``."""

    def __call__(self, rng: np.random.Generator, model, trace: Trace) -> Tuple[Trace, int]:
        raise NotImplementedError


class IdentityKernel(RejuvenationKernel):
    """Proposes the current trace unchanged."""

    def __call__(self, rng: np.random.Generator, model, trace: Trace) -> Tuple[Trace, int]:
        return trace, 1


class ReplanKernel(RejuvenationKernel):
    """Metropolis-Hastings move that redoes the replanning decision at a recent step.

    A step ``s`` is picked uniformly among the last ``window`` steps. The
    replanning decision at ``s`` is proposed uniformly among the decisions
    with non-zero prior probability (replan with a fresh budget, or keep the
    current plan), and steps ``s..t`` are resimulated from the model with the
    observations held fixed. Budgets, planner noise, action noise and later
    decisions are drawn from their priors and cancel, leaving

        alpha = [p(new decision) L_new] / [p(old decision) L_old]

    where ``L`` is the observation likelihood over ``s..t``. The move is
    exact for deterministic belief updates, which includes direct beliefs.
    """

    def __init__(self, window: int = 2, n_iters: int = 1):
        if window <= 0:
            raise ModelConfigurationError("Replan window must be positive.")
        if n_iters <= 0:
            raise ModelConfigurationError("n_iters must be positive.")
        self.window = int(window)
        self.n_iters = int(n_iters)

    def __repr__(self) -> str:
        return f"ReplanKernel(window={self.window}, n_iters={self.n_iters})"

    def check(self, model) -> None:
        if not model.config.agent.policy.supports_replanning:
            raise ModelConfigurationError("ReplanKernel needs a policy with a scorable replanning decision.")

    def __call__(self, rng: np.random.Generator, model, trace: Trace) -> Tuple[Trace, int]:
        n_accepted = 0
        for _ in range(self.n_iters):
            trace, accepted = self._move(rng, model, trace)
            n_accepted += int(accepted)
        return trace, n_accepted

    def _move(self, rng: np.random.Generator, model, trace: Trace) -> Tuple[Trace, bool]:
        horizon = trace.horizon
        if horizon == 0:
            return trace, False
        lo = max(1, horizon - self.window + 1)
        s = int(rng.integers(lo, horizon + 1))

        policy = model.config.agent.policy
        prev_plan = trace[s - 1].agent.plan_state
        old_agent = trace[s].agent
        belief = old_agent.belief

        log_priors = {flag: policy.replan_log_prior(prev_plan, belief, flag) for flag in (True, False)}
        candidates = [flag for flag, lp in log_priors.items() if lp > -math.inf]
        old_flag = old_agent.plan_state.replanned
        if old_flag not in candidates:
            return trace, False
        new_flag = candidates[int(rng.integers(len(candidates)))]

        prefix = trace.truncate(s - 1)
        proposal = prefix
        for t in range(s, horizon + 1):
            observed = trace.step(t).observed
            proposal, _ = model.step(rng, proposal, observed=observed, replan=new_flag if t == s else None)

        old_ll = trace.log_likelihood - prefix.log_likelihood
        new_ll = proposal.log_likelihood - prefix.log_likelihood
        log_alpha = (log_priors[new_flag] + new_ll) - (log_priors[old_flag] + old_ll)
        if math.isnan(log_alpha):
            return trace, False
        if log_alpha >= 0.0 or math.log(rng.random()) < log_alpha:
            return proposal, True
        return trace, False
