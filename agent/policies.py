"""Replanning policy submodel.

The policy is a small state machine over :class:`PlanState`. Each step the
agent either keeps following its current plan or asks the planner for a new
one (at random with probability ``prob_replan``, or unconditionally when the
plan is exhausted or no longer matches the believed state). The chosen action
is then corrupted by epsilon action noise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Tuple

import numpy as np
import structlog

from agent.distributions import FixedBudget, ShiftedNegativeBinomial
from env.domain import NOOP, Plan
from world.config import ModelConfig
from world.errors import ModelConfigurationError, PlannerFailure

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PlanState:
    """Policy latent state after one step.

    ``replanned`` records whether the planner was called this step and
    ``forced`` whether that call was forced by an unusable plan. ``failed`` is
    set when the planner reported that the goal is unreachable.
    """

    plan: Plan | None = None
    step_index: int = 0
    replanned: bool = False
    forced: bool = False
    budget: int | None = None
    failed: bool = False


@dataclass(frozen=True)
class ReplanParams:
    """Fixed arguments of the replanning policy."""

    domain: Any
    planner: Any
    prob_replan: float = 0.1
    budget_dist: Any = ShiftedNegativeBinomial(2, 0.05, 1)
    act_epsilon: float = 0.05

    def __post_init__(self):
        if not 0.0 <= self.prob_replan <= 1.0:
            raise ModelConfigurationError("prob_replan must be in [0, 1].")
        if not 0.0 <= self.act_epsilon <= 1.0:
            raise ModelConfigurationError("act_epsilon must be in [0, 1].")


@dataclass(frozen=True)
class PolicyConfig(ModelConfig):
    """Policy submodel.

    ``init_fn(rng, belief, goal, *init_args)`` returns the initial
    :class:`PlanState`; ``step_fn(rng, t, plan_state, belief, goal,
    *step_args, replan=None)`` returns ``(plan_state, action)``. Passing
    ``replan=True/False`` overrides the random replanning decision.
    ``replan_prior_fn(plan_state, belief, replanned, *step_args)`` gives the
    log prior of that decision; policies without it cannot be rejuvenated by
    replanning.
    """

    replan_prior_fn: Callable[..., float] | None = None

    @property
    def supports_replanning(self) -> bool:
        return self.replan_prior_fn is not None

    def replan_log_prior(self, plan_state: PlanState, belief: Any, replanned: bool) -> float:
        if self.replan_prior_fn is None:
            raise ModelConfigurationError("Policy has no replanning decision to score.")
        return float(self.replan_prior_fn(plan_state, belief, replanned, *self.step_args))


def plan_is_usable(plan_state: PlanState, belief: Any, domain: Any) -> bool:
    """True when the current plan has a next action that applies to ``belief``."""
    plan = plan_state.plan
    if plan is None or plan_state.step_index >= len(plan):
        return False
    if plan.states[plan_state.step_index] != belief:
        return False
    return domain.available(belief, plan.actions[plan_state.step_index])


def call_planner(planner: Any, belief: Any, goal: Hashable, budget: int | None, rng) -> Plan | None:
    """Invoke the planner, mapping ``PlannerFailure`` to ``None``."""
    try:
        return planner.plan(belief, goal, budget=budget, rng=rng)
    except PlannerFailure as exc:
        logger.debug("planner_failed", goal=repr(goal), budget=budget, reason=str(exc))
        return None


def apply_action_noise(rng, domain: Any, belief: Any, action: Hashable, act_epsilon: float) -> Hashable:
    """With probability ``act_epsilon``, swap ``action`` for a uniformly random available alternative."""
    if act_epsilon <= 0.0 or rng.random() >= act_epsilon:
        return action
    alternatives = [a for a in domain.available_actions(belief) if a != action]
    if not alternatives:
        return action
    return alternatives[int(rng.integers(len(alternatives)))]


def replan_policy_init(rng, belief, goal) -> PlanState:
    """Start without a plan, so the first step always calls the planner."""
    return PlanState()


def replan_policy_step(
    rng,
    t: int,
    plan_state: PlanState,
    belief: Any,
    goal: Hashable,
    params: ReplanParams,
    replan: bool | None = None,
) -> Tuple[PlanState, Hashable]:
    """Advance the replanning state machine by one step."""
    usable = plan_is_usable(plan_state, belief, params.domain)
    if replan is None:
        coin = params.prob_replan > 0.0 and rng.random() < params.prob_replan
        do_replan = coin or not usable
        forced = not coin and not usable
    else:
        do_replan = bool(replan) or not usable
        forced = not bool(replan) and not usable

    if do_replan:
        budget = params.budget_dist.sample(rng)
        plan = call_planner(params.planner, belief, goal, budget, rng)
        next_state = PlanState(
            plan=plan,
            step_index=0,
            replanned=True,
            forced=forced,
            budget=budget,
            failed=plan is None,
        )
    else:
        next_state = PlanState(plan=plan_state.plan, step_index=plan_state.step_index)

    plan = next_state.plan
    idx = next_state.step_index
    if plan is None or idx >= len(plan) or not params.domain.available(belief, plan.actions[idx]):
        # no plan, goal already reached, or partial plan used up
        planned = NOOP
    else:
        planned = plan.actions[idx]
        next_state = PlanState(
            plan=plan,
            step_index=idx + 1,
            replanned=next_state.replanned,
            forced=next_state.forced,
            budget=next_state.budget,
            failed=next_state.failed,
        )

    action = apply_action_noise(rng, params.domain, belief, planned, params.act_epsilon)
    return next_state, action


def replan_log_prior(plan_state: PlanState, belief: Any, replanned: bool, params: ReplanParams) -> float:
    """Log prior probability of the replanning decision from ``plan_state``."""
    if not plan_is_usable(plan_state, belief, params.domain):
        return 0.0 if replanned else -math.inf
    p = params.prob_replan
    if replanned:
        return math.log(p) if p > 0.0 else -math.inf
    return math.log1p(-p) if p < 1.0 else -math.inf


def replan_policy_config(
    domain: Any,
    planner: Any,
    prob_replan: float = 0.1,
    budget_dist: Any = ShiftedNegativeBinomial(2, 0.05, 1),
    act_epsilon: float = 0.05,
) -> PolicyConfig:
    """Policy that follows plans, replans at random or when stuck, and adds action noise."""
    params = ReplanParams(
        domain=domain,
        planner=planner,
        prob_replan=prob_replan,
        budget_dist=budget_dist,
        act_epsilon=act_epsilon,
    )
    return PolicyConfig(
        init_fn=replan_policy_init,
        init_args=(),
        step_fn=replan_policy_step,
        step_args=(params,),
        replan_prior_fn=replan_log_prior,
    )


def deterministic_replan_config(domain: Any, planner: Any, budget: int | None = None) -> PolicyConfig:
    """Noise-free policy that only replans when its plan stops applying."""
    budget_dist = FixedBudget(budget) if budget is not None else _UnboundedBudget()
    return replan_policy_config(domain, planner, prob_replan=0.0, budget_dist=budget_dist, act_epsilon=0.0)


class _UnboundedBudget:
    """Budget law that always asks for an exhaustive search."""

    def sample(self, rng: np.random.Generator) -> None:
        return None
