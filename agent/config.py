"""Agent model: belief, goal and policy submodels composed into one step."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Hashable

from agent.beliefs import BeliefConfig, direct_belief_config
from agent.distributions import ShiftedNegativeBinomial
from agent.goals import GoalConfig, static_goal_config
from agent.policies import PlanState, PolicyConfig, replan_policy_config
from env.domain import NOOP


@dataclass(frozen=True)
class AgentConfig:
    """Belief, goal and policy configuration of the observed agent."""

    belief: BeliefConfig
    goal: GoalConfig
    policy: PolicyConfig


@dataclass(frozen=True)
class AgentState:
    """Agent latent state at one timestep."""

    belief: Any
    goal: Hashable
    plan_state: PlanState = field(default_factory=PlanState)
    action: Hashable = NOOP


def make_agent_config(
    domain: Any,
    planner: Any,
    goal_prior: Any,
    belief_config: BeliefConfig | None = None,
    goal_config: GoalConfig | None = None,
    prob_replan: float = 0.1,
    budget_dist: Any = ShiftedNegativeBinomial(2, 0.05, 1),
    act_epsilon: float = 0.05,
) -> AgentConfig:
    """Default agent: direct beliefs, static goal, stochastic replanning with action noise."""
    return AgentConfig(
        belief=belief_config or direct_belief_config(),
        goal=goal_config or static_goal_config(goal_prior),
        policy=replan_policy_config(
            domain,
            planner,
            prob_replan=prob_replan,
            budget_dist=budget_dist,
            act_epsilon=act_epsilon,
        ),
    )


def agent_init(rng, config: AgentConfig, env_state: Any, goal: Hashable | None = None) -> AgentState:
    """Draw the initial agent state; ``goal`` forces the goal latent when given."""
    belief = config.belief.initialize(rng, env_state)
    if goal is None:
        goal = config.goal.initialize(rng)
    plan_state = config.policy.initialize(rng, belief, goal)
    return AgentState(belief=belief, goal=goal, plan_state=plan_state, action=NOOP)


def agent_step(
    rng,
    t: int,
    config: AgentConfig,
    agent_state: AgentState,
    env_state: Any,
    replan: bool | None = None,
) -> AgentState:
    """Belief update, then goal update, then policy step, using the previous environment state."""
    belief = config.belief.step(rng, t, agent_state.belief, agent_state.action, env_state)
    goal = config.goal.step(rng, t, agent_state.goal, belief)
    if replan is None:
        plan_state, action = config.policy.step(rng, t, agent_state.plan_state, belief, goal)
    else:
        plan_state, action = config.policy.step(rng, t, agent_state.plan_state, belief, goal, replan=replan)
    return AgentState(belief=belief, goal=goal, plan_state=plan_state, action=action)
