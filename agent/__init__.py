"""Agent submodels: beliefs, goals, replanning policies."""

from agent.beliefs import BeliefConfig, direct_belief_config
from agent.config import AgentConfig, AgentState, agent_init, agent_step, make_agent_config
from agent.distributions import FixedBudget, ShiftedNegativeBinomial
from agent.goals import (
    CategoricalGoalPrior,
    GoalConfig,
    UniformGoalPrior,
    markov_goal_config,
    static_goal_config,
    sticky_transition,
)
from agent.policies import (
    PlanState,
    PolicyConfig,
    ReplanParams,
    deterministic_replan_config,
    replan_policy_config,
)

__all__ = [
    "AgentConfig",
    "AgentState",
    "BeliefConfig",
    "CategoricalGoalPrior",
    "FixedBudget",
    "GoalConfig",
    "PlanState",
    "PolicyConfig",
    "ReplanParams",
    "ShiftedNegativeBinomial",
    "UniformGoalPrior",
    "agent_init",
    "agent_step",
    "deterministic_replan_config",
    "direct_belief_config",
    "make_agent_config",
    "markov_goal_config",
    "replan_policy_config",
    "static_goal_config",
    "sticky_transition",
]
