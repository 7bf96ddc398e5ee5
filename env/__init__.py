"""Environment models and the doors, keys and gems gridworld."""

from env.domain import NOOP, Domain, Plan, Planner, simulate_actions
from env.gridworld import AtPosition, GridLayout, GridState, GridWorld, HasItem
from env.models import EnvConfig, domain_env_config, static_env_config
from env.search import AStarPlanner

__all__ = [
    "NOOP",
    "AStarPlanner",
    "AtPosition",
    "Domain",
    "EnvConfig",
    "GridLayout",
    "GridState",
    "GridWorld",
    "HasItem",
    "Plan",
    "Planner",
    "domain_env_config",
    "simulate_actions",
    "static_env_config",
]
