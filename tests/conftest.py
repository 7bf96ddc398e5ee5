"""Shared fixtures: a small corridor gridworld with three gems."""

from __future__ import annotations

import numpy as np
import pytest

from agent.config import make_agent_config
from agent.distributions import FixedBudget
from agent.goals import UniformGoalPrior
from env.domain import simulate_actions
from env.gridworld import GridLayout, GridWorld, HasItem
from env.models import domain_env_config
from env.search import AStarPlanner
from world.model import WorldConfig
from world.observations import ObsConfig

# gem1 above the start, gem2 to the left, gem3 to the right
CORRIDOR = (
    "....g....",
    ".........",
    "g...s...g",
)

GOALS = (HasItem("gem1"), HasItem("gem2"), HasItem("gem3"))

# walk left to gem2 and pick it up
LEFT_ACTIONS = ["left", "left", "left", "left", "pickup:gem2"]


class FailingPlanner:
    """Delegates to another planner except for goals it refuses to plan for."""

    def __init__(self, inner, unreachable):
        self.inner = inner
        self.unreachable = set(unreachable)

    def plan(self, state, goal, budget=None, rng=None):
        if goal in self.unreachable:
            return None
        return self.inner.plan(state, goal, budget=budget, rng=rng)


def make_world_config(
    domain,
    planner=None,
    goals=GOALS,
    prob_replan=0.1,
    act_epsilon=0.05,
    budget_dist=None,
    position_std=1.0,
    flip_prob=0.05,
) -> WorldConfig:
    state = domain.initial_state()
    agent_config = make_agent_config(
        domain,
        planner or AStarPlanner(domain),
        UniformGoalPrior(goals),
        prob_replan=prob_replan,
        budget_dist=budget_dist or FixedBudget(50),
        act_epsilon=act_epsilon,
    )
    obs_config = ObsConfig.grounded(
        [("xpos", "normal", position_std), ("ypos", "normal", position_std), ("has:*", flip_prob)],
        state,
    )
    return WorldConfig(agent=agent_config, env=domain_env_config(domain, state), obs=obs_config)


@pytest.fixture
def domain() -> GridWorld:
    return GridWorld(GridLayout.from_rows(CORRIDOR))


@pytest.fixture
def world_config(domain) -> WorldConfig:
    return make_world_config(domain)


@pytest.fixture
def left_trajectory(domain):
    return simulate_actions(domain, domain.initial_state(), LEFT_ACTIONS)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)
