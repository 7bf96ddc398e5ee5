"""Belief submodel configurations."""

from __future__ import annotations

from dataclasses import dataclass

from world.config import ModelConfig


@dataclass(frozen=True)
class BeliefConfig(ModelConfig):
    """Belief submodel.

    ``init_fn(rng, env_state, *init_args)`` builds the initial belief and
    ``step_fn(rng, t, belief, action, env_state, *step_args)`` updates it
    from the previous action and environment state.
    """


def direct_belief_init(rng, env_state):
    """Initial belief is the environment state itself."""
    return env_state


def direct_belief_step(rng, t, belief, action, env_state):
    """Belief update that returns the current environment state."""
    return env_state


def direct_belief_config() -> BeliefConfig:
    """Agent beliefs equal the full environment state; past beliefs are ignored."""
    return BeliefConfig(
        init_fn=direct_belief_init,
        init_args=(),
        step_fn=direct_belief_step,
        step_args=(),
    )
