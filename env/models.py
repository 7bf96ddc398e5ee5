"""Environment submodel configurations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable

from env.domain import NOOP
from world.config import ModelConfig


@dataclass(frozen=True)
class EnvConfig(ModelConfig):
    """Environment submodel.

    ``init_fn(rng, *init_args)`` returns the initial environment state and
    ``step_fn(rng, t, env_state, action, *step_args)`` the next one.
    """


def _return_state(rng, state):
    return state


def _sample_state(rng, state_prior):
    return state_prior(rng)


def static_env_step(rng, t, env_state, action):
    """Static transition that returns the previous state unmodified."""
    return env_state


def domain_env_step(rng, t, env_state, action: Hashable, domain: Any):
    """Deterministic domain transition; no-op and inapplicable actions leave the state unchanged."""
    if action == NOOP or action is None or not domain.available(env_state, action):
        return env_state
    return domain.transition(env_state, action)


def static_env_config(init_state: Any = None) -> EnvConfig:
    """Environment that never changes."""
    return EnvConfig(init_fn=_return_state, init_args=(init_state,), step_fn=static_env_step, step_args=())


def domain_env_config(domain: Any, init_state: Any = None, state_prior=None) -> EnvConfig:
    """Environment driven by ``domain.transition``.

    Pass either a fixed ``init_state`` or a ``state_prior(rng)`` callable.
    """
    if state_prior is not None:
        return EnvConfig(
            init_fn=_sample_state,
            init_args=(state_prior,),
            step_fn=domain_env_step,
            step_args=(domain,),
        )
    return EnvConfig(
        init_fn=_return_state,
        init_args=(init_state,),
        step_fn=domain_env_step,
        step_args=(domain,),
    )
