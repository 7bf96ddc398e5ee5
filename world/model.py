"""World model: agent, environment and observation submodels as one state-space model.

At every step ``t > 0`` the agent updates its belief, goal and plan from the
previous environment state and picks an action, the environment responds to
that action, and the observation model emits noisy features of the new
environment state. The trace density factorizes over these steps, which is
what makes incremental importance weighting possible.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Hashable, Mapping, Tuple

import numpy as np
import structlog

from agent.config import AgentConfig, agent_init, agent_step
from env.models import EnvConfig
from world.errors import ModelConfigurationError
from world.observations import ObsConfig
from world.trace import Trace, WorldState

logger = structlog.get_logger(__name__)

GOAL_ADDR = "goal"
CONSTRAINABLE_ADDRS = (GOAL_ADDR,)


@dataclass(frozen=True)
class WorldConfig:
    """Agent, environment and observation configuration. Immutable for a run."""

    agent: AgentConfig
    env: EnvConfig
    obs: ObsConfig


class WorldModel:
    """Generative model over traces, checked against its configuration on construction."""

    def __init__(self, config: WorldConfig, validation_seed: int = 0):
        if not isinstance(config, WorldConfig):
            raise ModelConfigurationError("WorldModel expects a WorldConfig.")
        self.config = config
        self._validate(np.random.default_rng(validation_seed))

    def _validate(self, rng: np.random.Generator) -> None:
        env_state = self.config.env.initialize(rng)
        self.config.obs.validate(env_state)
        agent = self.config.agent
        for name, submodel in (
            ("belief", agent.belief),
            ("goal", agent.goal),
            ("policy", agent.policy),
            ("env", self.config.env),
        ):
            if submodel.step_fn is None:
                raise ModelConfigurationError(f"The {name} configuration has no step function.")
        logger.debug(
            "world_model_validated",
            features=list(self.config.obs.feature_names),
            goals=[repr(g) for g in self.goal_support],
        )

    @property
    def goal_support(self) -> Tuple[Hashable, ...]:
        return self.config.agent.goal.support

    def initialize(
        self,
        rng: np.random.Generator,
        constraints: Mapping[str, Any] | None = None,
        observed: Mapping[str, Any] | None = None,
    ) -> Tuple[Trace, float]:
        """Sample the t=0 world state.

        ``constraints`` forces latent choices (only ``"goal"`` is supported);
        ``observed`` constrains the initial observation. Returns the trace and
        its log importance weight relative to forward simulation: the prior
        log-probability of forced latents plus the observation log-likelihood.
        """
        constraints = dict(constraints or {})
        unknown = set(constraints) - set(CONSTRAINABLE_ADDRS)
        if unknown:
            raise ModelConfigurationError(f"Cannot constrain latent addresses {sorted(unknown)}.")

        log_weight = 0.0
        env_state = self.config.env.initialize(rng)
        goal = constraints.get(GOAL_ADDR)
        if goal is not None:
            log_weight += self.config.agent.goal.init_logpdf(goal)
        agent_state = agent_init(rng, self.config.agent, env_state, goal=goal)

        obs_state, log_likelihood = self._observe(rng, env_state, observed)
        log_weight += log_likelihood
        state = WorldState(agent=agent_state, env=env_state, obs=obs_state)
        return Trace.start(state, observed, log_likelihood), log_weight

    def step(
        self,
        rng: np.random.Generator,
        trace: Trace,
        observed: Mapping[str, Any] | None = None,
        replan: bool | None = None,
    ) -> Tuple[Trace, float]:
        """Extend ``trace`` by one step with the observation held at ``observed``.

        Latents are forward-simulated from the model, so the returned
        incremental log weight is the observation log-likelihood.
        ``replan`` overrides the policy's replanning decision.
        """
        t = trace.horizon + 1
        prev = trace.last
        agent_state = agent_step(rng, t, self.config.agent, prev.agent, prev.env, replan=replan)
        env_state = self.config.env.step(rng, t, prev.env, agent_state.action)
        obs_state, log_likelihood = self._observe(rng, env_state, observed)
        state = WorldState(agent=agent_state, env=env_state, obs=obs_state)
        return trace.extend(state, observed, log_likelihood), log_likelihood

    def _observe(
        self,
        rng: np.random.Generator,
        env_state: Any,
        observed: Mapping[str, Any] | None,
    ) -> Tuple[Dict[str, Any], float]:
        obs_state = self.config.obs.sample(rng, env_state)
        if not observed:
            return obs_state, 0.0
        log_likelihood = self.config.obs.logpdf(observed, env_state)
        obs_state.update(observed)
        return obs_state, log_likelihood

    def simulate(
        self,
        rng: np.random.Generator,
        horizon: int,
        constraints: Mapping[str, Any] | None = None,
    ) -> Trace:
        """Forward-sample a trace of ``horizon`` steps with freely sampled observations."""
        if horizon < 0:
            raise ValueError("horizon must be non-negative")
        trace, _ = self.initialize(rng, constraints=constraints)
        for _ in range(horizon):
            trace, _ = self.step(rng, trace)
        return trace

    def generate(
        self,
        rng: np.random.Generator,
        horizon: int,
        observations: Mapping[int, Mapping[str, Any]],
        constraints: Mapping[str, Any] | None = None,
    ) -> Tuple[Trace, float]:
        """Sample a trace with observations fixed at the given timesteps; returns the total log weight."""
        trace, log_weight = self.initialize(rng, constraints=constraints, observed=observations.get(0))
        for t in range(1, horizon + 1):
            trace, increment = self.step(rng, trace, observed=observations.get(t))
            log_weight += increment
        return trace, log_weight
