"""Sequential inverse plan search (SIPS).

A particle filter over world-model traces. Each particle is a hypothesis
about the agent's goal, plan and environment history. For every observation
batch the engine extends all traces by forward simulation with the
observations held fixed, reweights by the observation likelihood, resamples
when weights degenerate, and rejuvenates plans with an MCMC kernel.
"""

from __future__ import annotations

from typing import Any, Callable, Hashable, Iterable, Iterator, Mapping, Sequence, Tuple

import numpy as np
import structlog

from inference.kernels import RejuvenationKernel, ReplanKernel
from inference.population import ParticleFilterState, PopulationSnapshot
from inference.resampling import get_resampler
from inference.strata import allocate_strata
from inference.streams import ObservationBatch
from inference.weights import log_sum_exp, normalized_weights
from world.errors import DegenerateWeightsError, ModelConfigurationError
from world.model import WorldConfig, WorldModel

logger = structlog.get_logger(__name__)

RESAMPLE_CONDS = ("ess", "periodic", "always", "none")
REJUV_CONDS = ("ess", "periodic", "always", "none")

Callback = Callable[[PopulationSnapshot], None]


def _as_rng(rng: np.random.Generator | int | None) -> np.random.Generator:
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


class SIPS:
    """Online goal inference by sequential importance sampling with rejuvenation.

    Parameters
    ----------
    world_config:
        Model to invert. Validated on construction.
    resample_cond:
        ``"ess"`` resamples when ESS drops below ``ess_threshold * n``,
        ``"periodic"`` every ``period`` batches, ``"always"`` or ``"none"``.
    rejuv_cond:
        When to apply ``rejuv_kernel`` to every particle: ``"periodic"``,
        ``"ess"`` (ESS below threshold before resampling), ``"always"`` or
        ``"none"``.
    rejuv_kernel:
        MCMC move; defaults to ``ReplanKernel(2)``.
    resample_method:
        ``"multinomial"``, ``"residual"`` or ``"stratified"``.
    strict_strata:
        Require the strata count to divide the population size.
    """

    def __init__(
        self,
        world_config: WorldConfig,
        resample_cond: str = "ess",
        rejuv_cond: str = "none",
        rejuv_kernel: RejuvenationKernel | None = None,
        period: int = 1,
        ess_threshold: float = 0.5,
        resample_method: str = "multinomial",
        strict_strata: bool = False,
    ):
        if resample_cond not in RESAMPLE_CONDS:
            raise ModelConfigurationError(f"Unknown resample_cond {resample_cond!r}; expected one of {RESAMPLE_CONDS}.")
        if rejuv_cond not in REJUV_CONDS:
            raise ModelConfigurationError(f"Unknown rejuv_cond {rejuv_cond!r}; expected one of {REJUV_CONDS}.")
        if period <= 0:
            raise ModelConfigurationError("period must be positive.")
        if not 0.0 < ess_threshold <= 1.0:
            raise ModelConfigurationError("ess_threshold must be in (0, 1].")

        self.model = WorldModel(world_config)
        self.resample_cond = resample_cond
        self.rejuv_cond = rejuv_cond
        self.rejuv_kernel = rejuv_kernel if rejuv_kernel is not None else ReplanKernel(2)
        if rejuv_cond != "none":
            self.rejuv_kernel.check(self.model)
        self.period = int(period)
        self.ess_threshold = float(ess_threshold)
        self.resample_method = resample_method
        self._resampler = get_resampler(resample_method)
        self.strict_strata = bool(strict_strata)

    @property
    def goal_support(self) -> Tuple[Hashable, ...]:
        return self.model.goal_support

    # initialization

    def initialize(
        self,
        n_particles: int,
        rng: np.random.Generator,
        init_strata: Sequence[Mapping[str, Any]] | None = None,
        init_observation: Mapping[str, Any] | None = None,
    ) -> ParticleFilterState:
        """Draw ``n_particles`` initial traces, stratified across ``init_strata`` if given.

        Each stratum's particles are weighted by the stratum's prior mass over
        its share of the population, so the weighted population still
        targets the prior.
        """
        if n_particles <= 0:
            raise ModelConfigurationError("n_particles must be positive.")
        traces = []
        log_weights = []
        if init_strata:
            strata = list(init_strata)
            counts = allocate_strata(n_particles, len(strata), strict=self.strict_strata)
            for stratum, count in zip(strata, counts):
                log_share = np.log(count / n_particles)
                for _ in range(count):
                    trace, lw = self.model.initialize(rng, constraints=stratum, observed=init_observation)
                    traces.append(trace)
                    log_weights.append(lw - log_share)
        else:
            for _ in range(n_particles):
                trace, lw = self.model.initialize(rng, observed=init_observation)
                traces.append(trace)
                log_weights.append(lw)

        state = ParticleFilterState(traces=traces, log_weights=np.asarray(log_weights), t=0)
        self._check_weights(state)
        logger.debug("sips_initialized", n_particles=n_particles, n_strata=len(init_strata or ()), ess=state.ess())
        return state

    # per-batch update

    def update(self, state: ParticleFilterState, batch: ObservationBatch, rng: np.random.Generator) -> dict:
        """Advance ``state`` in place through ``batch``; returns what happened.

        Periodic conditions count batches with ``state.n_updates``, so direct
        calls and :meth:`run` schedule resampling and rejuvenation alike.
        """
        if batch.timesteps[0] <= state.t:
            raise ValueError(f"Observation at t={batch.timesteps[0]} arrived after t={state.t}.")

        for t_obs, observed in batch.observations.items():
            while state.t < t_obs:
                target = state.t + 1
                obs = observed if target == t_obs else None
                self._extend(state, obs, rng)
        self._check_weights(state)

        ess = state.ess()
        n = len(state)
        low_ess = ess < self.ess_threshold * n
        state.n_updates += 1
        periodic = state.n_updates % self.period == 0

        resampled = (
            self.resample_cond == "always"
            or (self.resample_cond == "ess" and low_ess)
            or (self.resample_cond == "periodic" and periodic)
        )
        if resampled:
            self.resample(state, rng)

        rejuvenate = (
            self.rejuv_cond == "always"
            or (self.rejuv_cond == "ess" and low_ess)
            or (self.rejuv_cond == "periodic" and periodic)
        )
        n_accepted = self.rejuvenate(state, rng) if rejuvenate else 0

        logger.debug(
            "sips_step",
            t=state.t,
            ess=round(ess, 3),
            resampled=resampled,
            rejuvenated=rejuvenate,
            accepted=n_accepted,
        )
        return {"ess": ess, "resampled": resampled, "rejuvenated": rejuvenate, "accepted": n_accepted}

    def _extend(self, state: ParticleFilterState, observed: Mapping[str, Any] | None, rng: np.random.Generator) -> None:
        increments = np.empty(len(state))
        for i, trace in enumerate(state.traces):
            state.traces[i], increments[i] = self.model.step(rng, trace, observed=observed)
        state.log_weights = state.log_weights + increments
        state.ancestors = np.arange(len(state))
        state.t += 1

    def _check_weights(self, state: ParticleFilterState) -> None:
        lw = state.log_weights
        if np.any(np.isnan(lw)) or not np.isfinite(np.max(lw)):
            raise DegenerateWeightsError(state.t)

    def resample(self, state: ParticleFilterState, rng: np.random.Generator) -> None:
        """Replace the population by ancestors drawn in proportion to weight; weights become uniform."""
        n = len(state)
        weights = normalized_weights(state.log_weights)
        ancestors = np.asarray(self._resampler(rng, weights, n), dtype=int)
        state.log_ml_est += log_sum_exp(state.log_weights) - np.log(n)
        # traces are persistent, so sharing an ancestor's trace is safe
        state.traces = [state.traces[a] for a in ancestors]
        state.log_weights = np.zeros(n)
        state.ancestors = ancestors

    def rejuvenate(self, state: ParticleFilterState, rng: np.random.Generator) -> int:
        """Apply the rejuvenation kernel to every particle; returns the number of accepted moves."""
        n_accepted = 0
        for i, trace in enumerate(state.traces):
            state.traces[i], accepted = self.rejuv_kernel(rng, self.model, trace)
            n_accepted += accepted
        return n_accepted

    # driving loops

    def _steps(
        self,
        n_particles: int,
        observations: Iterable[ObservationBatch],
        init_strata: Sequence[Mapping[str, Any]] | None,
        init_observation: Mapping[str, Any] | None,
        rng: np.random.Generator | int | None,
    ) -> Iterator[Tuple[ParticleFilterState, PopulationSnapshot]]:
        rng = _as_rng(rng)
        state = self.initialize(n_particles, rng, init_strata=init_strata, init_observation=init_observation)
        yield state, state.snapshot(goal_support=self.goal_support)
        for batch in observations:
            info = self.update(state, batch, rng)
            yield state, state.snapshot(
                resampled=info["resampled"],
                rejuvenated=info["rejuvenated"],
                goal_support=self.goal_support,
            )

    def iterate(
        self,
        n_particles: int,
        observations: Iterable[ObservationBatch],
        init_strata: Sequence[Mapping[str, Any]] | None = None,
        init_observation: Mapping[str, Any] | None = None,
        rng: np.random.Generator | int | None = None,
    ) -> Iterator[PopulationSnapshot]:
        """Yield a snapshot after initialization and after every batch.

        The filter only advances when the caller asks for the next snapshot.
        """
        for _, snapshot in self._steps(n_particles, observations, init_strata, init_observation, rng):
            yield snapshot

    def run(
        self,
        n_particles: int,
        observations: Iterable[ObservationBatch],
        init_strata: Sequence[Mapping[str, Any]] | None = None,
        init_observation: Mapping[str, Any] | None = None,
        callback: Callback | None = None,
        rng: np.random.Generator | int | None = None,
    ) -> ParticleFilterState:
        """Run the filter over all observation batches and return the final population."""
        state = None
        for state, snapshot in self._steps(n_particles, observations, init_strata, init_observation, rng):
            if callback is not None:
                callback(snapshot)
        return state

    __call__ = run
