"""Sequential Monte Carlo goal inference."""

from inference.callbacks import CombinedCallback, GoalProbabilityLogger, PrintGoalProbsCallback
from inference.kernels import IdentityKernel, RejuvenationKernel, ReplanKernel
from inference.population import Particle, ParticleFilterState, PopulationSnapshot
from inference.resampling import multinomial_resample, residual_resample, stratified_resample
from inference.sips import SIPS
from inference.strata import allocate_strata, choice_product, goal_strata
from inference.streams import ObservationBatch, initial_observation, observation_stream
from inference.weights import (
    effective_sample_size,
    goal_marginals,
    log_effective_sample_size,
    log_sum_exp,
    normalized_weights,
)

__all__ = [
    "CombinedCallback",
    "GoalProbabilityLogger",
    "IdentityKernel",
    "ObservationBatch",
    "Particle",
    "ParticleFilterState",
    "PopulationSnapshot",
    "PrintGoalProbsCallback",
    "RejuvenationKernel",
    "ReplanKernel",
    "SIPS",
    "allocate_strata",
    "choice_product",
    "effective_sample_size",
    "goal_marginals",
    "goal_strata",
    "initial_observation",
    "log_effective_sample_size",
    "log_sum_exp",
    "multinomial_resample",
    "normalized_weights",
    "observation_stream",
    "residual_resample",
    "stratified_resample",
]
