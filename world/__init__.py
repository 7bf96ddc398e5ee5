"""World model building blocks: errors, observation models, traces.

The composed model lives in :mod:`world.model`.
"""

from world.config import ModelConfig
from world.errors import (
    DegenerateWeightsError,
    InversePlanningError,
    ModelConfigurationError,
    PlannerFailure,
    StratificationError,
)
from world.observations import BitFlipNoise, GaussianNoise, ObsConfig, make_noise
from world.trace import Trace, TraceStep, WorldState

__all__ = [
    "BitFlipNoise",
    "DegenerateWeightsError",
    "GaussianNoise",
    "InversePlanningError",
    "ModelConfig",
    "ModelConfigurationError",
    "ObsConfig",
    "PlannerFailure",
    "StratificationError",
    "Trace",
    "TraceStep",
    "WorldState",
    "make_noise",
]
