"""Observation streams for online inference."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Sequence, Tuple


@dataclass(frozen=True)
class ObservationBatch:
    """Observed feature values for one or more consecutive timesteps.

    ``observations`` maps timestep to ``{feature: value}``; ``t`` is the last
    timestep of the batch.
    """

    t: int
    observations: Mapping[int, Mapping[str, Any]]

    def __post_init__(self):
        steps = list(self.observations)
        if not steps:
            raise ValueError("An observation batch needs at least one timestep.")
        if steps != sorted(steps) or steps[-1] != self.t:
            raise ValueError("Batch timesteps must be increasing and end at t.")

    @property
    def timesteps(self) -> Tuple[int, ...]:
        return tuple(self.observations)


def state_observation(state: Any, features: Sequence[str]) -> Dict[str, Any]:
    """True values of ``features`` in ``state``."""
    return {f: state[f] for f in features}


def initial_observation(trajectory: Sequence[Any], features: Sequence[str]) -> Dict[str, Any]:
    """Observation of the first state of a trajectory."""
    return state_observation(trajectory[0], features)


def observation_stream(
    trajectory: Sequence[Any],
    features: Sequence[str],
    batch_size: int = 1,
) -> Iterator[ObservationBatch]:
    """Batches of observations of ``trajectory[1:]``, ``batch_size`` timesteps each."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    batch: Dict[int, Dict[str, Any]] = {}
    for t in range(1, len(trajectory)):
        batch[t] = state_observation(trajectory[t], features)
        if len(batch) == batch_size:
            yield ObservationBatch(t=t, observations=batch)
            batch = {}
    if batch:
        yield ObservationBatch(t=max(batch), observations=batch)
