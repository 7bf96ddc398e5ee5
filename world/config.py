"""Base class for submodel configurations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Tuple

from world.errors import ModelConfigurationError


@dataclass(frozen=True)
class ModelConfig:
    """Initializer and transition function of one submodel, with trailing arguments.

    Every submodel kind (belief, goal, policy, environment) shares this
    two-operation contract; concrete kinds are built by constructor functions
    such as ``direct_belief_config()`` rather than by subclassing.
    """

    init_fn: Callable[..., Any]
    init_args: Tuple[Any, ...] = ()
    step_fn: Callable[..., Any] | None = None
    step_args: Tuple[Any, ...] = ()

    def initialize(self, rng, *args: Any) -> Any:
        """Call ``init_fn(rng, *args, *init_args)``."""
        return self.init_fn(rng, *args, *self.init_args)

    def step(self, rng, t: int, *args: Any, **kwargs: Any) -> Any:
        """Call ``step_fn(rng, t, *args, *step_args, **kwargs)``."""
        if self.step_fn is None:
            raise ModelConfigurationError(f"{type(self).__name__} has no step function.")
        return self.step_fn(rng, t, *args, *self.step_args, **kwargs)
