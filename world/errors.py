"""Error taxonomy shared by the world model and the inference engine."""

from __future__ import annotations


class InversePlanningError(Exception):
    """Base class for all model and inference errors."""


class ModelConfigurationError(InversePlanningError, ValueError):
    """Malformed model configuration, detected before any inference runs."""


class StratificationError(ModelConfigurationError):
    """Initialization strata are incompatible with the population size."""


class PlannerFailure(InversePlanningError):
    """A planner found no plan for the requested goal.

    Policies catch this and fall back to the no-op action, so it never
    escapes a policy step.
    """

    def __init__(self, goal, message: str | None = None):
        self.goal = goal
        super().__init__(message or f"No plan found for goal {goal!r}.")


class DegenerateWeightsError(InversePlanningError, FloatingPointError):
    """Every particle weight collapsed to zero after an update."""

    def __init__(self, t: int, message: str | None = None):
        self.t = t
        super().__init__(
            message
            or f"All particle weights are zero at t={t}; observations are impossible under every hypothesis."
        )
