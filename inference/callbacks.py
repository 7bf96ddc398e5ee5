"""Per-step observers for the SIPS engine.

Callbacks receive a :class:`~inference.population.PopulationSnapshot` after
each step. Snapshots are read-only, so callbacks can record or print but
cannot alter the engine's state.
"""

from __future__ import annotations

from typing import Callable, Dict, Hashable, List, Sequence

import numpy as np

from inference.population import PopulationSnapshot


class GoalProbabilityLogger:
    """Records goal probabilities, ESS and evidence estimates at every step."""

    def __init__(self, goals: Sequence[Hashable]):
        self.goals = tuple(goals)
        self.data: Dict[str, List] = {"t": [], "goal_probs": [], "ess": [], "log_ml_est": [], "resampled": []}

    def __call__(self, snapshot: PopulationSnapshot) -> None:
        self.data["t"].append(snapshot.t)
        self.data["goal_probs"].append(snapshot.goal_probs(self.goals))
        self.data["ess"].append(snapshot.ess)
        self.data["log_ml_est"].append(snapshot.log_ml_est)
        self.data["resampled"].append(snapshot.resampled)

    @property
    def times(self) -> List[int]:
        return list(self.data["t"])

    def goal_prob_matrix(self) -> np.ndarray:
        """Array of shape ``(n_goals, n_steps)``."""
        if not self.data["goal_probs"]:
            return np.zeros((len(self.goals), 0))
        return np.stack(self.data["goal_probs"], axis=1)


class PrintGoalProbsCallback:
    """Prints one line of goal probabilities per step."""

    def __init__(self, goals: Sequence[Hashable], names: Sequence[str] | None = None, printer: Callable[[str], None] = print):
        self.goals = tuple(goals)
        self.names = tuple(names) if names is not None else tuple(str(g) for g in self.goals)
        if len(self.names) != len(self.goals):
            raise ValueError("Need one name per goal.")
        self.printer = printer

    def __call__(self, snapshot: PopulationSnapshot) -> None:
        probs = snapshot.goal_probs(self.goals)
        parts = " ".join(f"{name}={p:.3f}" for name, p in zip(self.names, probs))
        flag = " [resampled]" if snapshot.resampled else ""
        self.printer(f"t={snapshot.t:02d} {parts} ess={snapshot.ess:.1f}{flag}")


class CombinedCallback:
    """Calls several callbacks in order."""

    def __init__(self, *callbacks: Callable[[PopulationSnapshot], None]):
        self.callbacks = callbacks

    def __call__(self, snapshot: PopulationSnapshot) -> None:
        for callback in self.callbacks:
            callback(snapshot)
