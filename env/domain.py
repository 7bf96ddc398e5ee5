"""Contracts for the state-transition and planner collaborators.

The inference core never looks inside environment states or goals; it only
needs a domain that can say which actions are available and what they do,
and a planner that turns ``(state, goal, budget)`` into a :class:`Plan`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Iterable, Protocol, Sequence, Tuple

import numpy as np

NOOP = "--"


class Domain(Protocol):
    """State-transition collaborator."""

    def available(self, state: Any, action: Hashable) -> bool:
        ...

    def transition(self, state: Any, action: Hashable) -> Any:
        ...

    def available_actions(self, state: Any) -> Iterable[Hashable]:
        ...


class Planner(Protocol):
    """Planner collaborator; returns ``None`` (or raises ``PlannerFailure``) when no plan exists."""

    def plan(
        self,
        state: Any,
        goal: Hashable,
        budget: int | None = None,
        rng: np.random.Generator | None = None,
    ) -> "Plan | None":
        ...


@dataclass(frozen=True)
class Plan:
    """Action sequence together with the states it is expected to visit.

    ``states[i]`` is the state in which ``actions[i]`` is taken, so
    ``len(states) == len(actions) + 1``. A plan may be partial when the
    search budget ran out before the goal was reached.
    """

    actions: Tuple[Hashable, ...]
    states: Tuple[Any, ...]
    complete: bool = True

    def __post_init__(self):
        if len(self.states) != len(self.actions) + 1:
            raise ValueError("Plan needs exactly one more state than actions.")

    def __len__(self) -> int:
        return len(self.actions)

    @classmethod
    def from_actions(cls, domain: Domain, state: Any, actions: Sequence[Hashable], complete: bool = True) -> "Plan":
        """Roll ``actions`` forward from ``state`` through ``domain``."""
        states = [state]
        for act in actions:
            if not domain.available(states[-1], act):
                raise ValueError(f"Action {act!r} is not available along the plan.")
            states.append(domain.transition(states[-1], act))
        return cls(actions=tuple(actions), states=tuple(states), complete=complete)


def simulate_actions(domain: Domain, state: Any, actions: Sequence[Hashable]) -> list:
    """State trajectory produced by ``actions``; unavailable actions leave the state unchanged."""
    trajectory = [state]
    for act in actions:
        current = trajectory[-1]
        if act != NOOP and domain.available(current, act):
            current = domain.transition(current, act)
        trajectory.append(current)
    return trajectory
