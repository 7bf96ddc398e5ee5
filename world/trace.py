"""Persistent execution traces.

A trace is an append-only chain of :class:`TraceStep` records, one per
timestep, each pointing at its predecessor. Extending a trace builds a new
head node and leaves the old trace untouched, so resampled particles can
share an ancestor's history without copying it.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterator, List, Mapping

if TYPE_CHECKING:
    from agent.config import AgentState


@dataclass(frozen=True)
class WorldState:
    """Agent, environment and observation state at one timestep."""

    agent: "AgentState"
    env: Any
    obs: Mapping[str, Any]


@dataclass(frozen=True)
class TraceStep:
    """One timestep of a trace.

    ``observed`` holds the values the observation node was constrained to
    (empty when it was sampled freely) and ``log_likelihood`` their score.
    """

    t: int
    state: WorldState
    observed: Mapping[str, Any]
    log_likelihood: float
    cum_log_likelihood: float
    parent: "TraceStep | None" = None


class Trace:
    """Realized latent trajectory of one hypothesis, from t=0 to its horizon."""

    __slots__ = ("_head",)

    def __init__(self, head: TraceStep):
        self._head = head

    @classmethod
    def start(cls, state: WorldState, observed: Mapping[str, Any] | None = None, log_likelihood: float = 0.0) -> "Trace":
        observed = MappingProxyType(dict(observed or {}))
        head = TraceStep(
            t=0,
            state=state,
            observed=observed,
            log_likelihood=log_likelihood,
            cum_log_likelihood=log_likelihood,
        )
        return cls(head)

    def extend(self, state: WorldState, observed: Mapping[str, Any] | None = None, log_likelihood: float = 0.0) -> "Trace":
        """New trace with one more step; ``self`` is unchanged."""
        head = TraceStep(
            t=self._head.t + 1,
            state=state,
            observed=MappingProxyType(dict(observed or {})),
            log_likelihood=log_likelihood,
            cum_log_likelihood=self._head.cum_log_likelihood + log_likelihood,
            parent=self._head,
        )
        return Trace(head)

    @property
    def head(self) -> TraceStep:
        return self._head

    @property
    def horizon(self) -> int:
        return self._head.t

    def __len__(self) -> int:
        return self._head.t + 1

    @property
    def last(self) -> WorldState:
        return self._head.state

    @property
    def goal(self) -> Any:
        """Current goal of the agent."""
        return self._head.state.agent.goal

    @property
    def log_likelihood(self) -> float:
        """Summed log-likelihood of all constrained observations."""
        return self._head.cum_log_likelihood

    def step(self, t: int) -> TraceStep:
        if not 0 <= t <= self._head.t:
            raise IndexError(f"t={t} outside trace horizon {self._head.t}.")
        node = self._head
        while node.t != t:
            node = node.parent
        return node

    def __getitem__(self, t: int) -> WorldState:
        return self.step(t).state

    def truncate(self, t: int) -> "Trace":
        """Prefix ending at ``t``, sharing its steps with this trace."""
        return Trace(self.step(t))

    def steps(self) -> List[TraceStep]:
        out = []
        node = self._head
        while node is not None:
            out.append(node)
            node = node.parent
        out.reverse()
        return out

    def states(self) -> List[WorldState]:
        return [s.state for s in self.steps()]

    def __iter__(self) -> Iterator[WorldState]:
        return iter(self.states())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Trace) and other._head is self._head

    def __hash__(self) -> int:
        return id(self._head)

    def __repr__(self) -> str:
        return f"Trace(horizon={self.horizon}, goal={self.goal!r}, log_likelihood={self.log_likelihood:.3f})"
