"""Budgeted A* planner with optional search noise.

With a finite budget the search stops after that many node expansions and
returns a partial plan towards the most promising expanded node, so small
budgets produce short-sighted, possibly suboptimal behaviour. ``search_noise``
perturbs node priorities with Gumbel noise, which makes node selection
approximately softmax in the f-value.
"""

from __future__ import annotations

import heapq
import itertools
import math
from typing import Any, Dict, Hashable, Tuple

import numpy as np

from env.domain import Plan


class AStarPlanner:
    """A* search over any domain exposing ``heuristic`` and ``goal_satisfied``."""

    def __init__(self, domain: Any, search_noise: float = 0.0, max_nodes: int | None = None):
        if search_noise < 0.0:
            raise ValueError("search_noise must be non-negative.")
        if max_nodes is not None and max_nodes <= 0:
            raise ValueError("max_nodes must be positive.")
        self.domain = domain
        self.search_noise = float(search_noise)
        self.max_nodes = max_nodes

    def _priority(self, g: float, h: float, rng: np.random.Generator | None) -> float:
        f = g + h
        if self.search_noise > 0.0 and rng is not None:
            f -= self.search_noise * float(rng.gumbel())
        return f

    def plan(
        self,
        state: Any,
        goal: Hashable,
        budget: int | None = None,
        rng: np.random.Generator | None = None,
    ) -> Plan | None:
        """Search for a plan from ``state`` to ``goal``.

        Returns ``None`` when the reachable state space holds no goal state.
        """
        domain = self.domain
        if domain.goal_satisfied(state, goal):
            return Plan(actions=(), states=(state,), complete=True)

        limit = budget if budget is not None else self.max_nodes
        if self.max_nodes is not None and limit is not None:
            limit = min(limit, self.max_nodes)

        counter = itertools.count()
        h0 = domain.heuristic(state, goal)
        if math.isinf(h0):
            return None
        frontier = [(self._priority(0.0, h0, rng), next(counter), state)]
        g_cost: Dict[Any, float] = {state: 0.0}
        parents: Dict[Any, Tuple[Any, Hashable] | None] = {state: None}
        closed = set()
        best_state, best_h = state, h0
        expansions = 0

        while frontier:
            if limit is not None and expansions >= limit:
                return self._reconstruct(best_state, parents, complete=False)
            _, _, node = heapq.heappop(frontier)
            if node in closed:
                continue
            if domain.goal_satisfied(node, goal):
                return self._reconstruct(node, parents, complete=True)
            closed.add(node)
            expansions += 1

            h_node = domain.heuristic(node, goal)
            if h_node < best_h:
                best_state, best_h = node, h_node

            for action in domain.available_actions(node):
                child = domain.transition(node, action)
                g_child = g_cost[node] + 1.0
                if child in closed or g_child >= g_cost.get(child, math.inf):
                    continue
                h_child = domain.heuristic(child, goal)
                if math.isinf(h_child):
                    continue
                g_cost[child] = g_child
                parents[child] = (node, action)
                heapq.heappush(frontier, (self._priority(g_child, h_child, rng), next(counter), child))

        return None

    @staticmethod
    def _reconstruct(node: Any, parents: Dict[Any, Tuple[Any, Hashable] | None], complete: bool) -> Plan:
        actions = []
        states = [node]
        while parents[node] is not None:
            node, action = parents[node]
            actions.append(action)
            states.append(node)
        return Plan(actions=tuple(reversed(actions)), states=tuple(reversed(states)), complete=complete)
