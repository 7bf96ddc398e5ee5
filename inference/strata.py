"""Initialization strata.

A stratum is a mapping from latent address to a forced value, e.g.
``{"goal": HasItem("gem2")}``. Stratified initialization splits the particle
population across strata so no discrete hypothesis starts out empty.
"""

from __future__ import annotations

import itertools
from typing import Any, Dict, Hashable, Iterable, List, Sequence, Tuple

import numpy as np

from world.errors import StratificationError
from world.model import GOAL_ADDR


def choice_product(*entries: Tuple[str, Iterable[Any]]) -> List[Dict[str, Any]]:
    """Cartesian product of ``(address, values)`` pairs as a list of strata."""
    if not entries:
        return []
    addrs = [addr for addr, _ in entries]
    value_lists = [list(values) for _, values in entries]
    return [dict(zip(addrs, combo)) for combo in itertools.product(*value_lists)]


def goal_strata(goals: Sequence[Hashable]) -> List[Dict[str, Any]]:
    """One stratum per goal hypothesis."""
    return choice_product((GOAL_ADDR, goals))


def allocate_strata(n_particles: int, n_strata: int, strict: bool = False) -> np.ndarray:
    """Particles per stratum, as even as possible.

    The first ``n_particles % n_strata`` strata get one extra particle. With
    ``strict`` the population must split exactly.
    """
    if n_particles <= 0:
        raise StratificationError("Population size must be positive.")
    if n_strata <= 0:
        raise StratificationError("At least one stratum is required.")
    if n_strata > n_particles:
        raise StratificationError(
            f"Cannot cover {n_strata} strata with only {n_particles} particles."
        )
    if strict and n_particles % n_strata != 0:
        raise StratificationError(
            f"{n_strata} strata do not evenly divide {n_particles} particles."
        )
    base, extra = divmod(n_particles, n_strata)
    counts = np.full(n_strata, base, dtype=int)
    counts[:extra] += 1
    return counts
