"""Log-space weight arithmetic."""

from __future__ import annotations

from typing import Hashable, Sequence

import numpy as np


def log_sum_exp(log_weights: np.ndarray) -> float:
    """Numerically stable ``log(sum(exp(log_weights)))``; ``-inf`` for an all ``-inf`` vector."""
    lw = np.asarray(log_weights, dtype=float)
    if lw.size == 0:
        return -np.inf
    m = np.max(lw)
    if not np.isfinite(m):
        return float(m)
    return float(m + np.log(np.sum(np.exp(lw - m))))


def normalized_weights(log_weights: np.ndarray) -> np.ndarray:
    """Linear-space weights summing to one."""
    lw = np.asarray(log_weights, dtype=float)
    w = np.exp(lw - np.max(lw))
    return w / np.sum(w)


def effective_sample_size(weights: np.ndarray) -> float:
    """ESS ``(sum w)^2 / sum w^2`` of unnormalized linear weights."""
    w = np.asarray(weights, dtype=float)
    total = np.sum(w)
    if total <= 0.0:
        return 0.0
    return float(total * total / np.sum(w * w))


def log_effective_sample_size(log_weights: np.ndarray) -> float:
    """ESS computed from log weights without leaving log space for the sums."""
    lw = np.asarray(log_weights, dtype=float)
    if not np.isfinite(np.max(lw)):
        return 0.0
    return float(np.exp(2.0 * log_sum_exp(lw) - log_sum_exp(2.0 * lw)))


def goal_marginals(goals: Sequence[Hashable], weights: np.ndarray, support: Sequence[Hashable]) -> np.ndarray:
    """Sum of normalized weight per goal value in ``support``, in that order."""
    w = np.asarray(weights, dtype=float)
    index = {g: i for i, g in enumerate(support)}
    probs = np.zeros(len(support), dtype=float)
    for goal, weight in zip(goals, w):
        if goal not in index:
            raise KeyError(f"Particle goal {goal!r} is not in the goal support.")
        probs[index[goal]] += weight
    return probs
