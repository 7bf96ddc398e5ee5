"""Metrics and lightweight plotting for goal-inference runs."""

from __future__ import annotations

from statistics import mean
from typing import Dict, Sequence

import numpy as np

# Constant for missing matplotlib message
_MATPLOTLIB_MISSING_MSG = "matplotlib not installed; skipping plot generation."


def summarize_goal_inference(goal_probs: np.ndarray, true_goal: int, threshold: float = 0.9) -> Dict[str, float]:
    """Aggregate metrics over a ``(n_goals, n_steps)`` goal-probability matrix."""
    if goal_probs.size == 0:
        return {
            "final_true_goal_prob": 0.0,
            "mean_true_goal_prob": 0.0,
            "top1_accuracy": 0.0,
            "steps_to_confidence": 0.0,
        }
    true_row = goal_probs[true_goal]
    top1 = [int(np.argmax(goal_probs[:, t]) == true_goal) for t in range(goal_probs.shape[1])]
    return {
        "final_true_goal_prob": float(true_row[-1]),
        "mean_true_goal_prob": float(mean(true_row.tolist())),
        "top1_accuracy": float(mean(top1)),
        "steps_to_confidence": float(steps_to_confidence(goal_probs, true_goal, threshold)),
    }


def steps_to_confidence(goal_probs: np.ndarray, true_goal: int, threshold: float = 0.9) -> int:
    """Return the first step where the true goal reaches ``threshold``, else the number of steps."""
    for t, p in enumerate(goal_probs[true_goal]):
        if p >= threshold:
            return t
    return goal_probs.shape[1]


def plot_goal_probabilities(
    goal_probs: np.ndarray,
    names: Sequence[str],
    out_path: str,
    title: str,
    colors: Sequence[str] | None = None,
) -> bool:
    """Plot goal probabilities over time and save to file."""
    try:
        import matplotlib.pyplot as plt  # pylint: disable=import-outside-toplevel
    except ModuleNotFoundError:
        print(_MATPLOTLIB_MISSING_MSG)
        return False

    x = list(range(goal_probs.shape[1]))
    plt.figure(figsize=(8, 4.5))
    for idx, name in enumerate(names):
        color = colors[idx] if colors is not None else None
        plt.plot(x, goal_probs[idx], label=name, color=color)
    plt.xlabel("Timestep")
    plt.ylabel("P(goal | observations)")
    plt.ylim(0.0, 1.0)
    plt.title(title)
    plt.legend()
    plt.tight_layout()
    plt.savefig(out_path)
    plt.close()
    return True
