"""Ancestor sampling schemes.

Each scheme draws ``n`` ancestor indices whose expected counts are ``n`` times
the normalized weights.
"""

from __future__ import annotations

from typing import Callable, Dict

import numpy as np

from world.errors import ModelConfigurationError


def multinomial_resample(rng: np.random.Generator, weights: np.ndarray, n: int) -> np.ndarray:
    return rng.choice(len(weights), size=n, replace=True, p=weights)


def stratified_resample(rng: np.random.Generator, weights: np.ndarray, n: int) -> np.ndarray:
    """One uniform draw per stratum ``[i/n, (i+1)/n)``."""
    positions = (np.arange(n) + rng.random(n)) / n
    cumulative = np.cumsum(weights)
    cumulative[-1] = 1.0
    return np.searchsorted(cumulative, positions, side="right")


def residual_resample(rng: np.random.Generator, weights: np.ndarray, n: int) -> np.ndarray:
    """Deterministic copies of ``floor(n w)`` plus multinomial draws on the residuals."""
    counts = np.floor(n * weights).astype(int)
    ancestors = np.repeat(np.arange(len(weights)), counts)
    n_rest = n - int(counts.sum())
    if n_rest > 0:
        residual = n * weights - counts
        residual = residual / residual.sum()
        extra = rng.choice(len(weights), size=n_rest, replace=True, p=residual)
        ancestors = np.concatenate([ancestors, extra])
    return np.sort(ancestors)


RESAMPLERS: Dict[str, Callable[[np.random.Generator, np.ndarray, int], np.ndarray]] = {
    "multinomial": multinomial_resample,
    "stratified": stratified_resample,
    "residual": residual_resample,
}


def get_resampler(method: str):
    try:
        return RESAMPLERS[method]
    except KeyError as exc:
        raise ModelConfigurationError(
            f"Unknown resampling method {method!r}; expected one of {sorted(RESAMPLERS)}."
        ) from exc
