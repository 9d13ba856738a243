"""Cumulative detection probability P* over repeated surveys.

``P*(n) = 1 - (1 - p)^n`` is the probability of detecting the species at least
once in ``n`` surveys. Two bootstrap modes are provided:

* ``pstar_bootstrap`` resamples an observed vector of detection probabilities
  (per site or per model) to reflect heterogeneity in the data.
* ``pstar_fixed_levels`` sweeps assumed detection rates, jittering each draw with
  Gaussian noise clipped to [0, 1].
"""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from occupancy_engine.exceptions import ConfigValidationError
from occupancy_engine.utils.logging import get_logger

log = get_logger(__name__, component="sensitivity")

DEFAULT_SURVEYS = tuple(range(1, 16))
DEFAULT_LEVELS = (0.2, 0.4, 0.6, 0.8)
DEFAULT_BOOT = 10_000
DEFAULT_SEED = 42
CI_LEVELS = (2.5, 97.5)


def cumulative_detection(p, surveys: int):
    """``1 - (1 - p)^surveys`` for scalar or array ``p``."""
    return 1.0 - (1.0 - np.asarray(p, dtype=float)) ** surveys


def _validate(surveys: Sequence[int], n_boot: int) -> list[int]:
    surveys = [int(n) for n in surveys]
    if not surveys or min(surveys) < 1:
        raise ConfigValidationError("survey counts must be >= 1")
    if n_boot < 1:
        raise ConfigValidationError("n_boot must be >= 1")
    return surveys


def _summarise(draws: np.ndarray) -> tuple[float, float, float]:
    lower, upper = np.percentile(draws, CI_LEVELS)
    return float(np.mean(draws)), float(lower), float(upper)


def pstar_bootstrap(
    p: Iterable[float],
    surveys: Sequence[int] = DEFAULT_SURVEYS,
    *,
    n_boot: int = DEFAULT_BOOT,
    seed: int = DEFAULT_SEED,
) -> pd.DataFrame:
    """Bootstrap mean of P*(n) with a 95% percentile interval, one row per survey count.

    The same resampled indices are reused for every ``n``, so each bootstrap
    replicate is non-decreasing in the number of surveys.
    """

    probs = np.asarray(list(p), dtype=float)
    probs = probs[np.isfinite(probs)]
    if probs.size == 0:
        raise ConfigValidationError("at least one finite detection probability is required")
    if ((probs < 0) | (probs > 1)).any():
        raise ConfigValidationError("detection probabilities must lie in [0, 1]")
    surveys = _validate(surveys, n_boot)

    rng = np.random.default_rng(seed)
    resampled = probs[rng.integers(0, probs.size, size=(n_boot, probs.size))]
    rows = []
    for n in surveys:
        means = cumulative_detection(resampled, n).mean(axis=1)
        mean, lower, upper = _summarise(means)
        rows.append({"surveys": n, "pstar": mean, "lower": lower, "upper": upper})
    log.info("P* bootstrap complete", extra={"n_boot": n_boot, "n_probabilities": int(probs.size)})
    return pd.DataFrame(rows, columns=["surveys", "pstar", "lower", "upper"])


def pstar_fixed_levels(
    levels: Sequence[float] = DEFAULT_LEVELS,
    surveys: Sequence[int] = DEFAULT_SURVEYS,
    *,
    n_boot: int = DEFAULT_BOOT,
    jitter_sd: float = 0.01,
    seed: int = DEFAULT_SEED,
) -> pd.DataFrame:
    """P*(n) for assumed detection probabilities, each draw jittered by N(0, jitter_sd)."""

    levels = [float(level) for level in levels]
    if not levels or any(not 0.0 <= level <= 1.0 for level in levels):
        raise ConfigValidationError("detection probability levels must lie in [0, 1]")
    if jitter_sd < 0:
        raise ConfigValidationError("jitter_sd must be >= 0")
    surveys = _validate(surveys, n_boot)

    rng = np.random.default_rng(seed)
    rows = []
    for level in levels:
        draws = np.clip(level + rng.normal(0.0, jitter_sd, size=n_boot), 0.0, 1.0)
        for n in surveys:
            mean, lower, upper = _summarise(cumulative_detection(draws, n))
            rows.append(
                {"detection_probability": level, "surveys": n, "pstar": mean, "lower": lower, "upper": upper}
            )
    return pd.DataFrame(rows, columns=["detection_probability", "surveys", "pstar", "lower", "upper"])


def surveys_for_target(table: pd.DataFrame, target: float = 0.95, column: str = "pstar") -> int | None:
    """Smallest survey count whose P* reaches ``target`` in a single-level table."""
    reached = table.loc[table[column] >= target, "surveys"]
    return int(reached.min()) if not reached.empty else None


__all__ = [
    "cumulative_detection",
    "pstar_bootstrap",
    "pstar_fixed_levels",
    "surveys_for_target",
]
