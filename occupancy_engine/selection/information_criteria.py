"""Information criteria helpers (AIC/AICc/BIC)."""

from __future__ import annotations

import numpy as np


def aic(log_likelihood: float, k: int) -> float:
    return float(2 * k - 2 * log_likelihood)


def aicc(log_likelihood: float, k: int, n: int) -> float:
    """Small-sample AIC; infinite when ``n - k - 1 <= 0``."""
    denom = n - k - 1
    if denom <= 0:
        return float("inf")
    return aic(log_likelihood, k) + (2 * k * (k + 1)) / denom


def bic(log_likelihood: float, k: int, n: int) -> float:
    return float(k * np.log(max(n, 1)) - 2 * log_likelihood)


__all__ = ["aic", "aicc", "bic"]
