"""Logit link helpers shared by the estimator, averaging and prediction tables."""

from __future__ import annotations

import numpy as np
from scipy import special

Z_95 = 1.959963984540054


def logit(prob):
    """Log-odds of ``prob``; accepts scalars or arrays."""
    return special.logit(prob)


def inv_logit(value):
    """Inverse logit, ``1 / (1 + exp(-value))``, numerically stable for large |value|."""
    return special.expit(value)


def logit_interval(estimate, se, z: float = Z_95) -> tuple[np.ndarray, np.ndarray]:
    """Probability-scale bounds of a symmetric interval built on the logit scale."""
    estimate = np.asarray(estimate, dtype=float)
    se = np.asarray(se, dtype=float)
    return inv_logit(estimate - z * se), inv_logit(estimate + z * se)


__all__ = ["Z_95", "inv_logit", "logit", "logit_interval"]
