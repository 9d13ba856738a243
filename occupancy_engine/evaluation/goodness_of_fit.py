"""Parametric-bootstrap goodness of fit and overdispersion for the top model."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from occupancy_engine.data.detection_history import DetectionData
from occupancy_engine.exceptions import EvaluationError, ModelFitError
from occupancy_engine.interfaces.estimator import OccupancyEstimator
from occupancy_engine.models.fit import FitResult
from occupancy_engine.utils.logging import get_logger

log = get_logger(__name__, component="evaluation.gof")

DEFAULT_SIMULATIONS = 100
DEFAULT_SEED = 321
CV_RECOMMENDATION = "parametric bootstrap unavailable; use k-fold cross-validation to assess fit"


@dataclass
class GoodnessOfFitResult:
    available: bool
    observed: float = float("nan")
    simulated: np.ndarray = field(default_factory=lambda: np.empty(0))
    p_value: float = float("nan")
    c_hat: float = float("nan")
    failed_simulations: int = 0
    message: str = ""


def freeman_tukey(observed: np.ndarray, fitted: np.ndarray) -> float:
    """``sum((sqrt(y) - sqrt(fitted))^2)`` over surveyed cells."""
    observed = np.asarray(observed, dtype=float)
    fitted = np.asarray(fitted, dtype=float)
    mask = np.isfinite(observed) & np.isfinite(fitted)
    return float(np.sum((np.sqrt(observed[mask]) - np.sqrt(fitted[mask])) ** 2))


def overdispersion(residuals: np.ndarray, n_sites: int, n_params: int) -> float:
    """c-hat: sum of squared Pearson residuals over ``n_sites - n_params``; NaN without df."""
    df = n_sites - n_params
    if df <= 0:
        return float("nan")
    residuals = np.asarray(residuals, dtype=float)
    return float(np.nansum(residuals**2) / df)


def _bootstrap(
    fit: FitResult,
    data: DetectionData,
    estimator: OccupancyEstimator,
    n_sims: int,
    seed: int,
) -> GoodnessOfFitResult:
    observed = freeman_tukey(data.y, estimator.fitted(fit, data))
    if not np.isfinite(observed):
        raise EvaluationError("observed discrepancy is not finite")
    rng = np.random.default_rng(seed)
    simulated = []
    failed = 0
    for sim in range(n_sims):
        synthetic = estimator.simulate(fit, data, rng)
        try:
            refit = estimator.fit(fit.spec, synthetic)
        except ModelFitError as exc:
            failed += 1
            log.debug("Bootstrap refit failed", extra={"simulation": sim, "error": str(exc)})
            continue
        stat = freeman_tukey(synthetic.y, estimator.fitted(refit, synthetic))
        if np.isfinite(stat):
            simulated.append(stat)
        else:
            failed += 1
    if not simulated:
        raise EvaluationError(f"all {n_sims} bootstrap refits failed")
    sims = np.asarray(simulated)
    return GoodnessOfFitResult(
        available=True,
        observed=observed,
        simulated=sims,
        p_value=float(np.mean(sims >= observed)),
        failed_simulations=failed,
    )


def parametric_bootstrap(
    fit: FitResult,
    data: DetectionData,
    estimator: OccupancyEstimator,
    *,
    n_sims: int = DEFAULT_SIMULATIONS,
    seed: int = DEFAULT_SEED,
) -> GoodnessOfFitResult:
    """Freeman-Tukey parametric bootstrap; failures are reported, never raised."""

    try:
        result = _bootstrap(fit, data, estimator, n_sims, seed)
    except (EvaluationError, ArithmeticError, ValueError, np.linalg.LinAlgError) as exc:
        log.warning("Goodness-of-fit bootstrap failed", extra={"model": fit.key, "error": str(exc)})
        result = GoodnessOfFitResult(available=False, message=f"{exc}; {CV_RECOMMENDATION}")
    try:
        result.c_hat = overdispersion(estimator.residuals(fit, data), data.n_sites, fit.n_params)
    except (ArithmeticError, ValueError) as exc:
        log.warning("Overdispersion estimate failed", extra={"model": fit.key, "error": str(exc)})
    if result.available:
        log.info(
            "Goodness-of-fit complete",
            extra={"model": fit.key, "p_value": result.p_value, "c_hat": result.c_hat},
        )
    return result


__all__ = [
    "CV_RECOMMENDATION",
    "GoodnessOfFitResult",
    "freeman_tukey",
    "overdispersion",
    "parametric_bootstrap",
]
