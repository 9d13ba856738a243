"""k-fold cross-validation of a single model spec."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

import numpy as np

from occupancy_engine.data.detection_history import DetectionData
from occupancy_engine.exceptions import ConfigValidationError, ModelFitError
from occupancy_engine.interfaces.estimator import OccupancyEstimator
from occupancy_engine.models.formula import ModelSpec
from occupancy_engine.utils.logging import get_logger

log = get_logger(__name__, component="evaluation.cv")

DEFAULT_FOLDS = 5
DEFAULT_SEED = 123


@dataclass
class CrossValidationResult:
    spec_key: str
    k: int
    mse: float
    fold_mse: Dict[int, float] = field(default_factory=dict)
    failed_folds: Dict[int, str] = field(default_factory=dict)

    @property
    def n_successful(self) -> int:
        return len(self.fold_mse)


def assign_folds(n_sites: int, k: int = DEFAULT_FOLDS, seed: int = DEFAULT_SEED) -> np.ndarray:
    """Fold label (0..k-1) per site from a seeded permutation."""
    if k < 2:
        raise ConfigValidationError("cross-validation needs at least 2 folds")
    if n_sites < k:
        raise ConfigValidationError(f"cannot split {n_sites} sites into {k} folds")
    rng = np.random.default_rng(seed)
    labels = np.empty(n_sites, dtype=int)
    for fold, rows in enumerate(np.array_split(rng.permutation(n_sites), k)):
        labels[rows] = fold
    return labels


def kfold_cross_validation(
    spec: ModelSpec,
    data: DetectionData,
    estimator: OccupancyEstimator,
    *,
    k: int = DEFAULT_FOLDS,
    seed: int = DEFAULT_SEED,
) -> CrossValidationResult:
    """Refit ``spec`` on k-1 folds and score held-out naive occupancy against predicted psi.

    Failed folds are logged and excluded; ``mse`` is NaN only when every fold fails.
    """

    folds = assign_folds(data.n_sites, k, seed)
    result = CrossValidationResult(spec_key=spec.key, k=k, mse=float("nan"))
    for fold in range(k):
        train = data.subset(np.flatnonzero(folds != fold))
        test = data.subset(np.flatnonzero(folds == fold))
        try:
            fit = estimator.fit(spec, train)
            predicted = estimator.predict(fit, "state", test)["Predicted"].to_numpy()
        except (ModelFitError, np.linalg.LinAlgError, ValueError) as exc:
            result.failed_folds[fold + 1] = str(exc)
            log.warning(f"fold {fold + 1} failed: {exc}", extra={"fold": fold + 1, "model": spec.key})
            continue
        observed = test.naive_occupancy()
        mask = np.isfinite(observed) & np.isfinite(predicted)
        if not mask.any():
            result.failed_folds[fold + 1] = "no surveyed sites in held-out fold"
            log.warning(f"fold {fold + 1} failed: no surveyed sites", extra={"fold": fold + 1})
            continue
        result.fold_mse[fold + 1] = float(np.mean((observed[mask] - predicted[mask]) ** 2))

    if result.fold_mse:
        result.mse = float(np.mean(list(result.fold_mse.values())))
    log.info(
        "Cross-validation complete",
        extra={"model": spec.key, "mse": result.mse, "failed": len(result.failed_folds)},
    )
    return result


__all__ = ["CrossValidationResult", "assign_folds", "kfold_cross_validation"]
