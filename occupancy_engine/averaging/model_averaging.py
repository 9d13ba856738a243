"""Multi-model averaging of coefficients and per-site predictions.

Weights are AICc weights renormalised over the confidence set. Coefficients are
averaged two ways: *full* averaging substitutes zero for models that lack a
parameter, *conditional* averaging uses only the models that contain it. The
standard error of either average is the unconditional estimator

    SE^2 = sum_i w_i * (SE_i^2 + (estimate_i - average)^2)

evaluated with that average's weights.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Literal, Sequence

import numpy as np
import pandas as pd

from occupancy_engine.data.detection_history import DetectionData
from occupancy_engine.exceptions import DimensionMismatchError, ModelFitError, SelectionError
from occupancy_engine.interfaces.estimator import OccupancyEstimator, PredictionKind
from occupancy_engine.selection.model_selector import RankedCandidate
from occupancy_engine.utils.link import inv_logit, logit_interval
from occupancy_engine.utils.logging import get_logger

log = get_logger(__name__, component="averaging")

AverageKind = Literal["full", "conditional"]


@dataclass(frozen=True)
class AveragedEstimate:
    parameter: str
    full_estimate: float
    full_se: float
    conditional_estimate: float
    conditional_se: float
    n_models: int
    importance: float


def akaike_weights(deltas: Sequence[float]) -> np.ndarray:
    """``exp(-0.5 * delta)`` normalised to sum to one."""
    deltas = np.asarray(deltas, dtype=float)
    if deltas.size == 0:
        raise SelectionError("cannot weight an empty confidence set")
    raw = np.exp(-0.5 * (deltas - deltas.min()))
    return raw / raw.sum()


def _parameter_order(confidence_set: Sequence[RankedCandidate]) -> List[str]:
    names: List[str] = []
    for block in ("detection", "occupancy"):
        for cand in confidence_set:
            for param in getattr(cand.fit, block):
                if param.name not in names:
                    names.append(param.name)
    return names


def _unconditional_se(weights: np.ndarray, estimates: np.ndarray, ses: np.ndarray, average: float) -> float:
    return float(np.sqrt(np.sum(weights * (ses**2 + (estimates - average) ** 2))))


def average_parameters(
    confidence_set: Sequence[RankedCandidate], weights: Sequence[float] | None = None
) -> List[AveragedEstimate]:
    """Full and conditional model-averaged estimates for every parameter in the set."""

    w = akaike_weights([c.delta for c in confidence_set]) if weights is None else np.asarray(weights, dtype=float)
    if w.size != len(confidence_set):
        raise DimensionMismatchError(
            f"{len(confidence_set)} models but {w.size} weights supplied for parameter averaging"
        )

    averaged: List[AveragedEstimate] = []
    for name in _parameter_order(confidence_set):
        estimates = np.zeros(len(confidence_set))
        ses = np.zeros(len(confidence_set))
        present = np.zeros(len(confidence_set), dtype=bool)
        for i, cand in enumerate(confidence_set):
            param = cand.fit.parameter(name)
            if param is not None:
                estimates[i], ses[i], present[i] = param.estimate, param.se, True

        full = float(np.sum(w * estimates))
        importance = float(w[present].sum())
        w_cond = w[present] / importance
        conditional = float(np.sum(w_cond * estimates[present]))
        averaged.append(
            AveragedEstimate(
                parameter=name,
                full_estimate=full,
                full_se=_unconditional_se(w, estimates, ses, full),
                conditional_estimate=conditional,
                conditional_se=_unconditional_se(w_cond, estimates[present], ses[present], conditional),
                n_models=int(present.sum()),
                importance=importance,
            )
        )
    return averaged


def averaged_estimates_table(estimates: Sequence[AveragedEstimate], kind: AverageKind = "full") -> pd.DataFrame:
    """``Parameter, Estimate, StdError`` table for one averaging flavour."""
    if kind not in ("full", "conditional"):
        raise ValueError("kind must be 'full' or 'conditional'")
    rows = [
        {
            "Parameter": e.parameter,
            "Estimate": e.full_estimate if kind == "full" else e.conditional_estimate,
            "StdError": e.full_se if kind == "full" else e.conditional_se,
            "Importance": e.importance,
        }
        for e in estimates
    ]
    return pd.DataFrame(rows, columns=["Parameter", "Estimate", "StdError", "Importance"])


def weighted_average(matrix: np.ndarray, weights: Sequence[float]) -> np.ndarray:
    """Row-wise weighted mean of ``matrix`` (rows x models).

    Non-finite cells are excluded and the remaining weights renormalised per row;
    rows with no finite cell yield NaN.
    """

    matrix = np.atleast_2d(np.asarray(matrix, dtype=float))
    weights = np.asarray(weights, dtype=float)
    if matrix.shape[1] != weights.size:
        raise DimensionMismatchError(
            f"prediction matrix has {matrix.shape[1]} columns but {weights.size} weights"
        )
    finite = np.isfinite(matrix)
    w = np.where(finite, weights[None, :], 0.0)
    total = w.sum(axis=1)
    summed = np.where(finite, matrix, 0.0) * w
    with np.errstate(invalid="ignore", divide="ignore"):
        return np.where(total > 0, summed.sum(axis=1) / total, np.nan)


def average_predictions(
    confidence_set: Sequence[RankedCandidate],
    data: DetectionData,
    estimator: OccupancyEstimator,
    kind: PredictionKind,
    weights: Sequence[float] | None = None,
) -> pd.DataFrame:
    """Model-averaged per-site probability with SE and logit-scale 95% bounds.

    ``Predicted`` is the weighted sum of each member's probability. Members whose
    prediction cannot be computed are dropped and the weights renormalised.
    """

    w = akaike_weights([c.delta for c in confidence_set]) if weights is None else np.asarray(weights, dtype=float)
    n_models = len(confidence_set)
    eta = np.full((data.n_sites, n_models), np.nan)
    se_eta = np.full((data.n_sites, n_models), np.nan)
    for j, cand in enumerate(confidence_set):
        try:
            eta[:, j], se_eta[:, j] = estimator.linear_predictor(cand.fit, kind, data)
        except (ModelFitError, np.linalg.LinAlgError, ValueError) as exc:
            log.warning(
                "Prediction failed; excluding model from average",
                extra={"model": cand.key, "prediction": kind, "error": str(exc)},
            )

    # A member is usable for a site only when both its estimate and SE are finite.
    usable = np.isfinite(eta) & np.isfinite(se_eta)
    eta = np.where(usable, eta, np.nan)
    prob = inv_logit(eta)
    se_prob = se_eta * prob * (1.0 - prob)

    predicted = weighted_average(prob, w)
    se_predicted = np.sqrt(weighted_average(se_prob**2 + (prob - predicted[:, None]) ** 2, w))
    eta_bar = weighted_average(eta, w)
    se_eta_bar = np.sqrt(weighted_average(se_eta**2 + (eta - eta_bar[:, None]) ** 2, w))
    lower, upper = logit_interval(eta_bar, se_eta_bar)
    return pd.DataFrame(
        {"Predicted": predicted, "SE": se_predicted, "lower": lower, "upper": upper},
        index=data.covariates.index,
    )


def model_weights(confidence_set: Sequence[RankedCandidate]) -> Dict[str, float]:
    """Mapping of model key to its normalised confidence-set weight."""
    w = akaike_weights([c.delta for c in confidence_set])
    return {cand.key: float(weight) for cand, weight in zip(confidence_set, w)}


__all__ = [
    "AveragedEstimate",
    "akaike_weights",
    "average_parameters",
    "average_predictions",
    "averaged_estimates_table",
    "model_weights",
    "weighted_average",
]
