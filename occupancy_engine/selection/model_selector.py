"""Criterion-based ranking and confidence-set selection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from occupancy_engine.exceptions import SelectionError
from occupancy_engine.models.fit import FitResult
from occupancy_engine.utils.logging import get_logger

log = get_logger(__name__, component="selection")

DELTA_THRESHOLD = 2.0
MIN_CONFIDENCE_SET = 2


@dataclass(frozen=True)
class RankedCandidate:
    fit: FitResult
    rank: int
    delta: float

    @property
    def key(self) -> str:
        return self.fit.key


@dataclass(frozen=True)
class ModelSelection:
    ranked: Tuple[RankedCandidate, ...]
    confidence_set: Tuple[RankedCandidate, ...]

    @property
    def top(self) -> RankedCandidate:
        return self.ranked[0]


def rank_models(results: Mapping[str, FitResult]) -> list[RankedCandidate]:
    """Rank fits by AICc ascending; ties keep the mapping's (enumeration) order."""

    usable = [fit for fit in results.values() if fit.has_criterion]
    if not usable:
        raise SelectionError("no candidate models converged")
    ordered = sorted(usable, key=lambda fit: fit.aicc)
    best = ordered[0].aicc
    return [RankedCandidate(fit=fit, rank=i + 1, delta=fit.aicc - best) for i, fit in enumerate(ordered)]


def select_confidence_set(
    ranked: Sequence[RankedCandidate], threshold: float = DELTA_THRESHOLD
) -> list[RankedCandidate]:
    """Candidates with ``delta < threshold``; at least two are required for averaging."""

    confidence = [c for c in ranked if c.delta < threshold]
    if len(confidence) < MIN_CONFIDENCE_SET:
        raise SelectionError(
            f"confidence set has {len(confidence)} model(s) within delta < {threshold}; "
            f"model averaging requires at least {MIN_CONFIDENCE_SET}"
        )
    return confidence


def select_models(results: Mapping[str, FitResult], threshold: float = DELTA_THRESHOLD) -> ModelSelection:
    ranked = rank_models(results)
    confidence = select_confidence_set(ranked, threshold)
    log.info(
        "Model selection complete",
        extra={"n_models": len(ranked), "confidence_set": len(confidence), "top": ranked[0].key},
    )
    return ModelSelection(ranked=tuple(ranked), confidence_set=tuple(confidence))


def selection_table(ranked: Sequence[RankedCandidate]) -> pd.DataFrame:
    """Model table with AICc weights computed over all ranked candidates."""

    deltas = np.array([c.delta for c in ranked], dtype=float)
    raw = np.exp(-0.5 * deltas)
    weights = raw / raw.sum() if raw.size else raw
    rows: List[dict] = []
    for cand, weight, cum in zip(ranked, weights, np.cumsum(weights)):
        rows.append(
            {
                "rank": cand.rank,
                "model": cand.key,
                "detection": cand.fit.spec.detection_formula,
                "occupancy": cand.fit.spec.occupancy_formula,
                "k": cand.fit.n_params,
                "logLik": cand.fit.log_likelihood,
                "AICc": cand.fit.aicc,
                "delta": cand.delta,
                "weight": float(weight),
                "cum_weight": float(cum),
            }
        )
    return pd.DataFrame(rows)


__all__ = [
    "DELTA_THRESHOLD",
    "ModelSelection",
    "RankedCandidate",
    "rank_models",
    "select_confidence_set",
    "select_models",
    "selection_table",
]
