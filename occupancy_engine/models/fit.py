"""Fitted model records shared by the orchestrator, selector and averager."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from occupancy_engine.models.formula import ModelSpec


def detection_name(covariate: str) -> str:
    return f"p({covariate})"


def occupancy_name(covariate: str) -> str:
    return f"psi({covariate})"


INTERCEPT = "Int"


@dataclass(frozen=True)
class ParameterEstimate:
    """Logit-scale coefficient with its standard error."""

    name: str
    estimate: float
    se: float


@dataclass(frozen=True)
class FitResult:
    spec: ModelSpec
    detection: Tuple[ParameterEstimate, ...]
    occupancy: Tuple[ParameterEstimate, ...]
    log_likelihood: float
    n_params: int
    n_sites: int
    aicc: float
    vcov: np.ndarray = field(repr=False, compare=False)
    converged: bool = True
    message: Optional[str] = None

    @property
    def key(self) -> str:
        return self.spec.key

    @property
    def parameters(self) -> Tuple[ParameterEstimate, ...]:
        return self.detection + self.occupancy

    @property
    def has_criterion(self) -> bool:
        return self.aicc is not None and math.isfinite(self.aicc)

    def parameter(self, name: str) -> Optional[ParameterEstimate]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def coefficients(self, kind: str) -> np.ndarray:
        params = self.detection if kind == "det" else self.occupancy
        return np.array([p.estimate for p in params], dtype=float)

    def coefficient_vcov(self, kind: str) -> np.ndarray:
        """Block of ``vcov`` for one linear predictor (detection block comes first)."""
        n_det = len(self.detection)
        if kind == "det":
            return self.vcov[:n_det, :n_det]
        return self.vcov[n_det:, n_det:]


@dataclass(frozen=True)
class FitOutcome:
    """Result-or-failure value returned from a single fit attempt."""

    key: str
    result: Optional[FitResult] = None
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.result is not None and self.result.has_criterion


__all__ = [
    "FitOutcome",
    "FitResult",
    "INTERCEPT",
    "ParameterEstimate",
    "detection_name",
    "occupancy_name",
]
