"""Estimator interface for single-season occupancy models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

import numpy as np
import pandas as pd

from occupancy_engine.data.detection_history import DetectionData
from occupancy_engine.models.fit import FitResult
from occupancy_engine.models.formula import ModelSpec
from occupancy_engine.utils.link import inv_logit, logit_interval

PredictionKind = Literal["state", "det"]


class OccupancyEstimator(ABC):
    """Capability that fits one model and answers questions about the fit.

    Implementations must be picklable: the orchestrator ships them to worker
    processes alongside the data.
    """

    @abstractmethod
    def fit(self, spec: ModelSpec, data: DetectionData) -> FitResult:
        """Fit ``spec``; raise ``ModelFitError`` on any failure."""

    @abstractmethod
    def linear_predictor(self, fit: FitResult, kind: PredictionKind, data: DetectionData) -> tuple[np.ndarray, np.ndarray]:
        """Per-site logit-scale prediction and its standard error."""

    @abstractmethod
    def simulate(self, fit: FitResult, data: DetectionData, rng: np.random.Generator) -> DetectionData:
        """Draw a synthetic detection history from the fitted model."""

    @abstractmethod
    def fitted(self, fit: FitResult, data: DetectionData) -> np.ndarray:
        """Expected detection value per site and occasion."""

    @abstractmethod
    def residuals(self, fit: FitResult, data: DetectionData) -> np.ndarray:
        """Pearson residuals per site and occasion (NaN where not surveyed)."""

    def predict(self, fit: FitResult, kind: PredictionKind, data: DetectionData) -> pd.DataFrame:
        """Probability-scale predictions with delta-method SE and logit-scale 95% bounds."""
        eta, se_eta = self.linear_predictor(fit, kind, data)
        prob = inv_logit(eta)
        lower, upper = logit_interval(eta, se_eta)
        return pd.DataFrame(
            {
                "Predicted": prob,
                "SE": se_eta * prob * (1.0 - prob),
                "lower": lower,
                "upper": upper,
            },
            index=data.covariates.index,
        )


__all__ = ["OccupancyEstimator", "PredictionKind"]
