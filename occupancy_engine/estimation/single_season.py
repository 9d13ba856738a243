"""Maximum-likelihood single-season occupancy estimator.

Implements the MacKenzie et al. (2002) likelihood with logit-linear occupancy
(``psi``) and detection (``p``) predictors built from site covariates::

    L_i = psi_i * prod_j p_i^y_ij (1 - p_i)^(1 - y_ij) + (1 - psi_i) * I(sum_j y_ij == 0)

Missing surveys drop out of the product. The negative log-likelihood and its
analytic gradient are minimised with BFGS; standard errors come from the inverse
of a central-difference Hessian of that gradient.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

import numpy as np
from scipy import optimize, special

from occupancy_engine.data.detection_history import DetectionData
from occupancy_engine.exceptions import ModelFitError
from occupancy_engine.interfaces.estimator import OccupancyEstimator, PredictionKind
from occupancy_engine.models.fit import (
    INTERCEPT,
    FitResult,
    ParameterEstimate,
    detection_name,
    occupancy_name,
)
from occupancy_engine.models.formula import ModelSpec
from occupancy_engine.selection.information_criteria import aicc as calc_aicc


class FitTimeoutError(ModelFitError):
    """Raised when an optimisation exceeds its wall-clock budget."""


@dataclass(frozen=True)
class _Design:
    W: np.ndarray  # detection design (sites x n_det)
    X: np.ndarray  # occupancy design (sites x n_occ)
    detections: np.ndarray  # detections per site
    surveys: np.ndarray  # observed surveys per site


def _build_design(spec: ModelSpec, data: DetectionData) -> _Design:
    observed = ~np.isnan(data.y)
    return _Design(
        W=data.design_matrix(spec.detection),
        X=data.design_matrix(spec.occupancy),
        detections=np.nansum(data.y, axis=1),
        surveys=observed.sum(axis=1).astype(float),
    )


def _loglik_terms(theta: np.ndarray, design: _Design) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Per-site log-likelihood plus the pieces the gradient needs."""
    n_det = design.W.shape[1]
    a = design.W @ theta[:n_det]
    b = design.X @ theta[n_det:]
    d, n = design.detections, design.surveys

    ll_det = d * special.log_expit(a) + (n - d) * special.log_expit(-a)
    log_occupied = special.log_expit(b) + ll_det
    log_empty = np.where(d > 0, -np.inf, special.log_expit(-b))
    site_ll = np.logaddexp(log_occupied, log_empty)
    posterior = np.exp(log_occupied - site_ll)
    return site_ll, posterior, special.expit(a), special.expit(b)


class SingleSeasonEstimator(OccupancyEstimator):
    name = "single_season"

    def __init__(
        self,
        *,
        max_seconds: float = 60.0,
        maxiter: int = 500,
        gtol: float = 1e-6,
        accept_gradient: float = 1e-3,
        hessian_step: float = 1e-5,
    ) -> None:
        self.max_seconds = max_seconds
        self.maxiter = maxiter
        self.gtol = gtol
        self.accept_gradient = accept_gradient
        self.hessian_step = hessian_step

    # -- likelihood -------------------------------------------------------

    @staticmethod
    def negative_log_likelihood(theta: np.ndarray, design: _Design) -> float:
        site_ll, _, _, _ = _loglik_terms(theta, design)
        return float(-site_ll.sum())

    @staticmethod
    def gradient(theta: np.ndarray, design: _Design) -> np.ndarray:
        _, posterior, p, psi = _loglik_terms(theta, design)
        d, n = design.detections, design.surveys
        grad_a = posterior * (d - n * p)
        grad_b = posterior - psi
        return -np.concatenate([design.W.T @ grad_a, design.X.T @ grad_b])

    def _hessian(self, theta: np.ndarray, design: _Design, check: Callable[[], None] | None = None) -> np.ndarray:
        """Central differences of the analytic gradient; ``check`` runs before each column."""
        k = theta.size
        h = self.hessian_step
        hess = np.empty((k, k))
        for j in range(k):
            if check is not None:
                check()
            step = np.zeros(k)
            step[j] = h
            hess[:, j] = (self.gradient(theta + step, design) - self.gradient(theta - step, design)) / (2 * h)
        return 0.5 * (hess + hess.T)

    # -- estimator capability ----------------------------------------------

    def fit(self, spec: ModelSpec, data: DetectionData) -> FitResult:
        design = _build_design(spec, data)
        k = design.W.shape[1] + design.X.shape[1]
        if not np.isfinite(design.W).all() or not np.isfinite(design.X).all():
            raise ModelFitError(f"{spec.key}: non-finite covariate values")

        deadline = time.perf_counter() + self.max_seconds

        def _check_deadline(_xk: np.ndarray | None = None) -> None:
            if time.perf_counter() > deadline:
                raise FitTimeoutError(f"{spec.key}: exceeded {self.max_seconds:.1f}s fit budget")

        try:
            with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
                res = optimize.minimize(
                    self.negative_log_likelihood,
                    np.zeros(k),
                    args=(design,),
                    jac=self.gradient,
                    method="BFGS",
                    callback=_check_deadline,
                    options={"maxiter": self.maxiter, "gtol": self.gtol},
                )
        except ModelFitError:
            raise
        except (ArithmeticError, ValueError, np.linalg.LinAlgError) as exc:
            raise ModelFitError(f"{spec.key}: optimisation failed: {exc}") from exc

        if not np.isfinite(res.fun) or not np.isfinite(res.x).all():
            raise ModelFitError(f"{spec.key}: non-finite likelihood")
        grad_norm = float(np.max(np.abs(self.gradient(res.x, design))))
        if not res.success and grad_norm > self.accept_gradient:
            raise ModelFitError(f"{spec.key}: did not converge ({res.message})")

        try:
            vcov = np.linalg.inv(self._hessian(res.x, design, check=_check_deadline))
        except np.linalg.LinAlgError as exc:
            raise ModelFitError(f"{spec.key}: singular Hessian") from exc
        variances = np.diag(vcov)
        if not np.isfinite(vcov).all() or (variances <= 0).any():
            raise ModelFitError(f"{spec.key}: Hessian is not positive definite")

        se = np.sqrt(variances)
        n_det = design.W.shape[1]
        det_names = [detection_name(INTERCEPT)] + [detection_name(c) for c in spec.detection]
        occ_names = [occupancy_name(INTERCEPT)] + [occupancy_name(c) for c in spec.occupancy]
        log_likelihood = -float(res.fun)
        return FitResult(
            spec=spec,
            detection=tuple(
                ParameterEstimate(name, float(res.x[i]), float(se[i])) for i, name in enumerate(det_names)
            ),
            occupancy=tuple(
                ParameterEstimate(name, float(res.x[n_det + i]), float(se[n_det + i]))
                for i, name in enumerate(occ_names)
            ),
            log_likelihood=log_likelihood,
            n_params=k,
            n_sites=data.n_sites,
            aicc=calc_aicc(log_likelihood, k, data.n_sites),
            vcov=vcov,
            converged=bool(res.success),
            message=str(res.message),
        )

    def linear_predictor(self, fit: FitResult, kind: PredictionKind, data: DetectionData) -> tuple[np.ndarray, np.ndarray]:
        names = fit.spec.detection if kind == "det" else fit.spec.occupancy
        design = data.design_matrix(names)
        eta = design @ fit.coefficients(kind)
        var = np.einsum("ij,jk,ik->i", design, fit.coefficient_vcov(kind), design)
        return eta, np.sqrt(np.clip(var, 0.0, None))

    def _probabilities(self, fit: FitResult, data: DetectionData) -> tuple[np.ndarray, np.ndarray]:
        psi = special.expit(data.design_matrix(fit.spec.occupancy) @ fit.coefficients("state"))
        p = special.expit(data.design_matrix(fit.spec.detection) @ fit.coefficients("det"))
        return psi, p

    def simulate(self, fit: FitResult, data: DetectionData, rng: np.random.Generator) -> DetectionData:
        psi, p = self._probabilities(fit, data)
        occupied = rng.random(data.n_sites) < psi
        detected = rng.random(data.y.shape) < p[:, None]
        y = (detected & occupied[:, None]).astype(float)
        y[np.isnan(data.y)] = np.nan
        return data.with_detections(y)

    def fitted(self, fit: FitResult, data: DetectionData) -> np.ndarray:
        psi, p = self._probabilities(fit, data)
        expected = np.broadcast_to((psi * p)[:, None], data.y.shape).copy()
        expected[np.isnan(data.y)] = np.nan
        return expected

    def residuals(self, fit: FitResult, data: DetectionData) -> np.ndarray:
        expected = self.fitted(fit, data)
        with np.errstate(divide="ignore", invalid="ignore"):
            return (data.y - expected) / np.sqrt(expected * (1.0 - expected))


__all__ = ["FitTimeoutError", "SingleSeasonEstimator"]
