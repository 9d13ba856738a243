from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from scipy import optimize

from occupancy_engine.data.detection_history import DetectionData
from occupancy_engine.estimation.single_season import FitTimeoutError, SingleSeasonEstimator, _build_design
from occupancy_engine.exceptions import SchemaError
from occupancy_engine.models.formula import ModelSpec

TRUE_SPEC = ModelSpec(detection=("b",), occupancy=("a",))


def test_likelihood_matches_hand_computation():
    data = DetectionData(
        y=np.array([[1.0, 0.0], [0.0, 0.0], [np.nan, np.nan]]),
        covariates=pd.DataFrame(index=["s1", "s2", "s3"]),
    )
    design = _build_design(ModelSpec(detection=(), occupancy=()), data)

    nll = SingleSeasonEstimator.negative_log_likelihood(np.zeros(2), design)
    # p = psi = 0.5; the never-surveyed site contributes a factor of one
    assert nll == pytest.approx(-(np.log(0.5 * 0.25) + np.log(0.5 * 0.25 + 0.5)))


def test_gradient_matches_finite_differences(sites):
    design = _build_design(ModelSpec(detection=("a", "b"), occupancy=("a",)), sites)
    theta = np.array([0.2, -0.3, 0.5, 0.1, 0.7])

    numeric = optimize.approx_fprime(theta, SingleSeasonEstimator.negative_log_likelihood, 1e-6, design)
    assert SingleSeasonEstimator.gradient(theta, design) == pytest.approx(numeric, rel=1e-4, abs=1e-3)


def test_fit_recovers_simulated_coefficients(site_factory):
    data = site_factory(n_sites=400, n_occasions=6, seed=21)
    fit = SingleSeasonEstimator().fit(TRUE_SPEC, data)

    estimates = {p.name: p.estimate for p in fit.parameters}
    assert estimates["psi(Int)"] == pytest.approx(0.3, abs=0.5)
    assert estimates["psi(a)"] == pytest.approx(1.0, abs=0.5)
    assert estimates["p(Int)"] == pytest.approx(-0.2, abs=0.5)
    assert estimates["p(b)"] == pytest.approx(0.8, abs=0.5)
    assert all(p.se > 0 for p in fit.parameters)
    assert fit.n_params == 4
    assert fit.n_sites == 400
    assert np.isfinite(fit.aicc)
    assert fit.aicc > -2 * fit.log_likelihood


def test_true_model_beats_misspecified_model(site_factory):
    data = site_factory(n_sites=300, seed=5)
    estimator = SingleSeasonEstimator()

    true_fit = estimator.fit(TRUE_SPEC, data)
    swapped = estimator.fit(ModelSpec(detection=("a",), occupancy=("b",)), data)
    assert true_fit.aicc < swapped.aicc


def test_predict_returns_probabilities_with_bounds(sites):
    estimator = SingleSeasonEstimator()
    fit = estimator.fit(TRUE_SPEC, sites)

    for kind in ("state", "det"):
        table = estimator.predict(fit, kind, sites)
        assert list(table.columns) == ["Predicted", "SE", "lower", "upper"]
        assert len(table) == sites.n_sites
        assert (table["lower"] <= table["Predicted"]).all()
        assert (table["Predicted"] <= table["upper"]).all()
        assert (table["SE"] >= 0).all()


def test_simulate_preserves_missing_surveys(sites):
    estimator = SingleSeasonEstimator()
    fit = estimator.fit(TRUE_SPEC, sites)
    synthetic = estimator.simulate(fit, sites, np.random.default_rng(0))

    missing = np.isnan(sites.y)
    assert np.array_equal(np.isnan(synthetic.y), missing)
    assert set(np.unique(synthetic.y[~missing])) <= {0.0, 1.0}


def test_fitted_and_residuals_follow_survey_pattern(sites):
    estimator = SingleSeasonEstimator()
    fit = estimator.fit(TRUE_SPEC, sites)

    fitted = estimator.fitted(fit, sites)
    residuals = estimator.residuals(fit, sites)
    missing = np.isnan(sites.y)
    assert fitted.shape == sites.y.shape
    assert np.isnan(residuals[missing]).all()
    assert np.isfinite(residuals[~missing]).all()
    assert ((fitted[~missing] > 0) & (fitted[~missing] < 1)).all()


def test_fit_respects_time_budget(sites):
    with pytest.raises(FitTimeoutError):
        SingleSeasonEstimator(max_seconds=1e-9).fit(TRUE_SPEC, sites)


def test_unknown_covariate_is_a_schema_error(sites):
    with pytest.raises(SchemaError):
        SingleSeasonEstimator().fit(ModelSpec(detection=("zzz",), occupancy=("a",)), sites)


def test_hessian_stops_when_budget_runs_out(sites):
    design = _build_design(TRUE_SPEC, sites)
    calls = []

    def _expire():
        calls.append(1)
        if len(calls) > 1:
            raise FitTimeoutError("exceeded fit budget")

    with pytest.raises(FitTimeoutError):
        SingleSeasonEstimator()._hessian(np.zeros(4), design, check=_expire)
    assert len(calls) == 2
