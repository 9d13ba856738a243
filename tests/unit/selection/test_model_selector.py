from __future__ import annotations

import math

import numpy as np
import pytest

from occupancy_engine.exceptions import SelectionError
from occupancy_engine.models.fit import FitResult, ParameterEstimate
from occupancy_engine.models.formula import ModelSpec
from occupancy_engine.selection.information_criteria import aic, aicc, bic
from occupancy_engine.selection.model_selector import (
    rank_models,
    select_confidence_set,
    select_models,
    selection_table,
)


def _fit(det: tuple[str, ...], occ: tuple[str, ...], criterion: float) -> FitResult:
    spec = ModelSpec(detection=det, occupancy=occ)
    k = spec.n_params
    return FitResult(
        spec=spec,
        detection=(ParameterEstimate("p(Int)", 0.0, 0.1),),
        occupancy=(ParameterEstimate("psi(Int)", 0.0, 0.1),),
        log_likelihood=-criterion / 2,
        n_params=k,
        n_sites=100,
        aicc=criterion,
        vcov=np.eye(2) * 0.01,
    )


def _mapping(*fits: FitResult) -> dict[str, FitResult]:
    return {fit.key: fit for fit in fits}


def test_empty_results_fail_selection():
    with pytest.raises(SelectionError, match="no candidate models converged"):
        select_models({})


def test_undefined_criteria_are_not_candidates():
    with pytest.raises(SelectionError):
        rank_models(_mapping(_fit(("a",), ("a",), math.inf)))


def test_single_member_confidence_set_is_fatal():
    results = _mapping(_fit(("a",), ("a",), 100.0), _fit(("b",), ("a",), 105.0))
    with pytest.raises(SelectionError, match="at least 2"):
        select_models(results)


def test_two_close_models_form_confidence_set():
    results = _mapping(
        _fit(("a",), ("a",), 101.5),
        _fit(("b",), ("a",), 100.0),
        _fit(("a", "b"), ("a",), 109.0),
    )
    selection = select_models(results)

    assert [c.key for c in selection.confidence_set] == ["p(b) psi(a)", "p(a) psi(a)"]
    assert selection.top.rank == 1
    assert selection.top.delta == 0.0
    assert selection.confidence_set[1].delta == pytest.approx(1.5)


def test_ties_keep_enumeration_order():
    results = _mapping(
        _fit(("b",), ("b",), 50.0),
        _fit(("a",), ("b",), 50.0),
        _fit(("a",), ("a",), 50.0),
    )
    ranked = rank_models(results)

    assert [c.key for c in ranked] == ["p(b) psi(b)", "p(a) psi(b)", "p(a) psi(a)"]
    assert [c.rank for c in ranked] == [1, 2, 3]


def test_delta_threshold_is_strict():
    ranked = rank_models(_mapping(_fit(("a",), ("a",), 10.0), _fit(("b",), ("a",), 12.0)))
    with pytest.raises(SelectionError):
        select_confidence_set(ranked, threshold=2.0)
    assert len(select_confidence_set(ranked, threshold=2.5)) == 2


def test_selection_table_weights_sum_to_one():
    ranked = rank_models(
        _mapping(_fit(("a",), ("a",), 10.0), _fit(("b",), ("a",), 11.0), _fit(("a", "b"), ("b",), 20.0))
    )
    table = selection_table(ranked)

    assert list(table["rank"]) == [1, 2, 3]
    assert table["weight"].sum() == pytest.approx(1.0, abs=1e-12)
    assert table["cum_weight"].iloc[-1] == pytest.approx(1.0)
    assert table["weight"].is_monotonic_decreasing


def test_information_criteria():
    assert aic(-10.0, 3) == pytest.approx(26.0)
    assert aicc(-10.0, 3, 20) == pytest.approx(26.0 + 24.0 / 16.0)
    assert math.isinf(aicc(-10.0, 3, 4))
    assert bic(-10.0, 3, 20) == pytest.approx(3 * np.log(20) + 20.0)
