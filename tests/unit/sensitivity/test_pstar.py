from __future__ import annotations

import numpy as np
import pytest

from occupancy_engine.exceptions import ConfigValidationError
from occupancy_engine.sensitivity.pstar import (
    cumulative_detection,
    pstar_bootstrap,
    pstar_fixed_levels,
    surveys_for_target,
)


def test_equal_probabilities_give_closed_form():
    table = pstar_bootstrap([0.3, 0.3, 0.3], surveys=[5], n_boot=500, seed=1)

    row = table.iloc[0]
    assert row["surveys"] == 5
    assert row["pstar"] == pytest.approx(1 - 0.7**5, abs=1e-12)
    assert row["pstar"] == pytest.approx(0.8319, abs=1e-4)
    assert row["lower"] == pytest.approx(row["upper"])


def test_pstar_is_non_decreasing_in_surveys():
    p = np.random.default_rng(3).uniform(0.05, 0.6, size=40)
    table = pstar_bootstrap(p, surveys=range(1, 16), n_boot=2000, seed=9)

    assert list(table["surveys"]) == list(range(1, 16))
    for column in ("pstar", "lower", "upper"):
        assert np.all(np.diff(table[column].to_numpy()) >= 0)
    assert (table["lower"] <= table["pstar"]).all()
    assert (table["pstar"] <= table["upper"]).all()


def test_pstar_approaches_one_with_many_surveys():
    table = pstar_bootstrap([0.05, 0.1, 0.4], surveys=[1, 50, 400], n_boot=300, seed=2)
    assert table["pstar"].iloc[-1] == pytest.approx(1.0, abs=1e-8)


def test_bootstrap_is_reproducible_with_seed():
    p = [0.1, 0.25, 0.5, 0.7]
    first = pstar_bootstrap(p, n_boot=1000, seed=5)
    second = pstar_bootstrap(p, n_boot=1000, seed=5)
    assert first.equals(second)


def test_fixed_levels_without_jitter_match_formula():
    table = pstar_fixed_levels([0.2, 0.6], surveys=[1, 3], n_boot=50, jitter_sd=0.0, seed=0)

    assert len(table) == 4
    expected = [cumulative_detection(0.2, 1), cumulative_detection(0.2, 3), cumulative_detection(0.6, 1), cumulative_detection(0.6, 3)]
    assert table["pstar"].to_numpy() == pytest.approx(expected)
    assert list(table["detection_probability"]) == [0.2, 0.2, 0.6, 0.6]


def test_fixed_levels_jitter_is_clipped_to_unit_interval():
    table = pstar_fixed_levels([0.0, 1.0], surveys=[1, 2], n_boot=2000, jitter_sd=0.01, seed=4)

    assert (table["lower"] >= 0.0).all()
    assert (table["upper"] <= 1.0).all()
    top = table[table["detection_probability"] == 1.0]
    assert (top["pstar"] > 0.99).all()


def test_fixed_levels_default_grid():
    table = pstar_fixed_levels(n_boot=200, seed=1)
    assert sorted(table["detection_probability"].unique()) == [0.2, 0.4, 0.6, 0.8]
    assert len(table) == 4 * 15


@pytest.mark.parametrize(
    "kwargs",
    [
        {"p": [], "surveys": [1]},
        {"p": [0.2, 1.5], "surveys": [1]},
        {"p": [0.2], "surveys": [0, 1]},
        {"p": [0.2], "surveys": [1], "n_boot": 0},
    ],
)
def test_invalid_inputs_raise(kwargs):
    p = kwargs.pop("p")
    with pytest.raises(ConfigValidationError):
        pstar_bootstrap(p, **kwargs)


def test_surveys_for_target():
    table = pstar_fixed_levels([0.3], surveys=range(1, 16), n_boot=100, jitter_sd=0.0)
    # 1 - 0.7^9 = 0.9596 is the first value above 0.95
    assert surveys_for_target(table, 0.95) == 9
    assert surveys_for_target(table, 0.9999) is None
