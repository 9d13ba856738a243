from __future__ import annotations

import numpy as np
import pytest

from occupancy_engine.estimation.single_season import SingleSeasonEstimator
from occupancy_engine.evaluation.cross_validation import assign_folds, kfold_cross_validation
from occupancy_engine.exceptions import ConfigValidationError, ModelFitError
from occupancy_engine.models.formula import ModelSpec

SPEC = ModelSpec(detection=("b",), occupancy=("a",))


class _FailingOnCalls(SingleSeasonEstimator):
    def __init__(self, failing_calls):
        super().__init__()
        self.failing_calls = set(failing_calls)
        self.n_calls = 0

    def fit(self, spec, data):
        self.n_calls += 1
        if self.n_calls in self.failing_calls:
            raise ModelFitError("did not converge")
        return super().fit(spec, data)


def test_fold_assignment_is_seeded_and_balanced():
    folds = assign_folds(23, 5, seed=9)

    assert np.array_equal(folds, assign_folds(23, 5, seed=9))
    counts = np.bincount(folds, minlength=5)
    assert counts.sum() == 23
    assert counts.max() - counts.min() <= 1


@pytest.mark.parametrize("n_sites, k", [(10, 1), (3, 5)])
def test_fold_assignment_rejects_impossible_splits(n_sites, k):
    with pytest.raises(ConfigValidationError):
        assign_folds(n_sites, k)


def test_cross_validation_scores_every_fold(sites):
    result = kfold_cross_validation(SPEC, sites, SingleSeasonEstimator(), k=5, seed=1)

    assert result.k == 5
    assert result.n_successful == 5
    assert sorted(result.fold_mse) == [1, 2, 3, 4, 5]
    assert 0.0 <= result.mse <= 1.0
    assert result.mse == pytest.approx(np.mean(list(result.fold_mse.values())))


def test_failed_fold_is_logged_and_excluded(sites, caplog):
    estimator = _FailingOnCalls({2})

    result = kfold_cross_validation(SPEC, sites, estimator, k=5, seed=1)

    assert list(result.failed_folds) == [2]
    assert result.n_successful == 4
    assert np.isfinite(result.mse)
    assert any("fold 2 failed" in record.getMessage() for record in caplog.records)


def test_all_folds_failing_gives_nan(sites):
    result = kfold_cross_validation(SPEC, sites, _FailingOnCalls(range(1, 6)), k=5)

    assert result.n_successful == 0
    assert np.isnan(result.mse)
