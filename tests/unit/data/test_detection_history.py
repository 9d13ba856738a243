from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from occupancy_engine.data.detection_history import (
    DetectionData,
    build_detection_data,
    infer_detection_columns,
    load_site_table,
)
from occupancy_engine.exceptions import DataSourceError, InsufficientDataError, SchemaError


def _table(**overrides) -> pd.DataFrame:
    frame = pd.DataFrame(
        {
            "site": ["A", "B", "C", "D"],
            "occ1": [1, 0, 0, np.nan],
            "occ2": [0, 0, 1, 0],
            "occ10": [1, np.nan, 0, 0],
            "dense": [0.2, 0.4, 0.6, 0.8],
            "open": [1.0, 2.0, 3.0, 4.0],
        }
    )
    for key, value in overrides.items():
        frame[key] = value
    return frame


def test_detection_columns_are_ordered_by_occasion_number():
    assert infer_detection_columns(_table()) == ["occ1", "occ2", "occ10"]
    assert infer_detection_columns(_table(), prefix="visit") == []


def test_build_detection_data_selects_and_standardizes():
    data = build_detection_data(
        _table(), detection_columns=["occ1", "occ2", "occ10"], covariates=["dense", "open"], site_column="site"
    )

    assert (data.n_sites, data.n_occasions) == (4, 3)
    assert data.site_ids == ["A", "B", "C", "D"]
    assert np.isnan(data.y[3, 0])
    assert data.covariates["dense"].mean() == pytest.approx(0.0)
    assert data.covariates["open"].std(ddof=1) == pytest.approx(1.0)


def test_sites_with_missing_covariates_are_dropped():
    data = build_detection_data(
        _table(dense=[0.2, None, 0.6, 0.8]),
        detection_columns=["occ1", "occ2"],
        covariates=["dense"],
        site_column="site",
        standardize=False,
    )

    assert data.site_ids == ["A", "C", "D"]


def test_too_few_complete_sites_is_insufficient_data():
    with pytest.raises(InsufficientDataError):
        build_detection_data(
            _table(dense=[0.2, None, None, 0.8]), detection_columns=["occ1"], covariates=["dense"]
        )


def test_missing_columns_and_bad_values_are_schema_errors():
    with pytest.raises(SchemaError, match="sav"):
        build_detection_data(_table(), detection_columns=["occ1"], covariates=["sav"])
    with pytest.raises(SchemaError, match="outside"):
        build_detection_data(_table(occ2=[0, 2, 1, 0]), detection_columns=["occ2"], covariates=["dense"])


def test_detection_data_validates_shape_and_values():
    with pytest.raises(SchemaError):
        DetectionData(y=np.zeros((3, 2)), covariates=pd.DataFrame(index=range(2)))
    with pytest.raises(SchemaError):
        DetectionData(y=np.full((2, 2), 0.5), covariates=pd.DataFrame(index=range(2)))


def test_design_matrix_and_naive_occupancy():
    data = DetectionData(
        y=np.array([[1.0, np.nan], [0.0, 0.0], [np.nan, np.nan]]),
        covariates=pd.DataFrame({"x": [1.0, 2.0, 3.0]}),
    )

    assert data.design_matrix(["x"]).tolist() == [[1.0, 1.0], [1.0, 2.0], [1.0, 3.0]]
    naive = data.naive_occupancy()
    assert naive[:2].tolist() == [1.0, 0.0]
    assert np.isnan(naive[2])
    with pytest.raises(SchemaError):
        data.design_matrix(["y"])


def test_subset_keeps_rows_aligned(sites):
    part = sites.subset([5, 2])

    assert part.site_ids == [sites.site_ids[5], sites.site_ids[2]]
    np.testing.assert_array_equal(part.y, sites.y[[5, 2]])


def test_load_site_table_reads_csv(tmp_path):
    path = tmp_path / "sites.csv"
    _table().to_csv(path, index=False)

    assert list(load_site_table(path).columns) == list(_table().columns)
    with pytest.raises(DataSourceError):
        load_site_table(tmp_path / "absent.csv")
    with pytest.raises(DataSourceError):
        load_site_table(_write_text(tmp_path / "sites.xlsx"))


def _write_text(path):
    path.write_text("x")
    return path
