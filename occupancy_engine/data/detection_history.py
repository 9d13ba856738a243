"""Site-level detection histories and covariates."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd

from occupancy_engine.exceptions import DataSourceError, InsufficientDataError, SchemaError
from occupancy_engine.utils.logging import get_logger

log = get_logger(__name__, component="data")

MIN_SITES = 3


@dataclass(frozen=True)
class DetectionData:
    """Detection matrix (sites x occasions, values 0/1/NaN) plus site covariates.

    ``covariates`` shares its row order with ``y``; it is treated as read-only.
    """

    y: np.ndarray
    covariates: pd.DataFrame

    def __post_init__(self) -> None:
        y = np.asarray(self.y, dtype=float)
        if y.ndim != 2:
            raise SchemaError("detection matrix must be two-dimensional")
        if len(self.covariates) != y.shape[0]:
            raise SchemaError(
                f"covariate rows ({len(self.covariates)}) do not match detection rows ({y.shape[0]})"
            )
        observed = y[~np.isnan(y)]
        if not np.isin(observed, (0.0, 1.0)).all():
            raise SchemaError("detection values must be 0, 1 or missing")
        object.__setattr__(self, "y", y)

    @property
    def n_sites(self) -> int:
        return int(self.y.shape[0])

    @property
    def n_occasions(self) -> int:
        return int(self.y.shape[1])

    @property
    def site_ids(self) -> list:
        return list(self.covariates.index)

    def design_matrix(self, names: Sequence[str]) -> np.ndarray:
        """Intercept column followed by the named covariates."""
        missing = [n for n in names if n not in self.covariates.columns]
        if missing:
            raise SchemaError(f"unknown covariates: {missing}")
        columns = [np.ones(self.n_sites)]
        columns.extend(self.covariates[name].to_numpy(dtype=float) for name in names)
        return np.column_stack(columns)

    def subset(self, rows: Sequence[int] | np.ndarray) -> "DetectionData":
        rows = np.asarray(rows, dtype=int)
        return DetectionData(y=self.y[rows].copy(), covariates=self.covariates.iloc[rows])

    def with_detections(self, y: np.ndarray) -> "DetectionData":
        return DetectionData(y=y, covariates=self.covariates)

    def naive_occupancy(self) -> np.ndarray:
        """1 where the species was detected at least once, 0 otherwise, NaN if never surveyed."""
        surveyed = ~np.isnan(self.y).all(axis=1)
        detected = np.nansum(self.y, axis=1) > 0
        return np.where(surveyed, detected.astype(float), np.nan)


def infer_detection_columns(df: pd.DataFrame, prefix: str = "occ") -> list[str]:
    """Columns named ``<prefix><number>`` ordered by occasion number."""
    pattern = re.compile(rf"^{re.escape(prefix)}[_.]?(\d+)$")
    matches = []
    for column in df.columns:
        match = pattern.match(str(column))
        if match:
            matches.append((int(match.group(1)), str(column)))
    return [name for _, name in sorted(matches)]


def standardize_covariates(df: pd.DataFrame, names: Sequence[str]) -> pd.DataFrame:
    """Mean-zero / unit-variance copies of the named columns; constant columns are only centred."""
    out = df.copy()
    for name in names:
        column = out[name].astype(float)
        std = column.std(ddof=1)
        centred = column - column.mean()
        out[name] = centred / std if std and np.isfinite(std) else centred
    return out


def build_detection_data(
    df: pd.DataFrame,
    *,
    detection_columns: Sequence[str],
    covariates: Sequence[str],
    site_column: str | None = None,
    standardize: bool = True,
) -> DetectionData:
    """Select named detection and covariate columns and validate them.

    Sites with any missing covariate value are dropped; detection values must be
    0, 1 or missing after numeric coercion.
    """

    detection_columns = list(detection_columns)
    covariates = list(covariates)
    if not detection_columns:
        raise SchemaError("at least one detection column is required")
    missing = [c for c in detection_columns + covariates if c not in df.columns]
    if missing:
        raise SchemaError(f"Missing required columns: {missing}")

    frame = df.copy()
    if site_column:
        if site_column not in frame.columns:
            raise SchemaError(f"site column '{site_column}' not found")
        frame = frame.set_index(site_column)
    for column in detection_columns + covariates:
        frame[column] = pd.to_numeric(frame[column], errors="coerce")

    complete = frame[covariates].notna().all(axis=1)
    dropped = int((~complete).sum())
    if dropped:
        log.warning("Dropping sites with incomplete covariates", extra={"dropped": dropped})
    frame = frame.loc[complete]
    if len(frame) < MIN_SITES:
        raise InsufficientDataError(f"need at least {MIN_SITES} complete sites, got {len(frame)}")

    y = frame[detection_columns].to_numpy(dtype=float)
    bad = ~np.isnan(y) & ~np.isin(y, (0.0, 1.0))
    if bad.any():
        raise SchemaError(f"detection columns contain {int(bad.sum())} values outside {{0, 1, missing}}")

    cov = frame[covariates]
    if standardize:
        cov = standardize_covariates(cov, covariates)
    log.info(
        "Loaded detection data",
        extra={"n_sites": len(frame), "n_occasions": len(detection_columns)},
    )
    return DetectionData(y=y, covariates=cov)


def load_site_table(path: Path) -> pd.DataFrame:
    """Read a site table from CSV or Parquet."""
    path = Path(path)
    if not path.exists():
        raise DataSourceError(f"Data file not found: {path}")
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix == ".parquet":
        return pd.read_parquet(path)
    raise DataSourceError("Site table must be CSV or Parquet")


__all__ = [
    "DetectionData",
    "MIN_SITES",
    "build_detection_data",
    "infer_detection_columns",
    "load_site_table",
    "standardize_covariates",
]
