"""Shared fixtures: synthetic camera-trap detection histories."""

from __future__ import annotations

from typing import Callable

import numpy as np
import pandas as pd
import pytest

from occupancy_engine.data.detection_history import DetectionData
from occupancy_engine.utils.link import inv_logit

SiteFactory = Callable[..., DetectionData]


def simulate_sites(
    n_sites: int = 120,
    n_occasions: int = 6,
    *,
    psi: tuple[float, float] = (0.3, 1.0),
    p: tuple[float, float] = (-0.2, 0.8),
    missing: float = 0.05,
    seed: int = 7,
) -> DetectionData:
    """Occupancy driven by covariate ``a``, detection by covariate ``b``."""
    rng = np.random.default_rng(seed)
    covariates = pd.DataFrame(
        {"a": rng.normal(size=n_sites), "b": rng.normal(size=n_sites)},
        index=[f"S{i:03d}" for i in range(n_sites)],
    )
    occupied = rng.random(n_sites) < inv_logit(psi[0] + psi[1] * covariates["a"].to_numpy())
    p_site = inv_logit(p[0] + p[1] * covariates["b"].to_numpy())
    y = ((rng.random((n_sites, n_occasions)) < p_site[:, None]) & occupied[:, None]).astype(float)
    y[rng.random(y.shape) < missing] = np.nan
    return DetectionData(y=y, covariates=covariates)


@pytest.fixture
def site_factory() -> SiteFactory:
    return simulate_sites


@pytest.fixture
def sites() -> DetectionData:
    return simulate_sites()


@pytest.fixture
def noise_sites() -> DetectionData:
    """Covariates carry no signal, so several models sit within 2 AICc of the best."""
    return simulate_sites(n_sites=90, n_occasions=5, psi=(0.5, 0.0), p=(0.0, 0.0), seed=11)


@pytest.fixture
def site_table(noise_sites: DetectionData) -> pd.DataFrame:
    """Raw site table as the CLI would read it (one row per site)."""
    frame = noise_sites.covariates.copy()
    for j in range(noise_sites.n_occasions):
        frame[f"occ{j + 1}"] = noise_sites.y[:, j]
    frame.index.name = "site"
    return frame.reset_index()
