"""Exhaustive generation of detection x occupancy covariate subsets."""

from __future__ import annotations

from itertools import combinations, islice
from typing import Iterator, Sequence

from occupancy_engine.models.formula import CovariateSet, ModelSpec


def _unique(universe: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for name in universe:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


def covariate_subsets(universe: Sequence[str]) -> Iterator[CovariateSet]:
    """Non-empty subsets by increasing size, combination order within a size."""
    names = _unique(universe)
    for size in range(1, len(names) + 1):
        yield from combinations(names, size)


def _all_specs(universe: Sequence[str]) -> Iterator[ModelSpec]:
    for detection in covariate_subsets(universe):
        for occupancy in covariate_subsets(universe):
            yield ModelSpec(detection=detection, occupancy=occupancy)


def enumerate_model_specs(universe: Sequence[str], max_models: int) -> Iterator[ModelSpec]:
    """Lazily yield at most ``max_models`` specs; deterministic for a given input."""
    if max_models <= 0:
        return iter(())
    return islice(_all_specs(universe), max_models)


def count_model_specs(n_covariates: int, max_models: int) -> int:
    """Number of specs ``enumerate_model_specs`` yields, without enumerating."""
    if n_covariates <= 0 or max_models <= 0:
        return 0
    per_side = 2**n_covariates - 1
    return min(max_models, per_side * per_side)


__all__ = ["count_model_specs", "covariate_subsets", "enumerate_model_specs"]
