"""Worker and resource helpers for the fitting pool."""

from __future__ import annotations

import os

from occupancy_engine.exceptions import ResourceLimitError

MAX_WORKERS_CAP = 16


def clamp_workers(max_workers: int | None) -> int:
    """Bound a requested worker count by the CPUs available to this process."""
    cpu_count = os.cpu_count() or 1
    if max_workers is None:
        return max(1, min(MAX_WORKERS_CAP, cpu_count - 1))
    if max_workers <= 0:
        raise ResourceLimitError("max_workers must be positive")
    return max(1, min(max_workers, MAX_WORKERS_CAP, cpu_count))


def estimate_fit_budget_seconds(n_models: int, per_fit_seconds: float, workers: int) -> float:
    """Rough wall-clock upper bound for a fitting batch."""
    workers = max(1, workers)
    batches = -(-n_models // workers)
    return batches * per_fit_seconds


__all__ = ["MAX_WORKERS_CAP", "clamp_workers", "estimate_fit_budget_seconds"]
