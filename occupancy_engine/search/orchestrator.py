"""Parallel fitting of enumerated model specs with per-model failure isolation.

Each spec is fit exactly once, either in-process (one worker) or in a process
pool that lives only for the duration of the batch. Results are keyed by the
spec's canonical key and returned in enumeration order, so the output does not
depend on worker count or completion order.
"""

from __future__ import annotations

import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from occupancy_engine.data.detection_history import DetectionData
from occupancy_engine.exceptions import ModelFitError
from occupancy_engine.interfaces.estimator import OccupancyEstimator
from occupancy_engine.models.fit import FitOutcome, FitResult
from occupancy_engine.models.formula import ModelSpec
from occupancy_engine.utils.logging import get_logger
from occupancy_engine.utils.resources import clamp_workers, estimate_fit_budget_seconds

log = get_logger(__name__, component="search.orchestrator")


@dataclass
class FitBatch:
    """Successful fits plus the reasons the remaining specs produced no result."""

    results: Dict[str, FitResult] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return len(self.results) + len(self.failures)


def _fit_one(spec: ModelSpec, data: DetectionData, estimator: OccupancyEstimator) -> FitOutcome:
    start = time.perf_counter()
    try:
        result = estimator.fit(spec, data)
    except ModelFitError as exc:
        return FitOutcome(key=spec.key, error=str(exc), duration_ms=(time.perf_counter() - start) * 1e3)
    except Exception as exc:  # noqa: BLE001
        return FitOutcome(
            key=spec.key,
            error=f"unexpected {type(exc).__name__}: {exc}",
            duration_ms=(time.perf_counter() - start) * 1e3,
        )
    duration_ms = (time.perf_counter() - start) * 1e3
    if not result.has_criterion:
        return FitOutcome(key=spec.key, result=result, error="information criterion undefined", duration_ms=duration_ms)
    return FitOutcome(key=spec.key, result=result, duration_ms=duration_ms)


def _record_failure(outcome: FitOutcome) -> None:
    log.warning(
        "Model failed to fit",
        extra={"model": outcome.key, "error": outcome.error, "duration_ms": round(outcome.duration_ms, 1)},
    )


def _unique_specs(specs: Iterable[ModelSpec]) -> List[ModelSpec]:
    seen: set[str] = set()
    unique: List[ModelSpec] = []
    for spec in specs:
        if spec.key in seen:
            log.debug("Skipping duplicate model spec", extra={"model": spec.key})
            continue
        seen.add(spec.key)
        unique.append(spec)
    return unique


def fit_candidate_models(
    specs: Iterable[ModelSpec],
    data: DetectionData,
    estimator: OccupancyEstimator,
    *,
    max_workers: int | None = None,
    per_fit_seconds: float | None = None,
) -> FitBatch:
    """Fit every spec once and collect successful results keyed by spec identity."""

    unique = _unique_specs(specs)
    worker_count = min(clamp_workers(max_workers), max(len(unique), 1))
    budget_seconds = None
    if per_fit_seconds is not None:
        # one fit of slack for pool start-up
        budget_seconds = estimate_fit_budget_seconds(len(unique), per_fit_seconds, worker_count) + per_fit_seconds
        log.info(
            "Starting model fits",
            extra={"n_models": len(unique), "workers": worker_count, "budget_seconds": budget_seconds},
        )

    outcomes: Dict[str, FitOutcome] = {}
    start = time.perf_counter()
    if worker_count == 1:
        for spec in unique:
            outcomes[spec.key] = _fit_one(spec, data, estimator)
    else:
        with ProcessPoolExecutor(max_workers=worker_count) as executor:
            future_map = {executor.submit(_fit_one, spec, data, estimator): spec.key for spec in unique}
            try:
                for future in as_completed(future_map, timeout=budget_seconds):
                    key = future_map[future]
                    try:
                        outcomes[key] = future.result()
                    except Exception as exc:  # noqa: BLE001
                        outcomes[key] = FitOutcome(key=key, error=f"worker failed: {exc}")
            except FuturesTimeoutError:
                for future, key in future_map.items():
                    if key not in outcomes:
                        future.cancel()
                        outcomes[key] = FitOutcome(key=key, error=f"fit batch exceeded {budget_seconds:.1f}s budget")

    batch = FitBatch()
    for spec in unique:
        outcome = outcomes[spec.key]
        if outcome.ok:
            batch.results[spec.key] = outcome.result  # type: ignore[assignment]
        else:
            batch.failures[spec.key] = outcome.error or "no result"
            _record_failure(outcome)

    log.info(
        "Model fitting complete",
        extra={
            "n_models": batch.attempted,
            "converged": len(batch.results),
            "failed": len(batch.failures),
            "duration_ms": round((time.perf_counter() - start) * 1e3, 1),
        },
    )
    return batch


__all__ = ["FitBatch", "fit_candidate_models"]
