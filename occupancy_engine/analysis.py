"""End-to-end occupancy meta-analysis pipeline.

Enumerate specs -> fit in parallel -> rank and select -> average ->
{cross-validation, goodness of fit} on the evaluation model -> P* sensitivity.
Everything after the fitting phase runs in-process once the pool is released.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import pandas as pd

from occupancy_engine.averaging.model_averaging import (
    AveragedEstimate,
    average_parameters,
    average_predictions,
    averaged_estimates_table,
    model_weights,
)
from occupancy_engine.data.detection_history import DetectionData
from occupancy_engine.estimation.single_season import SingleSeasonEstimator
from occupancy_engine.evaluation.cross_validation import CrossValidationResult, kfold_cross_validation
from occupancy_engine.evaluation.goodness_of_fit import GoodnessOfFitResult, parametric_bootstrap
from occupancy_engine.exceptions import ModelFitError
from occupancy_engine.interfaces.estimator import OccupancyEstimator
from occupancy_engine.models.fit import FitResult
from occupancy_engine.models.formula import parse_model_formula
from occupancy_engine.schema.analysis_config import AnalysisConfig
from occupancy_engine.search.enumerator import count_model_specs, enumerate_model_specs
from occupancy_engine.search.orchestrator import FitBatch, fit_candidate_models
from occupancy_engine.selection.model_selector import ModelSelection, select_models, selection_table
from occupancy_engine.sensitivity.pstar import pstar_bootstrap, pstar_fixed_levels
from occupancy_engine.utils.logging import get_logger

log = get_logger(__name__, component="analysis")


@dataclass
class AnalysisResult:
    batch: FitBatch
    selection: ModelSelection
    weights: Dict[str, float]
    estimates: List[AveragedEstimate]
    occupancy: pd.DataFrame
    detection: pd.DataFrame
    evaluation_fit: FitResult
    cross_validation: CrossValidationResult
    goodness_of_fit: Optional[GoodnessOfFitResult]
    pstar: pd.DataFrame
    pstar_levels: pd.DataFrame
    warnings: List[str] = field(default_factory=list)

    def model_table(self) -> pd.DataFrame:
        return selection_table(self.selection.ranked)

    def full_estimates(self) -> pd.DataFrame:
        return averaged_estimates_table(self.estimates, "full")

    def conditional_estimates(self) -> pd.DataFrame:
        return averaged_estimates_table(self.estimates, "conditional")


def top_ranked_model(selection: ModelSelection) -> FitResult:
    """Rank-1 (minimum AICc) fit, independent of the confidence-set size."""
    return selection.top.fit


def reference_model(
    formula: str,
    data: DetectionData,
    estimator: OccupancyEstimator,
    results: Optional[Mapping[str, FitResult]] = None,
) -> FitResult:
    """Fit of a fixed ``"~det ~occ"`` formula, reusing an existing fit when available."""
    spec = parse_model_formula(formula)
    if results and spec.key in results:
        return results[spec.key]
    log.info("Fitting reference model", extra={"model": spec.key})
    return estimator.fit(spec, data)


def run_analysis(
    data: DetectionData,
    config: AnalysisConfig,
    estimator: Optional[OccupancyEstimator] = None,
) -> AnalysisResult:
    estimator = estimator or SingleSeasonEstimator(max_seconds=config.fit_timeout_seconds)
    n_specs = count_model_specs(len(config.covariates), config.max_models)
    log.info("Enumerating model specs", extra={"n_models": n_specs})

    batch = fit_candidate_models(
        enumerate_model_specs(config.covariates, config.max_models),
        data,
        estimator,
        max_workers=config.max_workers,
        per_fit_seconds=config.fit_timeout_seconds,
    )
    selection = select_models(batch.results, config.delta_threshold)
    confidence = selection.confidence_set

    estimates = average_parameters(confidence)
    occupancy = average_predictions(confidence, data, estimator, "state")
    detection = average_predictions(confidence, data, estimator, "det")

    warnings: List[str] = []
    evaluation_fit = top_ranked_model(selection)
    if config.reference_formula:
        try:
            evaluation_fit = reference_model(config.reference_formula, data, estimator, batch.results)
        except ModelFitError as exc:
            message = f"reference model {config.reference_formula!r} failed to fit: {exc}; evaluating {evaluation_fit.key}"
            log.warning(message, extra={"model": evaluation_fit.key, "error": str(exc)})
            warnings.append(message)

    cv = kfold_cross_validation(
        evaluation_fit.spec, data, estimator, k=config.cv_folds, seed=config.cv_seed
    )
    gof = None
    if config.run_gof:
        gof = parametric_bootstrap(
            evaluation_fit, data, estimator, n_sims=config.gof_simulations, seed=config.gof_seed
        )

    pstar = pstar_bootstrap(
        detection["Predicted"].to_numpy(),
        config.pstar_surveys,
        n_boot=config.pstar_boot,
        seed=config.pstar_seed,
    )
    levels = pstar_fixed_levels(
        config.pstar_levels,
        config.pstar_surveys,
        n_boot=config.pstar_boot,
        jitter_sd=config.pstar_jitter_sd,
        seed=config.pstar_seed,
    )
    return AnalysisResult(
        batch=batch,
        selection=selection,
        weights=model_weights(confidence),
        estimates=estimates,
        occupancy=occupancy,
        detection=detection,
        evaluation_fit=evaluation_fit,
        cross_validation=cv,
        goodness_of_fit=gof,
        pstar=pstar,
        pstar_levels=levels,
        warnings=warnings,
    )


__all__ = ["AnalysisResult", "reference_model", "run_analysis", "top_ranked_model"]
