"""Analyze CLI command wiring."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from occupancy_engine.analysis import AnalysisResult, run_analysis
from occupancy_engine.cli.validation import validate_analyze_inputs
from occupancy_engine.config.loader import load_config_with_precedence, split_csv
from occupancy_engine.data.detection_history import (
    build_detection_data,
    infer_detection_columns,
    load_site_table,
)
from occupancy_engine.exceptions import SchemaError
from occupancy_engine.schema.analysis_config import DEFAULT_COVARIATES, AnalysisConfig
from occupancy_engine.schema.run_meta import RunMeta
from occupancy_engine.sensitivity.pstar import surveys_for_target
from occupancy_engine.utils.logging import get_logger

console = Console()
log = get_logger(__name__, component="cli.analyze")


def _as_bool(value: object) -> bool:
    return str(value).lower() in {"1", "true", "yes", "on"}


def _write_outputs(result: AnalysisResult, output: Path) -> None:
    output.mkdir(parents=True, exist_ok=True)
    result.model_table().to_csv(output / "model_selection.csv", index=False)
    result.full_estimates().to_csv(output / "estimates_full.csv", index=False)
    result.conditional_estimates().to_csv(output / "estimates_conditional.csv", index=False)
    result.occupancy.to_csv(output / "occupancy_predictions.csv", index_label="site")
    result.detection.to_csv(output / "detection_predictions.csv", index_label="site")
    result.pstar.to_csv(output / "pstar.csv", index=False)
    result.pstar_levels.to_csv(output / "pstar_levels.csv", index=False)


def _print_summary(result: AnalysisResult) -> None:
    table = Table(title="Confidence set (delta AICc < threshold)")
    for column in ("Rank", "Model", "k", "AICc", "Delta", "Weight"):
        table.add_column(column)
    for cand in result.selection.confidence_set:
        table.add_row(
            str(cand.rank),
            cand.key,
            str(cand.fit.n_params),
            f"{cand.fit.aicc:.2f}",
            f"{cand.delta:.2f}",
            f"{result.weights[cand.key]:.3f}",
        )
    console.print(table)

    cv = result.cross_validation
    console.print(f"Evaluation model: [bold]{result.evaluation_fit.key}[/bold]")
    for warning in result.warnings:
        console.print(f"[yellow]{warning}[/yellow]")
    console.print(f"{cv.k}-fold CV MSE: {cv.mse:.4f} ({cv.n_successful}/{cv.k} folds)")
    for fold, reason in cv.failed_folds.items():
        console.print(f"[yellow]fold {fold} failed: {reason}[/yellow]")
    gof = result.goodness_of_fit
    if gof is not None:
        if gof.available:
            console.print(f"Freeman-Tukey bootstrap p = {gof.p_value:.3f}, c-hat = {gof.c_hat:.3f}")
        else:
            console.print(f"[yellow]{gof.message}[/yellow]")
    needed = surveys_for_target(result.pstar)
    if needed is None:
        console.print(f"P* stays below 0.95 within {int(result.pstar['surveys'].max())} surveys")
    else:
        console.print(f"Surveys needed for P* >= 0.95: {needed}")


def analyze(
    data: Optional[Path] = typer.Option(None, "--data", help="Site table (CSV or Parquet), one row per site"),
    config: Optional[Path] = typer.Option(None, "--config", help="Optional YAML/JSON config path"),
    covariates: Optional[str] = typer.Option(None, help="Comma-delimited covariate names"),
    detection_columns: Optional[str] = typer.Option(
        None, "--detection-columns", help="Comma-delimited detection columns in occasion order"
    ),
    detection_prefix: Optional[str] = typer.Option(
        None, "--detection-prefix", help="Infer detection columns named <prefix><n> when none are listed"
    ),
    site_column: Optional[str] = typer.Option(None, "--site-column", help="Column holding site identifiers"),
    max_models: Optional[int] = typer.Option(None, "--max-models", help="Maximum number of model specs"),
    max_workers: Optional[int] = typer.Option(None, "--max-workers", help="Worker processes for fitting"),
    fit_timeout: Optional[float] = typer.Option(None, "--fit-timeout", help="Seconds allowed per model fit"),
    delta: Optional[float] = typer.Option(None, "--delta", help="Delta AICc threshold for the confidence set"),
    reference_formula: Optional[str] = typer.Option(
        None, "--reference-formula", help="Evaluate this '~det ~occ' model instead of the top-ranked one"
    ),
    cv_folds: Optional[int] = typer.Option(None, "--cv-folds", help="Cross-validation folds"),
    gof_sims: Optional[int] = typer.Option(None, "--gof-sims", help="Parametric bootstrap simulations"),
    run_gof: Optional[bool] = typer.Option(None, "--gof/--no-gof", help="Run the goodness-of-fit bootstrap"),
    standardize: Optional[bool] = typer.Option(
        None, "--standardize/--no-standardize", help="Scale covariates to mean 0 and unit variance"
    ),
    pstar_boot: Optional[int] = typer.Option(None, "--pstar-boot", help="Bootstrap resamples for P*"),
    max_surveys: Optional[int] = typer.Option(None, "--max-surveys", help="Largest survey count for P*"),
    seed: Optional[int] = typer.Option(None, help="Seed for the P* bootstrap"),
    output: Optional[Path] = typer.Option(None, help="Output directory for result tables"),
) -> None:
    """Fit all covariate combinations, average the confidence set and report P*."""

    defaults = {
        "data": None,
        "covariates": ",".join(DEFAULT_COVARIATES),
        "detection_columns": None,
        "detection_prefix": "occ",
        "site_column": None,
        "max_models": 1000,
        "max_workers": None,
        "fit_timeout": 60.0,
        "delta": 2.0,
        "reference_formula": None,
        "cv_folds": 5,
        "gof_sims": 100,
        "run_gof": True,
        "standardize": True,
        "pstar_boot": 10_000,
        "max_surveys": 15,
        "seed": 42,
        "output": "runs/occupancy",
    }
    cli_values = {
        "data": str(data) if data else None,
        "covariates": covariates,
        "detection_columns": detection_columns,
        "detection_prefix": detection_prefix,
        "site_column": site_column,
        "max_models": max_models,
        "max_workers": max_workers,
        "fit_timeout": fit_timeout,
        "delta": delta,
        "reference_formula": reference_formula,
        "cv_folds": cv_folds,
        "gof_sims": gof_sims,
        "run_gof": run_gof,
        "standardize": standardize,
        "pstar_boot": pstar_boot,
        "max_surveys": max_surveys,
        "seed": seed,
        "output": str(output) if output else None,
    }
    casters = {
        "data": str,
        "covariates": split_csv,
        "detection_columns": split_csv,
        "detection_prefix": str,
        "site_column": str,
        "max_models": int,
        "max_workers": int,
        "fit_timeout": float,
        "delta": float,
        "reference_formula": str,
        "cv_folds": int,
        "gof_sims": int,
        "run_gof": _as_bool,
        "standardize": _as_bool,
        "pstar_boot": int,
        "max_surveys": int,
        "seed": int,
        "output": str,
    }
    cfg = load_config_with_precedence(
        config_path=config,
        env_prefix="OCC_",
        cli_values=cli_values,
        defaults=defaults,
        casters=casters,
    )
    validate_analyze_inputs(
        data=Path(cfg["data"]) if cfg["data"] else None,
        covariates=cfg["covariates"],
        max_models=cfg["max_models"],
        max_workers=cfg["max_workers"],
    )

    table = load_site_table(Path(cfg["data"]))
    det_cols = cfg["detection_columns"] or infer_detection_columns(table, cfg["detection_prefix"])
    if not det_cols:
        raise SchemaError(
            f"no detection columns given and none match prefix '{cfg['detection_prefix']}'"
        )

    analysis_config = AnalysisConfig(
        covariates=tuple(cfg["covariates"]),
        detection_columns=tuple(det_cols),
        max_models=cfg["max_models"],
        delta_threshold=cfg["delta"],
        max_workers=cfg["max_workers"],
        fit_timeout_seconds=cfg["fit_timeout"],
        cv_folds=cfg["cv_folds"],
        gof_simulations=cfg["gof_sims"],
        pstar_surveys=tuple(range(1, cfg["max_surveys"] + 1)),
        pstar_boot=cfg["pstar_boot"],
        pstar_seed=cfg["seed"],
        reference_formula=cfg["reference_formula"],
        run_gof=cfg["run_gof"],
        standardize=cfg["standardize"],
    )
    site_data = build_detection_data(
        table,
        detection_columns=analysis_config.detection_columns,
        covariates=analysis_config.covariates,
        site_column=cfg["site_column"],
        standardize=analysis_config.standardize,
    )

    run_id = uuid.uuid4().hex[:12]
    meta = RunMeta.capture_context(
        run_id,
        data_path=cfg["data"],
        config=analysis_config.to_dict(),
        n_sites=site_data.n_sites,
        n_occasions=site_data.n_occasions,
        seeds={
            "cv": analysis_config.cv_seed,
            "gof": analysis_config.gof_seed,
            "pstar": analysis_config.pstar_seed,
        },
    )
    log.info("Starting analysis", extra={"run_id": run_id, "n_sites": site_data.n_sites})
    result = run_analysis(site_data, analysis_config)

    out_dir = Path(cfg["output"])
    _write_outputs(result, out_dir)
    meta.n_models_attempted = result.batch.attempted
    meta.n_models_converged = len(result.batch.results)
    meta.top_model = result.selection.top.key
    meta.evaluation_model = result.evaluation_fit.key
    meta.warnings = list(result.warnings)
    meta.warnings.extend(
        f"fold {fold} failed: {reason}" for fold, reason in result.cross_validation.failed_folds.items()
    )
    if result.goodness_of_fit is not None and not result.goodness_of_fit.available:
        meta.warnings.append(result.goodness_of_fit.message)
    meta.write_atomic(out_dir / "run_meta.json")

    _print_summary(result)
    typer.echo(f"Results written to {out_dir}")
