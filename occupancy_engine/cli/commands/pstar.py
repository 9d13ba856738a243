"""Standalone P* sensitivity command."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pandas as pd
import typer
from rich.console import Console
from rich.table import Table

from occupancy_engine.cli.validation import parse_float_list, validate_pstar_inputs
from occupancy_engine.exceptions import ConfigValidationError
from occupancy_engine.sensitivity.pstar import (
    DEFAULT_LEVELS,
    pstar_bootstrap,
    pstar_fixed_levels,
    surveys_for_target,
)
from occupancy_engine.utils.logging import get_logger

console = Console()
log = get_logger(__name__, component="cli.pstar")


def _render(df: pd.DataFrame, title: str) -> None:
    table = Table(title=title)
    for column in df.columns:
        table.add_column(str(column))
    for row in df.itertuples(index=False):
        table.add_row(*(f"{v:.4f}" if isinstance(v, float) else str(v) for v in row))
    console.print(table)


def _print_target(table: pd.DataFrame, label: str, target: float = 0.95) -> None:
    needed = surveys_for_target(table, target)
    if needed is None:
        console.print(f"{label}: P* stays below {target:.2f} within {int(table['surveys'].max())} surveys")
    else:
        console.print(f"{label}: {needed} surveys for P* >= {target:.2f}")


def pstar(
    probabilities: Optional[str] = typer.Option(
        None, "--probabilities", help="Comma-delimited detection probabilities to resample"
    ),
    predictions: Optional[Path] = typer.Option(
        None, "--predictions", help="CSV with a 'Predicted' column (e.g. detection_predictions.csv)"
    ),
    levels: Optional[str] = typer.Option(
        None, "--levels", help="Comma-delimited fixed detection probabilities to sweep"
    ),
    max_surveys: int = typer.Option(15, "--max-surveys", help="Largest survey count"),
    n_boot: int = typer.Option(10_000, "--n-boot", help="Bootstrap iterations"),
    jitter_sd: float = typer.Option(0.01, "--jitter-sd", help="Gaussian jitter for fixed levels"),
    seed: int = typer.Option(42, help="Random seed"),
    output: Optional[Path] = typer.Option(None, help="Optional CSV output path"),
) -> None:
    """Probability of at least one detection over 1..max-surveys surveys."""

    validate_pstar_inputs(max_surveys=max_surveys, n_boot=n_boot, seed=seed)
    surveys = range(1, max_surveys + 1)

    probs = parse_float_list(probabilities)
    if predictions is not None:
        frame = pd.read_csv(predictions)
        if "Predicted" not in frame.columns:
            raise ConfigValidationError(f"{predictions} has no 'Predicted' column")
        probs.extend(frame["Predicted"].dropna().astype(float).tolist())

    if probs:
        result = pstar_bootstrap(probs, surveys, n_boot=n_boot, seed=seed)
        title = f"P* from {len(probs)} detection probabilities"
    else:
        sweep = parse_float_list(levels) or list(DEFAULT_LEVELS)
        result = pstar_fixed_levels(sweep, surveys, n_boot=n_boot, jitter_sd=jitter_sd, seed=seed)
        title = "P* for fixed detection probabilities"

    _render(result, title)
    if probs:
        _print_target(result, "observed detection")
    else:
        for level, rows in result.groupby("detection_probability", sort=False):
            _print_target(rows, f"p = {level:.2f}")
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        result.to_csv(output, index=False)
        log.info("Wrote P* table", extra={"path": str(output)})
