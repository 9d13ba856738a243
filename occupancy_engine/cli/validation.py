"""CLI validation helpers."""

from __future__ import annotations

from pathlib import Path

from occupancy_engine.exceptions import ConfigValidationError


def require_positive(name: str, value: int | float) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be > 0")


def validate_analyze_inputs(
    *,
    data: Path | None,
    covariates: list[str],
    max_models: int,
    max_workers: int | None,
) -> None:
    if data is None:
        raise ConfigValidationError("data path is required (CLI > ENV > YAML)")
    if not covariates:
        raise ConfigValidationError("at least one covariate is required")
    require_positive("max_models", max_models)
    if max_workers is not None:
        require_positive("max_workers", max_workers)


def validate_pstar_inputs(*, max_surveys: int, n_boot: int, seed: int | None) -> None:
    require_positive("max_surveys", max_surveys)
    require_positive("n_boot", n_boot)
    if seed is None:
        raise ConfigValidationError("seed is required for reproducibility")


def parse_float_list(raw: str | None) -> list[float]:
    if not raw:
        return []
    try:
        return [float(item) for item in raw.split(",") if item.strip()]
    except ValueError as exc:
        raise ConfigValidationError(f"expected comma-separated numbers, got {raw!r}") from exc


__all__ = ["parse_float_list", "require_positive", "validate_analyze_inputs", "validate_pstar_inputs"]
