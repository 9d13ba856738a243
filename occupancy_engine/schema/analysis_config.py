"""Analysis configuration schema and validation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional, Tuple

from occupancy_engine.exceptions import ConfigValidationError

DEFAULT_COVARIATES: Tuple[str, ...] = (
    "dense",
    "gallery",
    "open",
    "sav",
    "crops",
    "past",
    "d_streams",
    "d_crops",
    "d_roads",
)
DEFAULT_PSTAR_LEVELS: Tuple[float, ...] = (0.2, 0.4, 0.6, 0.8)


@dataclass(slots=True)
class AnalysisConfig:
    covariates: Tuple[str, ...] = DEFAULT_COVARIATES
    detection_columns: Tuple[str, ...] = ()
    max_models: int = 1000
    delta_threshold: float = 2.0
    max_workers: Optional[int] = None
    fit_timeout_seconds: float = 60.0
    cv_folds: int = 5
    cv_seed: int = 123
    gof_simulations: int = 100
    gof_seed: int = 321
    pstar_surveys: Tuple[int, ...] = tuple(range(1, 16))
    pstar_boot: int = 10_000
    pstar_seed: int = 42
    pstar_levels: Tuple[float, ...] = DEFAULT_PSTAR_LEVELS
    pstar_jitter_sd: float = 0.01
    reference_formula: Optional[str] = None
    standardize: bool = True
    run_gof: bool = True
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.covariates = tuple(self.covariates)
        self.detection_columns = tuple(self.detection_columns)
        self.pstar_surveys = tuple(int(n) for n in self.pstar_surveys)
        self.pstar_levels = tuple(float(p) for p in self.pstar_levels)
        if not self.covariates:
            raise ConfigValidationError("at least one covariate is required")
        if len(set(self.covariates)) != len(self.covariates):
            raise ConfigValidationError("covariate names must be unique")
        if self.max_models <= 0:
            raise ConfigValidationError("max_models must be > 0")
        if self.delta_threshold <= 0:
            raise ConfigValidationError("delta_threshold must be > 0")
        if self.max_workers is not None and self.max_workers <= 0:
            raise ConfigValidationError("max_workers must be positive when set")
        if self.fit_timeout_seconds <= 0:
            raise ConfigValidationError("fit_timeout_seconds must be > 0")
        if self.cv_folds < 2:
            raise ConfigValidationError("cv_folds must be >= 2")
        if self.gof_simulations < 1:
            raise ConfigValidationError("gof_simulations must be >= 1")
        if not self.pstar_surveys or min(self.pstar_surveys) < 1:
            raise ConfigValidationError("pstar_surveys must contain survey counts >= 1")
        if self.pstar_boot < 1:
            raise ConfigValidationError("pstar_boot must be >= 1")
        if any(not 0.0 <= p <= 1.0 for p in self.pstar_levels):
            raise ConfigValidationError("pstar_levels must lie in [0, 1]")
        if self.pstar_jitter_sd < 0:
            raise ConfigValidationError("pstar_jitter_sd must be >= 0")
        for name in ("cv_seed", "gof_seed", "pstar_seed"):
            if getattr(self, name) is None:
                raise ConfigValidationError(f"{name} is required for reproducibility")

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisConfig":
        known = set(cls.__dataclass_fields__)
        kwargs = {k: v for k, v in data.items() if k in known and v is not None}
        extra = {k: v for k, v in data.items() if k not in known}
        if extra:
            kwargs["extra"] = {**kwargs.get("extra", {}), **extra}
        return cls(**kwargs)

    def to_dict(self) -> dict:
        payload = asdict(self)
        for key in ("covariates", "detection_columns", "pstar_surveys", "pstar_levels"):
            payload[key] = list(payload[key])
        return payload


__all__ = ["AnalysisConfig", "DEFAULT_COVARIATES", "DEFAULT_PSTAR_LEVELS"]
