"""Model specifications: detection and occupancy covariate subsets."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Tuple

from occupancy_engine.exceptions import ConfigValidationError

CovariateSet = Tuple[str, ...]

_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def covariate_set(names: Iterable[str]) -> CovariateSet:
    """Canonical (sorted, de-duplicated) covariate tuple."""
    return tuple(sorted(set(names)))


def formula_string(names: CovariateSet) -> str:
    """Right-hand-side formula, ``~1`` for the intercept-only predictor."""
    return "~" + ("+".join(names) if names else "1")


@dataclass(frozen=True)
class ModelSpec:
    """Pair of covariate subsets for the detection and occupancy linear predictors.

    Two specs built from the same sets compare equal and share ``key`` regardless of
    the order the names were supplied in.
    """

    detection: CovariateSet
    occupancy: CovariateSet

    def __post_init__(self) -> None:
        object.__setattr__(self, "detection", covariate_set(self.detection))
        object.__setattr__(self, "occupancy", covariate_set(self.occupancy))

    @property
    def key(self) -> str:
        return f"p({'+'.join(self.detection) or '.'}) psi({'+'.join(self.occupancy) or '.'})"

    @property
    def detection_formula(self) -> str:
        return formula_string(self.detection)

    @property
    def occupancy_formula(self) -> str:
        return formula_string(self.occupancy)

    @property
    def n_params(self) -> int:
        return len(self.detection) + len(self.occupancy) + 2

    def __str__(self) -> str:
        return f"{self.detection_formula} {self.occupancy_formula}"


def parse_formula(text: str) -> CovariateSet:
    """Parse a one-sided formula such as ``~dense + open`` into a covariate set."""
    body = text.strip()
    if not body.startswith("~"):
        raise ConfigValidationError(f"formula must start with '~': {text!r}")
    terms = [t.strip() for t in body[1:].split("+") if t.strip()]
    names = [t for t in terms if t != "1"]
    bad = [t for t in names if not _NAME.match(t)]
    if bad:
        raise ConfigValidationError(f"unsupported formula terms {bad} in {text!r}")
    return covariate_set(names)


def parse_model_formula(text: str) -> ModelSpec:
    """Parse the double formula ``"~det ~occ"`` (detection first)."""
    parts = [p for p in re.split(r"(?=~)", text.strip()) if p.strip()]
    if len(parts) != 2:
        raise ConfigValidationError(
            f"model formula needs detection and occupancy parts, e.g. '~a+b ~c': {text!r}"
        )
    return ModelSpec(detection=parse_formula(parts[0]), occupancy=parse_formula(parts[1]))


__all__ = [
    "CovariateSet",
    "ModelSpec",
    "covariate_set",
    "formula_string",
    "parse_formula",
    "parse_model_formula",
]
