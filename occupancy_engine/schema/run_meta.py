"""Run metadata schema with JSON serialization."""

from __future__ import annotations

import json
import os
import platform
import subprocess
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from occupancy_engine.exceptions import ConfigValidationError


@dataclass
class ReproducibilityContext:
    seeds: Dict[str, int]
    library_versions: Dict[str, str]
    system_info: Dict[str, Any]
    git_sha: Optional[str]


@dataclass
class RunMeta:
    run_id: str
    data_path: Optional[str]
    config: Dict[str, Any]
    n_sites: int
    n_occasions: int
    n_models_attempted: int = 0
    n_models_converged: int = 0
    top_model: Optional[str] = None
    evaluation_model: Optional[str] = None
    warnings: list = field(default_factory=list)
    reproducibility: Optional[ReproducibilityContext] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, default=str)

    def write_atomic(self, path: Path) -> None:
        """Write run_meta to a temporary file then move for atomicity."""
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(self.to_json())
        tmp_path.replace(path)

    @classmethod
    def from_json(cls, raw: str) -> "RunMeta":
        data = json.loads(raw)
        if "run_id" not in data:
            raise ConfigValidationError("run_meta payload missing run_id")
        repro = data.pop("reproducibility", None)
        meta = cls(**data)
        if repro:
            meta.reproducibility = ReproducibilityContext(**repro)
        return meta

    @classmethod
    def capture_context(
        cls,
        run_id: str,
        *,
        data_path: Optional[str],
        config: Dict[str, Any],
        n_sites: int,
        n_occasions: int,
        seeds: Dict[str, int],
    ) -> "RunMeta":
        reproducibility = ReproducibilityContext(
            seeds=seeds,
            library_versions=_capture_lib_versions(),
            system_info={
                "os": platform.platform(),
                "cpu_count": os.cpu_count(),
                "python_version": platform.python_version(),
            },
            git_sha=_capture_git_sha(),
        )
        return cls(
            run_id=run_id,
            data_path=data_path,
            config=config,
            n_sites=n_sites,
            n_occasions=n_occasions,
            reproducibility=reproducibility,
        )


def _capture_lib_versions() -> Dict[str, str]:
    versions: Dict[str, str] = {}
    for lib in ["numpy", "pandas", "scipy", "typer", "yaml"]:
        try:
            module = __import__(lib)
            versions[lib] = getattr(module, "__version__", "unknown")
        except ImportError:
            versions[lib] = "missing"
    return versions


def _capture_git_sha() -> Optional[str]:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "HEAD"], text=True, stderr=subprocess.DEVNULL
        ).strip()
    except (OSError, subprocess.CalledProcessError):
        return None


__all__ = ["ReproducibilityContext", "RunMeta"]
