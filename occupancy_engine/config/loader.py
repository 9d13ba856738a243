"""Configuration loading with CLI > ENV > file > defaults precedence."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from occupancy_engine.exceptions import ConfigValidationError
from occupancy_engine.utils.logging import get_logger

log = get_logger(__name__, component="config")

Caster = Callable[[Any], Any]


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON mapping from ``path``."""
    if not path.exists():
        raise ConfigValidationError(f"Config file not found: {path}")
    text = path.read_text()
    if path.suffix.lower() == ".json":
        try:
            content = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigValidationError(f"Invalid JSON config {path}: {exc}") from exc
    elif path.suffix.lower() in {".yml", ".yaml"}:
        try:
            content = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"Invalid YAML config {path}: {exc}") from exc
    else:
        raise ConfigValidationError("Config file must be JSON or YAML")
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping")
    return content


def _cast(key: str, value: Any, casters: Mapping[str, Caster]) -> Any:
    caster = casters.get(key)
    if caster is None or value is None:
        return value
    try:
        return caster(value)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(f"Invalid value for {key}: {value!r}") from exc


def load_config_with_precedence(
    *,
    config_path: Optional[Path],
    env_prefix: str,
    cli_values: Mapping[str, Any],
    defaults: Mapping[str, Any],
    casters: Optional[Mapping[str, Caster]] = None,
) -> Dict[str, Any]:
    """Merge configuration sources for the keys named in ``defaults``.

    CLI values that are ``None`` fall through to ``{env_prefix}{KEY}`` environment
    variables, then to the config file, then to the defaults.
    """

    casters = casters or {}
    file_values = _load_yaml(Path(config_path)) if config_path else {}
    unknown = set(file_values) - set(defaults)
    if unknown:
        log.warning("Ignoring unknown config keys", extra={"keys": sorted(unknown)})

    merged: Dict[str, Any] = {}
    sources: Dict[str, str] = {}
    for key, default in defaults.items():
        env_value = os.environ.get(f"{env_prefix}{key.upper()}")
        if cli_values.get(key) is not None:
            merged[key], sources[key] = cli_values[key], "cli"
        elif env_value is not None:
            merged[key], sources[key] = env_value, "env"
        elif key in file_values:
            merged[key], sources[key] = file_values[key], "file"
        else:
            merged[key], sources[key] = default, "default"
        merged[key] = _cast(key, merged[key], casters)

    log.debug("Resolved configuration", extra={"sources": sources})
    return merged


def split_csv(value: Any) -> list[str]:
    """Accept a comma-delimited string or a list and return stripped names."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return [str(item).strip() for item in items if str(item).strip()]


__all__ = ["load_config_with_precedence", "split_csv"]
