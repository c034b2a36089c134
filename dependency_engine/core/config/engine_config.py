from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from dependency_engine.core.errors import ConfigError


@dataclass(frozen=True)
class EngineConfig:
    # Inputs above this size are rejected instead of chunked.
    max_nodes: int = 5000
    # Used when a task has neither a duration nor a usable date range.
    default_duration_days: int = 1
    # Extra relaxation sweeps for delay propagation inside cycles.
    max_propagation_sweeps: int = 3
    bottleneck_successors: int = 3
    low_margin_days: int = 7
    margin_window_days: int = 30


DEFAULT_CONFIG = EngineConfig()


def load_config_file(path: str | Path) -> dict[str, int]:
    """Load engine overrides from a YAML file.

    Format:
      max_nodes: 2000
      default_duration_days: 1

    Returns a mapping of option name -> value; unknown options are rejected.
    """
    p = Path(path)
    if not p.exists():
        raise ConfigError(code="E_CONFIG_NOT_FOUND", message="config file does not exist", file=str(p))

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(code="E_CONFIG_PARSE", message=str(e), file=str(p)) from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(
            code="E_CONFIG_INVALID",
            message="config file must be a mapping of option -> value",
            file=str(p),
        )

    known = {f.name for f in fields(EngineConfig)}
    out: dict[str, int] = {}
    for k, v in raw.items():
        if k not in known:
            raise ConfigError(
                code="E_CONFIG_UNKNOWN_OPTION",
                message=f"unknown option: {k} (choose from: {', '.join(sorted(known))})",
                file=str(p),
                path=str(k),
            )
        if isinstance(v, bool) or not isinstance(v, int) or v < 0:
            raise ConfigError(
                code="E_CONFIG_INVALID",
                message=f"option '{k}' must be a non-negative integer",
                file=str(p),
                path=str(k),
            )
        out[k] = v
    return out


def merged_config(overrides: dict[str, Any] | None = None) -> EngineConfig:
    """Return DEFAULT_CONFIG with optional overrides applied."""
    if not overrides:
        return DEFAULT_CONFIG
    return replace(DEFAULT_CONFIG, **overrides)


def load_config(config_file: str | None) -> EngineConfig:
    if not config_file:
        return merged_config()
    return merged_config(load_config_file(config_file))
