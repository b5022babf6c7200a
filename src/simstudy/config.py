# Copyright (c) Syntropy Systems
"""Configuration intake for simstudy."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml
from pydantic import ValidationError

from simstudy.models.study import DEFAULT_CANDIDATES, DEFAULT_SEED, RunConfig

CONFIG_FILENAME = "simstudy.yaml"


class ConfigError(RuntimeError):
    """Run parameters are missing, malformed or unusable."""


@dataclass
class StudyDefaults:
    """Defaults for options that are not positional run parameters."""

    # Optimizer hyperparameter grid
    band_candidates: tuple[int, ...] = DEFAULT_CANDIDATES
    subpopulation_candidates: tuple[int, ...] = DEFAULT_CANDIDATES

    # Seed applied once before the first trial (None disables seeding)
    seed: int | None = DEFAULT_SEED

    # Module name or .py path holding the data-generating model functions
    models: str = "sim_models"

    # Optimizer reference as "module:attribute"
    optimizer: str = "fbam:fbam"

    # Sampling interval for the system metrics log (seconds)
    system_metrics_interval: float = 10.0


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest simstudy.yaml by walking up from start_path.

    Returns None if no config file is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current == current.parent:
            return None
        current = current.parent


def get_global_config_dir() -> Path:
    """Get the global simstudy config directory (~/.simstudy)."""
    return Path.home() / ".simstudy"


def parse_candidates(text: str) -> tuple[int, ...]:
    """Parse a candidate grid written as ``"2:6"`` (inclusive) or ``"2,3,5"``."""
    text = text.strip()
    try:
        if ":" in text:
            lo_text, hi_text = text.split(":", 1)
            lo, hi = int(lo_text), int(hi_text)
            if hi < lo:
                msg = f"Empty candidate range: {text!r}"
                raise ConfigError(msg)
            values = tuple(range(lo, hi + 1))
        else:
            values = tuple(int(part) for part in text.split(",") if part.strip())
    except ValueError as e:
        msg = f"Invalid candidate grid {text!r}: expected 'LO:HI' or 'A,B,C'"
        raise ConfigError(msg) from e

    if not values:
        msg = f"Empty candidate grid: {text!r}"
        raise ConfigError(msg)
    if any(v <= 0 for v in values):
        msg = f"Candidate grid must contain positive integers: {text!r}"
        raise ConfigError(msg)
    return values


def _coerce_candidates(value: object) -> tuple[int, ...] | None:
    if isinstance(value, str):
        return parse_candidates(value)
    if isinstance(value, list) and value and all(
        isinstance(v, int) and not isinstance(v, bool) for v in value
    ):
        return tuple(cast("list[int]", value))
    return None


def load_defaults(config_path: Path | None = None) -> StudyDefaults:
    """Load option defaults from simstudy.yaml or built-ins.

    Looks for config in:
    1. Provided config_path (ConfigError if it is not a file)
    2. Nearest simstudy.yaml walking up from the working directory
    3. ~/.simstudy/config.yaml
    4. Built-in defaults
    """
    defaults = StudyDefaults()

    if config_path is not None:
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise ConfigError(msg)
    else:
        config_path = find_config_file()
    if config_path is None:
        global_config = get_global_config_dir() / "config.yaml"
        if global_config.exists():
            config_path = global_config

    if config_path is None:
        return defaults

    try:
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})
    except (OSError, yaml.YAMLError) as e:
        msg = f"Cannot read config file {config_path}: {e}"
        raise ConfigError(msg) from e

    if not isinstance(data, dict):
        msg = f"Config file {config_path} must contain a mapping"
        raise ConfigError(msg)

    bands = _coerce_candidates(data.get("band_candidates"))
    if bands is not None:
        defaults.band_candidates = bands
    subpops = _coerce_candidates(data.get("subpopulation_candidates"))
    if subpops is not None:
        defaults.subpopulation_candidates = subpops

    if "seed" in data:
        seed = data["seed"]
        if seed is None:
            defaults.seed = None
        elif isinstance(seed, int) and not isinstance(seed, bool):
            defaults.seed = seed

    models = data.get("models")
    if isinstance(models, str) and models:
        defaults.models = models
    optimizer = data.get("optimizer")
    if isinstance(optimizer, str) and optimizer:
        defaults.optimizer = optimizer
    interval = data.get("system_metrics_interval")
    if isinstance(interval, (int, float)) and interval > 0:
        defaults.system_metrics_interval = float(interval)

    return defaults


def _format_validation_error(error: ValidationError) -> str:
    parts: list[str] = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "config"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def build_run_config(  # noqa: PLR0913
    model_name: str,
    replicate_count: int,
    series_length: int,
    target_successes: int,
    parallelism: int,
    output_dir: Path,
    band_candidates: tuple[int, ...] = DEFAULT_CANDIDATES,
    subpopulation_candidates: tuple[int, ...] = DEFAULT_CANDIDATES,
    seed: int | None = DEFAULT_SEED,
) -> RunConfig:
    """Validate raw run parameters into a RunConfig.

    Raises:
        ConfigError: If any parameter is invalid.

    """
    try:
        return RunConfig(
            model_name=model_name,
            replicate_count=replicate_count,
            series_length=series_length,
            target_successes=target_successes,
            parallelism=parallelism,
            output_dir=output_dir,
            band_candidates=band_candidates,
            subpopulation_candidates=subpopulation_candidates,
            seed=seed,
        )
    except ValidationError as e:
        msg = f"Invalid run parameters: {_format_validation_error(e)}"
        raise ConfigError(msg) from e


def prepare_output_dir(path: Path) -> Path:
    """Create the output directory if needed and check it is writable.

    Raises:
        ConfigError: If the directory cannot be created or written to.

    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        msg = f"Cannot create output directory {path}: {e}"
        raise ConfigError(msg) from e

    if not path.is_dir():
        msg = f"Output path is not a directory: {path}"
        raise ConfigError(msg)
    if not os.access(path, os.W_OK | os.X_OK):
        msg = f"Output directory is not writable: {path}"
        raise ConfigError(msg)

    return path
