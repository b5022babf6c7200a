# Copyright (c) Syntropy Systems
"""Data-generating models and the optimizer, resolved at their interface."""
from __future__ import annotations

import functools
import importlib
import importlib.util
import logging
import random
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from types import ModuleType
from typing import Protocol, cast

import numpy as np

from simstudy.config import ConfigError

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """The data-generating model failed or does not exist."""


class OptimizationError(RuntimeError):
    """The optimizer failed to converge or rejected its input."""


class DataGenerator(Protocol):
    def __call__(self, replicate_count: int, series_length: int) -> object:
        ...


class Optimizer(Protocol):
    def __call__(
        self,
        dataset: object,
        band_candidates: Sequence[int],
        subpopulation_candidates: Sequence[int],
        parallelism: int,
    ) -> object:
        ...


def _load_file(path: Path) -> ModuleType:
    """Execute path as a module registered under its stem.

    Registration lets pickle find classes the module defines, so datasets
    and optimizer results built from them can be saved.
    """
    name = path.stem
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        msg = f"Cannot load module from {path}"
        raise ConfigError(msg)
    module = importlib.util.module_from_spec(spec)
    previous = sys.modules.get(name)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        if previous is not None:
            sys.modules[name] = previous
        else:
            del sys.modules[name]
        msg = f"Failed to load {path}: {type(e).__name__}: {e}"
        raise ConfigError(msg) from e
    return module


def ensure_cwd_importable() -> None:
    """Put the working directory on sys.path.

    Unpickling an artifact imports the modules its classes came from, which
    for local models files live next to where the study was launched.
    """
    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)


def load_module(source: str) -> ModuleType:
    """Load a module from a .py path or an importable module name.

    A bare name is first looked up as ``<name>.py`` in the working directory,
    so a study can keep its models file next to where it is launched.
    """
    path = Path(source)
    if path.suffix == ".py":
        if not path.is_file():
            msg = f"Module file not found: {source}"
            raise ConfigError(msg)
        return _load_file(path)

    local = Path.cwd() / f"{source}.py"
    if "." not in source and local.is_file():
        return _load_file(local)

    try:
        return importlib.import_module(source)
    except ImportError as e:
        msg = f"Cannot import {source!r}: {e}"
        raise ConfigError(msg) from e


def _is_model(name: str, value: object) -> bool:
    """Public, callable and not a class: functions, partials, callable objects."""
    return not name.startswith("_") and callable(value) and not isinstance(value, type)


class ModelRegistry:
    """Looks up data-generating functions by model name."""

    _models: Mapping[str, object] | None
    _module: ModuleType | None
    source: str

    def __init__(
        self,
        models: Mapping[str, DataGenerator] | ModuleType,
        source: str | None = None,
    ) -> None:
        if isinstance(models, ModuleType):
            self._module = models
            self._models = None
            self.source = source or models.__name__
        else:
            self._module = None
            self._models = dict(models)
            self.source = source or "<mapping>"

    @classmethod
    def from_source(cls, source: str) -> ModelRegistry:
        """Build a registry from a module name or .py path."""
        return cls(load_module(source), source=source)

    def _entries(self) -> Mapping[str, object]:
        if self._models is not None:
            return self._models
        return vars(cast("ModuleType", self._module))

    def names(self) -> list[str]:
        """Return the names get() accepts, in sorted order."""
        return sorted(
            name for name, value in self._entries().items() if _is_model(name, value)
        )

    def get(self, model_name: str) -> DataGenerator:
        """Return the generator for model_name.

        Raises:
            GenerationError: If no such model exists.

        """
        candidate = self._entries().get(model_name)
        if not _is_model(model_name, candidate):
            msg = f"Unknown model {model_name!r} in {self.source}"
            raise GenerationError(msg)
        return cast("DataGenerator", candidate)

    def generate(
        self,
        model_name: str,
        replicate_count: int,
        series_length: int,
    ) -> object:
        """Generate one dataset from the named model.

        Raises:
            GenerationError: If the model is unknown or raises.

        """
        generator = self.get(model_name)
        try:
            return generator(replicate_count, series_length)
        except Exception as e:
            msg = f"{type(e).__name__}: {e}"
            raise GenerationError(msg) from e


def load_optimizer(reference: str) -> Optimizer:
    """Resolve an optimizer given as ``"module:attribute"``.

    The returned callable raises OptimizationError when the optimizer fails.

    Raises:
        ConfigError: If the reference is malformed or cannot be resolved.

    """
    module_name, sep, attr_path = reference.partition(":")
    if not sep or not module_name or not attr_path:
        msg = f"Optimizer must be given as 'module:attribute', got {reference!r}"
        raise ConfigError(msg)

    target: object = load_module(module_name)
    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            msg = f"Optimizer {reference!r} not found: no attribute {part!r}"
            raise ConfigError(msg) from e

    if not callable(target):
        msg = f"Optimizer {reference!r} is not callable"
        raise ConfigError(msg)
    return wrap_optimizer(cast("Optimizer", target))


def wrap_optimizer(optimize: Optimizer) -> Optimizer:
    """Make optimize raise OptimizationError, keeping the original as cause."""

    @functools.wraps(optimize)
    def wrapper(
        dataset: object,
        band_candidates: Sequence[int],
        subpopulation_candidates: Sequence[int],
        parallelism: int,
    ) -> object:
        try:
            return optimize(dataset, band_candidates, subpopulation_candidates, parallelism)
        except Exception as e:
            msg = f"{type(e).__name__}: {e}"
            raise OptimizationError(msg) from e

    return wrapper


def seed_everything(seed: int | None) -> None:
    """Seed Python's and NumPy's global generators once per study."""
    if seed is None:
        logger.debug("Seeding disabled")
        return
    random.seed(seed)
    np.random.seed(seed)  # noqa: NPY002
    logger.debug("Seeded random generators with %d", seed)
