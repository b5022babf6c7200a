# Copyright (c) Syntropy Systems
"""Pytest fixtures for simstudy tests."""

from __future__ import annotations

import os
import sys
import tempfile
from collections.abc import Generator, Sequence
from pathlib import Path
from typing import Callable

import pytest

from simstudy.executor import ReplicateExecutor
from simstudy.models.study import RunConfig

# Store original cwd at module load time
_original_cwd = Path.cwd()


class ScriptedOptimizer:
    """Fake optimizer that fails on a fixed set of 1-based call numbers."""

    def __init__(self, fail_on: Sequence[int] = (), always_fail: bool = False) -> None:
        self.fail_on = set(fail_on)
        self.always_fail = always_fail
        self.calls: list[dict[str, object]] = []

    def __call__(
        self,
        dataset: object,
        band_candidates: Sequence[int],
        subpopulation_candidates: Sequence[int],
        parallelism: int,
    ) -> dict[str, object]:
        self.calls.append(
            {
                "dataset": dataset,
                "band_candidates": tuple(band_candidates),
                "subpopulation_candidates": tuple(subpopulation_candidates),
                "parallelism": parallelism,
            }
        )
        call_number = len(self.calls)
        if self.always_fail or call_number in self.fail_on:
            msg = f"did not converge on call {call_number}"
            raise RuntimeError(msg)
        return {"call": call_number, "nbands": band_candidates[0]}


def fake_generate(model_name: str, replicate_count: int, series_length: int) -> dict:
    """Deterministic stand-in for a data-generating model."""
    return {
        "model": model_name,
        "x": [[float(i + j) for j in range(series_length)] for i in range(replicate_count)],
    }


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def in_temp_dir(temp_dir: Path) -> Generator[Path, None, None]:
    """Run the test with the temporary directory as working directory."""
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def make_config(temp_dir: Path) -> Callable[..., RunConfig]:
    """Factory for RunConfig with small defaults writing into temp_dir."""

    def _make(**overrides: object) -> RunConfig:
        values: dict[str, object] = {
            "model_name": "model1",
            "replicate_count": 2,
            "series_length": 5,
            "target_successes": 3,
            "parallelism": 1,
            "output_dir": temp_dir / "results",
            "seed": None,
        }
        values.update(overrides)
        return RunConfig.model_validate(values)

    return _make


@pytest.fixture
def make_executor() -> Callable[[ScriptedOptimizer], ReplicateExecutor]:
    """Factory wrapping a scripted optimizer in a ReplicateExecutor."""

    def _make(optimizer: ScriptedOptimizer) -> ReplicateExecutor:
        return ReplicateExecutor(fake_generate, optimizer)

    return _make


@pytest.fixture
def scripted_optimizer() -> Callable[..., ScriptedOptimizer]:
    """Factory for optimizers that fail on chosen calls."""

    def _make(fail_on: Sequence[int] = (), always_fail: bool = False) -> ScriptedOptimizer:
        return ScriptedOptimizer(fail_on=fail_on, always_fail=always_fail)

    return _make


# Module names the tests write into temporary directories and load
LOCAL_MODULES = ("sim_models", "fakefit", "fitlib", "broken", "more_models")


@pytest.fixture(autouse=True)
def isolated_imports(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Undo sys.path and sys.modules changes from loading local modules."""
    monkeypatch.setattr(sys, "path", list(sys.path))

    yield

    for name in LOCAL_MODULES:
        _ = sys.modules.pop(name, None)
