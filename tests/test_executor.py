# Copyright (c) Syntropy Systems
"""Tests for the replicate executor."""

from __future__ import annotations

from simstudy.collaborators import (
    GenerationError,
    ModelRegistry,
    OptimizationError,
    wrap_optimizer,
)
from simstudy.executor import ReplicateExecutor, describe_error
from simstudy.outcome import Failure, Success


class FakeClock:
    """Clock advanced by hand."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestReplicateExecutor:
    """Tests for ReplicateExecutor.execute()."""

    def test_success_record(self, make_config) -> None:
        """A successful trial carries data, optimizer output and timing."""
        config = make_config()

        def generate(model_name, replicate_count, series_length):
            return {"x": [model_name, replicate_count, series_length]}

        def optimize(dataset, bands, subpops, parallelism):
            return {"fit": dataset["x"], "bands": tuple(bands)}

        outcome = ReplicateExecutor(generate, optimize).execute(config)

        assert isinstance(outcome, Success)
        assert outcome.record.generated_data == {"x": ["model1", 2, 5]}
        assert outcome.record.optimization_output == {
            "fit": ["model1", 2, 5],
            "bands": (2, 3, 4, 5, 6),
        }
        assert outcome.record.elapsed_seconds >= 0

    def test_times_only_the_optimizer(self, make_config) -> None:
        """Generation time is excluded from the elapsed time."""
        config = make_config()
        clock = FakeClock()

        def slow_generate(model_name, replicate_count, series_length):
            clock.now += 100.0
            return [1, 2, 3]

        def optimize(dataset, bands, subpops, parallelism):
            clock.now += 2.5
            return "fitted"

        outcome = ReplicateExecutor(slow_generate, optimize, clock=clock).execute(config)

        assert isinstance(outcome, Success)
        assert outcome.record.elapsed_seconds == 2.5

    def test_generation_failure(self, make_config) -> None:
        """A generation error becomes a Failure and skips the optimizer."""
        config = make_config()
        optimizer_calls: list[object] = []

        def generate(model_name, replicate_count, series_length):
            msg = "matrix not positive definite"
            raise ValueError(msg)

        def optimize(*args):
            optimizer_calls.append(args)

        outcome = ReplicateExecutor(generate, optimize).execute(config)

        assert isinstance(outcome, Failure)
        assert outcome.stage == "generation"
        assert outcome.error == "ValueError: matrix not positive definite"
        assert optimizer_calls == []

    def test_optimization_failure(self, make_config) -> None:
        """An optimizer error becomes a Failure without a partial record."""
        config = make_config()

        def optimize(*args):
            msg = "no convergence after 500 generations"
            raise OptimizationError(msg)

        outcome = ReplicateExecutor(lambda *a: [0.0], optimize).execute(config)

        assert isinstance(outcome, Failure)
        assert outcome.stage == "optimization"
        assert "no convergence" in outcome.error

    def test_wrapped_optimizer_failure(self, make_config) -> None:
        """The failure names the optimizer's own error, not the wrapper."""
        config = make_config()

        def fit(dataset, bands, subpops, parallelism):
            msg = "Hessian is singular"
            raise ArithmeticError(msg)

        outcome = ReplicateExecutor(lambda *a: [0.0], wrap_optimizer(fit)).execute(config)

        assert isinstance(outcome, Failure)
        assert outcome.stage == "optimization"
        assert outcome.error == "ArithmeticError: Hessian is singular"

    def test_unknown_model(self, make_config) -> None:
        """Asking the registry for a missing model fails the trial."""
        config = make_config(model_name="model9")
        registry = ModelRegistry({"model1": lambda n, length: [0] * n})

        outcome = ReplicateExecutor(registry.generate, lambda *a: None).execute(config)

        assert isinstance(outcome, Failure)
        assert outcome.stage == "generation"
        assert "Unknown model 'model9'" in outcome.error


class TestDescribeError:
    """Tests for error descriptions."""

    def test_plain_error(self) -> None:
        assert describe_error(ValueError("bad shape")) == "ValueError: bad shape"

    def test_error_without_message(self) -> None:
        assert describe_error(ZeroDivisionError()) == "ZeroDivisionError"

    def test_unwraps_collaborator_errors(self) -> None:
        try:
            try:
                msg = "singular matrix"
                raise ArithmeticError(msg)
            except ArithmeticError as inner:
                msg = "ArithmeticError: singular matrix"
                raise GenerationError(msg) from inner
        except GenerationError as e:
            assert describe_error(e) == "ArithmeticError: singular matrix"
