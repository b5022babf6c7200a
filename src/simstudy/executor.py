# Copyright (c) Syntropy Systems
"""Replicate executor: one trial of generate-then-optimize."""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from simstudy.collaborators import GenerationError, OptimizationError
from simstudy.outcome import Failure, ResultRecord, Success

if TYPE_CHECKING:
    from simstudy.collaborators import Optimizer
    from simstudy.models.study import RunConfig
    from simstudy.outcome import TrialOutcome

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str, int, int], object]


def describe_error(error: BaseException) -> str:
    """Render an error as ``"Type: message"``, unwrapping our own wrappers."""
    if isinstance(error, (GenerationError, OptimizationError)) and error.__cause__:
        error = error.__cause__
    message = str(error)
    name = type(error).__name__
    return f"{name}: {message}" if message else name


class ReplicateExecutor:
    """Runs one trial: generate a dataset, hand it to the optimizer, time it.

    Never raises for collaborator failures; they come back as ``Failure``.
    """

    _generate: GenerateFn
    _optimize: Optimizer
    _clock: Callable[[], float]

    def __init__(
        self,
        generate: GenerateFn,
        optimize: Optimizer,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """Initialize an executor.

        Args:
            generate: Called as ``generate(model_name, replicate_count, series_length)``
            optimize: Called with the dataset, both candidate grids and the
                parallelism degree
            clock: Monotonic clock used to time the optimizer call

        """
        self._generate = generate
        self._optimize = optimize
        self._clock = clock

    def execute(self, config: RunConfig) -> TrialOutcome:
        """Run one trial for config."""
        try:
            dataset = self._generate(
                config.model_name,
                config.replicate_count,
                config.series_length,
            )
        except Exception as e:
            logger.debug("Data generation failed", exc_info=e)
            return Failure(error=describe_error(e), stage="generation")

        started = self._clock()
        try:
            output = self._optimize(
                dataset,
                config.band_candidates,
                config.subpopulation_candidates,
                config.parallelism,
            )
        except Exception as e:
            logger.debug("Optimization failed", exc_info=e)
            return Failure(error=describe_error(e), stage="optimization")
        elapsed = max(0.0, self._clock() - started)

        return Success(
            ResultRecord(
                generated_data=dataset,
                optimization_output=output,
                elapsed_seconds=elapsed,
            )
        )
