# Copyright (c) Syntropy Systems
"""The study run loop: retry trials until enough succeed or too many fail."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from simstudy.collaborators import seed_everything
from simstudy.config import prepare_output_dir
from simstudy.events import utcnow
from simstudy.executor import describe_error
from simstudy.models.study import StudyEvent, StudySummary
from simstudy.outcome import Failure, Success
from simstudy.sink import (
    ArtifactSink,
    artifact_name,
    artifact_prefix,
    list_artifacts,
    write_json_atomic,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from simstudy.executor import ReplicateExecutor
    from simstudy.models.study import EventKind, RunConfig, StudyStatus
    from simstudy.outcome import TrialOutcome

logger = logging.getLogger(__name__)

Listener = Callable[[StudyEvent], None]

SUMMARY_SUFFIX = "_summary.json"


def study_file(config: RunConfig, suffix: str) -> Path:
    """Path of a per-study side file (events, summary, system metrics)."""
    prefix = artifact_prefix(
        config.model_name, config.replicate_count, config.series_length
    )
    return config.output_dir / f"{prefix}{suffix}"


@dataclass
class RunCounters:
    """Success and failure tallies, owned by the run loop."""

    successes: int = 0
    failures: int = 0

    @property
    def attempts(self) -> int:
        return self.successes + self.failures

    def record_success(self) -> None:
        self.successes += 1

    def record_failure(self) -> None:
        self.failures += 1


def should_continue(counters: RunCounters, target: int) -> bool:
    """Keep going while both tallies are below the target.

    The failure budget equals the success target.
    """
    return counters.successes < target and counters.failures < target


@dataclass
class StudyResult:
    """How a study ended."""

    config: RunConfig
    counters: RunCounters
    started_at: str
    finished_at: str
    total_seconds: float
    artifacts: list[Path] = field(default_factory=list)

    @property
    def status(self) -> StudyStatus:
        if self.counters.successes >= self.config.target_successes:
            return "completed"
        return "aborted"

    def to_summary(self) -> StudySummary:
        """Build the persisted summary."""
        return StudySummary(
            config=self.config,
            successes=self.counters.successes,
            failures=self.counters.failures,
            attempts=self.counters.attempts,
            status=self.status,
            started_at=self.started_at,
            finished_at=self.finished_at,
            total_seconds=self.total_seconds,
            artifacts=[p.name for p in self.artifacts],
        )


class StudyRunner:
    """Drives replicate trials sequentially and checkpoints every success.

    Each success is written to ``<model>_nrep=<n>_len=<l>_run=<k>.pkl`` where
    ``k`` is the success count after the write, so artifact names stay gapless
    no matter which attempts failed. A failed write counts as a failed trial
    and the same ``k`` is reused by the next attempt.
    """

    config: RunConfig
    _executor: ReplicateExecutor
    _sink: ArtifactSink
    _listeners: list[Listener]
    _clock: Callable[[], float]
    _write_summary: bool

    def __init__(  # noqa: PLR0913
        self,
        config: RunConfig,
        executor: ReplicateExecutor,
        sink: ArtifactSink | None = None,
        listeners: Iterable[Listener] = (),
        clock: Callable[[], float] = time.monotonic,
        write_summary: bool = True,  # noqa: FBT001, FBT002
    ) -> None:
        self.config = config
        self._executor = executor
        self._sink = sink or ArtifactSink()
        self._listeners = list(listeners)
        self._clock = clock
        self._write_summary = write_summary

    def add_listener(self, listener: Listener) -> None:
        """Subscribe to progress events."""
        self._listeners.append(listener)

    def run(self) -> StudyResult:
        """Run the study to completion or until the failure budget is spent.

        Raises:
            ConfigError: If the output directory is unusable. Nothing else
                raised inside a trial escapes this method.

        """
        config = self.config
        _ = prepare_output_dir(config.output_dir)

        existing = list_artifacts(
            config.output_dir,
            model_name=config.model_name,
            replicate_count=config.replicate_count,
            series_length=config.series_length,
        )
        if existing:
            logger.warning(
                "%d artifact(s) from an earlier study already in %s will be overwritten",
                len(existing),
                config.output_dir,
            )

        seed_everything(config.seed)

        counters = RunCounters()
        artifacts: list[Path] = []
        started_at = utcnow()
        start = self._clock()
        self._emit(
            "study_started",
            counters,
            target_successes=config.target_successes,
        )

        attempt = 0
        while should_continue(counters, config.target_successes):
            attempt += 1
            path = self._run_trial(counters, attempt)
            if path is not None:
                artifacts.append(path)

        total_seconds = max(0.0, self._clock() - start)
        result = StudyResult(
            config=config,
            counters=counters,
            started_at=started_at,
            finished_at=utcnow(),
            total_seconds=total_seconds,
            artifacts=artifacts,
        )
        self._emit("study_finished", counters, elapsed_seconds=total_seconds)

        if self._write_summary:
            summary_path = study_file(config, SUMMARY_SUFFIX)
            try:
                write_json_atomic(summary_path, result.to_summary())
            except OSError as e:
                logger.error("Could not write study summary %s: %s", summary_path, e)

        return result

    def _run_trial(self, counters: RunCounters, attempt: int) -> Path | None:
        """Run one iteration; returns the artifact path on success."""
        config = self.config
        run_index = counters.successes + 1
        path = config.output_dir / artifact_name(
            config.model_name,
            config.replicate_count,
            config.series_length,
            run_index,
        )
        self._emit(
            "trial_started",
            counters,
            attempt=attempt,
            run_index=run_index,
            path=str(path),
        )

        outcome: TrialOutcome
        try:
            outcome = self._executor.execute(config)
        except Exception as e:
            logger.debug("Trial %d raised", attempt, exc_info=e)
            outcome = Failure(error=describe_error(e), stage="execution")

        if isinstance(outcome, Success):
            try:
                _ = self._sink.write(path, outcome.record)
            except Exception as e:
                logger.debug("Writing %s failed", path, exc_info=e)
                outcome = Failure(error=describe_error(e), stage="persistence")

        if isinstance(outcome, Success):
            counters.record_success()
            self._emit(
                "trial_succeeded",
                counters,
                attempt=attempt,
                run_index=run_index,
                elapsed_seconds=outcome.record.elapsed_seconds,
                path=str(path),
            )
            return path

        counters.record_failure()
        logger.warning(
            "Trial %d failed during %s: %s",
            attempt,
            outcome.stage,
            outcome.error,
        )
        self._emit(
            "trial_failed",
            counters,
            attempt=attempt,
            run_index=run_index,
            stage=outcome.stage,
            error=outcome.error,
        )
        return None

    def _emit(
        self,
        kind: EventKind,
        counters: RunCounters,
        **fields: object,
    ) -> None:
        event = StudyEvent.model_validate(
            {
                "kind": kind,
                "timestamp": utcnow(),
                "successes": counters.successes,
                "failures": counters.failures,
                **fields,
            }
        )
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.exception("Progress listener failed", exc_info=exc)
