# Copyright (c) Syntropy Systems
"""Pydantic models for study configuration, progress events and summaries."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from typing_extensions import Annotated, TypeAlias

from .base import ExtraAllowModel, FrozenModel, SimstudyBaseModel

PositiveCount: TypeAlias = Annotated[int, Field(strict=True, gt=0)]
SeedValue: TypeAlias = Annotated[int, Field(strict=True, ge=0, lt=2**32)]

DEFAULT_CANDIDATES: tuple[int, ...] = (2, 3, 4, 5, 6)
DEFAULT_SEED = 451

EventKind: TypeAlias = Literal[
    "study_started",
    "trial_started",
    "trial_succeeded",
    "trial_failed",
    "study_finished",
]
StudyStatus: TypeAlias = Literal["completed", "aborted"]


class RunConfig(FrozenModel):
    """Parameters of one replicated study.

    Built once at startup and never mutated afterwards.
    """

    model_name: str = Field(min_length=1)
    replicate_count: PositiveCount
    series_length: PositiveCount
    target_successes: PositiveCount
    parallelism: PositiveCount
    output_dir: Path

    # Hyperparameter grid handed to the optimizer on every trial
    band_candidates: tuple[PositiveCount, ...] = DEFAULT_CANDIDATES
    subpopulation_candidates: tuple[PositiveCount, ...] = DEFAULT_CANDIDATES

    seed: SeedValue | None = DEFAULT_SEED

    @field_validator("model_name")
    @classmethod
    def _check_model_name(cls, value: str) -> str:
        # The name ends up in artifact file names
        if "/" in value or "\\" in value or value in (".", ".."):
            msg = f"model name must not contain path separators: {value!r}"
            raise ValueError(msg)
        return value

    @field_validator("band_candidates", "subpopulation_candidates")
    @classmethod
    def _check_candidates(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if not value:
            msg = "candidate grid must not be empty"
            raise ValueError(msg)
        return value


class StudyEvent(SimstudyBaseModel):
    """One entry of the progress stream."""

    kind: EventKind
    timestamp: str
    successes: int
    failures: int
    target_successes: int | None = None
    attempt: int | None = None
    run_index: int | None = None
    elapsed_seconds: float | None = None
    path: str | None = None
    stage: str | None = None
    error: str | None = None


class StudySummary(SimstudyBaseModel):
    """Final report written next to the artifacts."""

    config: RunConfig
    successes: int
    failures: int
    attempts: int
    status: StudyStatus
    started_at: str
    finished_at: str
    total_seconds: float
    artifacts: list[str] = Field(default_factory=list)


class SystemMetricRecord(ExtraAllowModel):
    """Metric record from the system metrics log."""

    timestamp: str = Field(alias="_timestamp")
    cpu_percent: float | None = None
    memory_used_gb: float | None = None
    memory_total_gb: float | None = None
    process_rss_gb: float | None = None
    child_processes: int | None = None
