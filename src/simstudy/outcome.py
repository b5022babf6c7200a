# Copyright (c) Syntropy Systems
"""Outcome types for a single replicate trial."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from typing_extensions import TypeAlias


@dataclass(frozen=True)
class ResultRecord:
    """Everything a successful trial produced.

    Stored as ``data``, ``fbam_out`` and ``time`` in the artifact.
    """

    generated_data: object
    optimization_output: object
    elapsed_seconds: float

    def __post_init__(self) -> None:
        if self.elapsed_seconds < 0:
            msg = f"elapsed_seconds must be non-negative, got {self.elapsed_seconds}"
            raise ValueError(msg)

    def to_payload(self) -> dict[str, object]:
        """Return the artifact payload."""
        return {
            "data": self.generated_data,
            "fbam_out": self.optimization_output,
            "time": float(self.elapsed_seconds),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> ResultRecord:
        """Rebuild a record from an artifact payload."""
        missing = {"data", "fbam_out", "time"} - set(payload)
        if missing:
            msg = f"Artifact payload is missing fields: {', '.join(sorted(missing))}"
            raise ValueError(msg)
        elapsed = payload["time"]
        if not isinstance(elapsed, (int, float)):
            msg = f"Artifact field 'time' must be a number, got {type(elapsed).__name__}"
            raise TypeError(msg)
        return cls(
            generated_data=payload["data"],
            optimization_output=payload["fbam_out"],
            elapsed_seconds=float(elapsed),
        )


@dataclass(frozen=True)
class Success:
    """Trial finished and produced a record."""

    record: ResultRecord


@dataclass(frozen=True)
class Failure:
    """Trial failed; ``stage`` names where (generation, optimization, persistence)."""

    error: str
    stage: str = "unknown"


TrialOutcome: TypeAlias = Union[Success, Failure]
