# Copyright (c) Syntropy Systems
"""Durable, atomic persistence of trial artifacts."""
from __future__ import annotations

import contextlib
import os
import pickle
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, TYPE_CHECKING, Callable

from simstudy.outcome import ResultRecord

if TYPE_CHECKING:
    from pydantic import BaseModel

ARTIFACT_SUFFIX = ".pkl"

_ARTIFACT_RE = re.compile(
    r"^(?P<model>.+)_nrep=(?P<nrep>\d+)_len=(?P<len>\d+)_run=(?P<index>\d+)\.pkl$"
)


class PersistenceError(RuntimeError):
    """Writing an artifact failed; nothing was left at the target path."""


@dataclass(frozen=True)
class ArtifactInfo:
    """An artifact file found in an output directory."""

    path: Path
    model_name: str
    replicate_count: int
    series_length: int
    run_index: int

    @property
    def name(self) -> str:
        return self.path.name


def artifact_prefix(model_name: str, replicate_count: int, series_length: int) -> str:
    """Shared file name prefix for one {model, nrep, len} study."""
    return f"{model_name}_nrep={replicate_count}_len={series_length}"


def artifact_name(
    model_name: str,
    replicate_count: int,
    series_length: int,
    run_index: int,
) -> str:
    """File name of the artifact for the run_index-th success (1-based)."""
    if run_index < 1:
        msg = f"run_index must be >= 1, got {run_index}"
        raise ValueError(msg)
    prefix = artifact_prefix(model_name, replicate_count, series_length)
    return f"{prefix}_run={run_index}{ARTIFACT_SUFFIX}"


def parse_artifact_name(name: str) -> tuple[str, int, int, int] | None:
    """Split an artifact file name into (model, nrep, len, run_index)."""
    match = _ARTIFACT_RE.match(name)
    if match is None:
        return None
    return (
        match.group("model"),
        int(match.group("nrep")),
        int(match.group("len")),
        int(match.group("index")),
    )


def list_artifacts(
    directory: Path,
    model_name: str | None = None,
    replicate_count: int | None = None,
    series_length: int | None = None,
) -> list[ArtifactInfo]:
    """List artifacts in directory, ordered by study then run index."""
    if not directory.is_dir():
        return []

    found: list[ArtifactInfo] = []
    for path in directory.iterdir():
        parsed = parse_artifact_name(path.name)
        if parsed is None or not path.is_file():
            continue
        model, nrep, length, index = parsed
        if model_name is not None and model != model_name:
            continue
        if replicate_count is not None and nrep != replicate_count:
            continue
        if series_length is not None and length != series_length:
            continue
        found.append(ArtifactInfo(path, model, nrep, length, index))

    found.sort(
        key=lambda a: (a.model_name, a.replicate_count, a.series_length, a.run_index)
    )
    return found


def _write_atomic(path: Path, write: Callable[[IO[bytes]], None]) -> None:
    """Write via a sibling temp file and rename it onto path."""
    tmp_name: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            write(tmp)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if tmp_name is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
        raise


def write_json_atomic(path: Path, model: BaseModel) -> None:
    """Atomically write a pydantic model as indented JSON."""
    payload = model.model_dump_json(indent=2).encode()
    _write_atomic(path, lambda f: f.write(payload))


class ArtifactSink:
    """Pickles result records to their success-indexed path.

    A killed process leaves at most a hidden ``.tmp`` file behind, never a
    truncated artifact.
    """

    protocol: int

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL) -> None:
        self.protocol = protocol

    def write(self, path: Path, record: ResultRecord) -> Path:
        """Durably write record to path.

        Raises:
            PersistenceError: If serialization or any file operation fails.

        """
        try:
            payload = pickle.dumps(record.to_payload(), protocol=self.protocol)
            _write_atomic(path, lambda f: f.write(payload))
        except (OSError, pickle.PicklingError, TypeError, AttributeError) as e:
            msg = f"Failed to write {path}: {type(e).__name__}: {e}"
            raise PersistenceError(msg) from e
        return path


def load_artifact(path: Path) -> ResultRecord:
    """Read an artifact back into a ResultRecord.

    Artifacts are pickles; only load files from studies you ran yourself.
    """
    with path.open("rb") as f:
        payload = pickle.load(f)  # noqa: S301
    if not isinstance(payload, dict):
        msg = f"{path} does not contain an artifact payload"
        raise TypeError(msg)
    return ResultRecord.from_payload(payload)
