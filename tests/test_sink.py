# Copyright (c) Syntropy Systems
"""Tests for artifact naming and atomic persistence."""

from __future__ import annotations

import pickle
from pathlib import Path

import pytest

from simstudy.outcome import ResultRecord
from simstudy.sink import (
    ArtifactSink,
    PersistenceError,
    artifact_name,
    list_artifacts,
    load_artifact,
    parse_artifact_name,
)


def _record(output: object = None, elapsed: float = 1.5) -> ResultRecord:
    return ResultRecord(
        generated_data={"x": [[1.0, 2.0], [3.0, 4.0]]},
        optimization_output=output if output is not None else {"nbands": 3},
        elapsed_seconds=elapsed,
    )


class TestArtifactNames:
    """Tests for artifact naming."""

    def test_name_format(self) -> None:
        assert artifact_name("model2a", 10, 200, 7) == "model2a_nrep=10_len=200_run=7.pkl"

    def test_index_is_one_based(self) -> None:
        with pytest.raises(ValueError, match="run_index"):
            _ = artifact_name("model1", 1, 1, 0)

    def test_parse_roundtrip(self) -> None:
        assert parse_artifact_name("model_x_nrep=3_len=50_run=12.pkl") == (
            "model_x",
            3,
            50,
            12,
        )

    def test_parse_rejects_other_files(self) -> None:
        assert parse_artifact_name("model1_nrep=3_len=50_summary.json") is None
        assert parse_artifact_name(".model1_nrep=3_len=50_run=1.pkl.abc.tmp") is None


class TestArtifactSink:
    """Tests for ArtifactSink.write()."""

    def test_write_and_load(self, temp_dir: Path) -> None:
        """A written artifact is self-contained."""
        path = temp_dir / artifact_name("model1", 2, 2, 1)

        _ = ArtifactSink().write(path, _record())

        with path.open("rb") as f:
            payload = pickle.load(f)
        assert set(payload) == {"data", "fbam_out", "time"}
        assert payload["time"] == 1.5

        record = load_artifact(path)
        assert record == _record()

    def test_no_temp_files_left(self, temp_dir: Path) -> None:
        path = temp_dir / artifact_name("model1", 2, 2, 1)

        _ = ArtifactSink().write(path, _record())

        assert [p.name for p in temp_dir.iterdir()] == [path.name]

    def test_unpicklable_output(self, temp_dir: Path) -> None:
        """A serialization failure leaves nothing behind."""
        path = temp_dir / artifact_name("model1", 2, 2, 1)

        with pytest.raises(PersistenceError):
            _ = ArtifactSink().write(path, _record(output=lambda: None))

        assert list(temp_dir.iterdir()) == []

    def test_failed_write_keeps_previous_file(self, temp_dir: Path) -> None:
        """An existing artifact is replaced whole or not at all."""
        path = temp_dir / artifact_name("model1", 2, 2, 1)
        _ = ArtifactSink().write(path, _record(elapsed=9.0))

        with pytest.raises(PersistenceError):
            _ = ArtifactSink().write(path, _record(output=lambda: None))

        assert load_artifact(path).elapsed_seconds == 9.0
        assert [p.name for p in temp_dir.iterdir()] == [path.name]

    def test_missing_directory(self, temp_dir: Path) -> None:
        path = temp_dir / "gone" / artifact_name("model1", 2, 2, 1)

        with pytest.raises(PersistenceError, match="Failed to write"):
            _ = ArtifactSink().write(path, _record())


class TestListArtifacts:
    """Tests for listing artifacts in an output directory."""

    def test_numeric_order(self, temp_dir: Path) -> None:
        """run=10 sorts after run=2."""
        sink = ArtifactSink()
        for index in (10, 2, 1):
            _ = sink.write(temp_dir / artifact_name("model1", 2, 2, index), _record())

        assert [a.run_index for a in list_artifacts(temp_dir)] == [1, 2, 10]

    def test_filters(self, temp_dir: Path) -> None:
        sink = ArtifactSink()
        _ = sink.write(temp_dir / artifact_name("model1", 2, 2, 1), _record())
        _ = sink.write(temp_dir / artifact_name("model1", 4, 2, 1), _record())
        _ = sink.write(temp_dir / artifact_name("model2", 2, 2, 1), _record())
        _ = (temp_dir / "notes.txt").write_text("ignore me")

        assert len(list_artifacts(temp_dir)) == 3
        assert [a.model_name for a in list_artifacts(temp_dir, model_name="model2")] == [
            "model2"
        ]
        assert [a.replicate_count for a in list_artifacts(temp_dir, replicate_count=4)] == [
            4
        ]
        assert list_artifacts(temp_dir, series_length=99) == []

    def test_missing_directory(self, temp_dir: Path) -> None:
        assert list_artifacts(temp_dir / "nope") == []


class TestResultRecord:
    """Tests for ResultRecord payload handling."""

    def test_negative_elapsed_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            _ = _record(elapsed=-0.1)

    def test_payload_missing_fields(self) -> None:
        with pytest.raises(ValueError, match="fbam_out"):
            _ = ResultRecord.from_payload({"data": [], "time": 1.0})

    def test_load_rejects_non_mapping(self, temp_dir: Path) -> None:
        path = temp_dir / "model1_nrep=1_len=1_run=1.pkl"
        _ = path.write_bytes(pickle.dumps([1, 2, 3]))

        with pytest.raises(TypeError):
            _ = load_artifact(path)
