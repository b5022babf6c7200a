# Copyright (c) Syntropy Systems
"""Tests for system metrics sampling."""

from __future__ import annotations

import subprocess
import sys
import time
from pathlib import Path

import pytest

from simstudy.models.study import SystemMetricRecord
from simstudy.system_metrics import SystemMetricsCollector, collect_metrics


class TestSystemMetrics:
    """Tests for the background collector."""

    def test_collect_metrics(self) -> None:
        pytest.importorskip("psutil")

        record = collect_metrics()

        assert record is not None
        assert record.memory_total_gb is not None
        assert record.memory_total_gb > 0

    def test_process_usage_counts_children(self) -> None:
        pytest.importorskip("psutil")

        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(5)"])
        try:
            record = collect_metrics()
        finally:
            child.kill()
            _ = child.wait()

        assert record is not None
        assert record.process_rss_gb is not None
        assert record.process_rss_gb > 0
        assert record.child_processes is not None
        assert record.child_processes >= 1

    def test_collector_writes_samples(self, temp_dir: Path) -> None:
        pytest.importorskip("psutil")
        path = temp_dir / "model1_nrep=2_len=5_system.jsonl"

        with SystemMetricsCollector(path, interval=0.05):
            deadline = time.time() + 5.0
            while time.time() < deadline and not path.exists():
                time.sleep(0.05)

        lines = path.read_text().splitlines()
        assert lines
        record = SystemMetricRecord.model_validate_json(lines[0])
        assert record.timestamp.endswith("Z")

    def test_stop_without_start(self, temp_dir: Path) -> None:
        collector = SystemMetricsCollector(temp_dir / "system.jsonl")

        collector.stop()

        assert not (temp_dir / "system.jsonl").exists()
