# Copyright (c) Syntropy Systems
"""Background CPU and memory sampling while a study runs."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Event, Thread
from typing import TYPE_CHECKING, cast

from typing_extensions import Self

from simstudy.models.study import SystemMetricRecord

try:
    import psutil
except ImportError:
    psutil = None

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

logger = logging.getLogger(__name__)

SYSTEM_SUFFIX = "_system.jsonl"
_GB = 1024**3


def _process_tree_usage() -> tuple[float | None, int | None]:
    """Resident memory (GB) of this process plus its children, and child count.

    The optimizer's worker pool shows up as children of the study process.
    """
    try:
        proc = psutil.Process()
        children = proc.children(recursive=True)
        rss = cast("int", proc.memory_info().rss)
    except (psutil.Error, OSError):
        return None, None

    for child in children:
        try:
            rss += cast("int", child.memory_info().rss)
        except (psutil.Error, OSError):
            # exited or inaccessible since children() was taken
            continue
    return round(rss / _GB, 3), len(children)


def collect_metrics() -> SystemMetricRecord | None:
    """Sample machine and study-process usage, or None without psutil."""
    if psutil is None:
        return None
    try:
        cpu_percent = psutil.cpu_percent(interval=0.1)
        mem = psutil.virtual_memory()
        used = cast("int", mem.used)
        total = cast("int", mem.total)
    except (AttributeError, OSError, ValueError):
        return None
    process_rss_gb, child_processes = _process_tree_usage()

    timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return SystemMetricRecord.model_validate(
        {
            "_timestamp": timestamp,
            "cpu_percent": cpu_percent,
            "memory_used_gb": round(used / _GB, 2),
            "memory_total_gb": round(total / _GB, 2),
            "process_rss_gb": process_rss_gb,
            "child_processes": child_processes,
        }
    )


class SystemMetricsCollector:
    """Background collector that periodically samples system metrics.

    Useful for watching how the optimizer's worker pool loads the machine.
    """

    _path: Path
    _interval: float
    _stop_event: Event
    _thread: Thread | None

    def __init__(self, path: Path, interval: float = 10.0) -> None:
        """Initialize collector.

        Args:
            path: JSONL file the samples are appended to
            interval: Collection interval in seconds

        """
        self._path = path
        self._interval = interval
        self._stop_event = Event()
        self._thread = None

    @property
    def path(self) -> Path:
        return self._path

    def start(self) -> None:
        """Start background collection."""
        if self._thread is not None:
            return

        self._stop_event.clear()
        self._thread = Thread(target=self._collection_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop background collection."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=2.0)
        self._thread = None

    def __enter__(self) -> Self:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()

    def _collection_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                record = collect_metrics()
                if record is not None:
                    self._write(record)
            except Exception as exc:
                logger.exception("System metrics collection failed", exc_info=exc)

            _ = self._stop_event.wait(timeout=self._interval)

    def _write(self, record: SystemMetricRecord) -> None:
        with self._path.open("a") as f:
            _ = f.write(record.model_dump_json(by_alias=True) + "\n")
            _ = f.flush()
