# Copyright (c) Syntropy Systems
"""Append-only progress log for a running study."""
from __future__ import annotations

from contextlib import suppress
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import ValidationError

from simstudy.models.study import StudyEvent

if TYPE_CHECKING:
    from pathlib import Path

EVENTS_SUFFIX = "_events.jsonl"


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class EventLog:
    """Writes each StudyEvent as one JSON line.

    Can be passed directly as a StudyRunner listener.
    """

    path: Path

    def __init__(self, path: Path, *, truncate: bool = True) -> None:
        self.path = path
        if truncate:
            _ = self.path.write_text("")

    def __call__(self, event: StudyEvent) -> None:
        self.append(event)

    def append(self, event: StudyEvent) -> None:
        """Append one event and flush it to disk."""
        with self.path.open("a") as f:
            _ = f.write(event.model_dump_json(exclude_none=True) + "\n")
            _ = f.flush()


def read_events(path: Path) -> list[StudyEvent]:
    """Read events from a JSONL file, tolerating partial final lines."""
    events: list[StudyEvent] = []

    if not path.exists():
        return events

    with path.open() as f:
        for raw_line in f:
            line = raw_line.strip()
            if line:
                with suppress(ValidationError):
                    events.append(StudyEvent.model_validate_json(line))

    return events
