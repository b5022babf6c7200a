# Copyright (c) Syntropy Systems
"""simstudy watch command - live view of running studies."""
from __future__ import annotations

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.table import Table

from simstudy.cli.run_cmd import format_duration
from simstudy.events import EVENTS_SUFFIX, read_events

if TYPE_CHECKING:
    from simstudy.models.study import StudyEvent

console = Console()


def format_time_ago(timestamp: str | None, now: datetime | None = None) -> str:
    """Format a timestamp as time ago."""
    if not timestamp:
        return "-"

    try:
        ts = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        now = now or datetime.now(timezone.utc)
        seconds = int((now - ts).total_seconds())
    except (TypeError, ValueError):
        return "-"
    else:
        if seconds < 60:
            return f"{seconds}s ago"
        if seconds < 3600:
            return f"{seconds // 60}m ago"
        return f"{seconds // 3600}h ago"


def mean_fit_seconds(events: list[StudyEvent]) -> float | None:
    """Mean optimizer time over the successful runs logged so far."""
    fits = [
        e.elapsed_seconds
        for e in events
        if e.kind == "trial_succeeded" and e.elapsed_seconds is not None
    ]
    if not fits:
        return None
    return sum(fits) / len(fits)


def estimate_remaining(events: list[StudyEvent], target: int | None) -> float | None:
    """Seconds left at the mean optimizer time of the runs so far.

    Only counts optimizer time, so it underestimates studies where data
    generation or failed attempts are expensive.
    """
    if target is None or not events:
        return None
    mean = mean_fit_seconds(events)
    if mean is None:
        return None
    return max(0, target - events[-1].successes) * mean


def _study_state(last: StudyEvent, target: int | None) -> str:
    if last.kind != "study_finished":
        return "[blue]running[/blue]"
    if target is not None and last.successes >= target:
        return "[green]done[/green]"
    return "[yellow]aborted[/yellow]"


def build_studies_table(results_dir: Path) -> Table:
    """Build one row per events log found in results_dir."""
    table = Table(title="Studies", show_header=True, header_style="bold")
    table.add_column("Study")
    table.add_column("OK", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("State")
    table.add_column("Fit", justify="right")
    table.add_column("ETA", justify="right")
    table.add_column("Updated")

    logs = sorted(results_dir.glob(f"*{EVENTS_SUFFIX}"))
    if not logs:
        table.add_row("[dim]No studies[/dim]", "-", "-", "-", "-", "-", "-")
        return table

    for log_path in logs:
        study = log_path.name[: -len(EVENTS_SUFFIX)]
        events = read_events(log_path)
        if not events:
            table.add_row(study, "-", "-", "[dim]empty[/dim]", "-", "-", "-")
            continue

        target = next(
            (e.target_successes for e in events if e.target_successes is not None),
            None,
        )
        last = events[-1]
        target_str = f"/{target}" if target is not None else ""

        mean = mean_fit_seconds(events)
        eta = estimate_remaining(events, target) if last.kind != "study_finished" else None

        table.add_row(
            study,
            f"{last.successes}{target_str}",
            f"{last.failures}{target_str}",
            _study_state(last, target),
            format_duration(mean) if mean is not None else "-",
            format_duration(eta) if eta is not None else "-",
            format_time_ago(last.timestamp),
        )

    return table


def build_display(results_dir: Path) -> Table:
    """Build the full display layout."""
    layout = Table.grid(padding=1)
    layout.add_row(build_studies_table(results_dir))
    now = datetime.now(timezone.utc)
    layout.add_row(
        f"[dim]Last updated: {now.strftime('%H:%M:%S')} (Ctrl+C to exit)[/dim]"
    )
    return layout


def watch(
    results_dir: Path = typer.Argument(
        ...,
        help="Directory the studies write their results to",
    ),
    interval: float = typer.Option(
        2.0,
        "--interval", "-i",
        help="Refresh interval in seconds",
    ),
    once: bool = typer.Option(
        False,  # noqa: FBT003
        "--once",
        help="Print the table once and exit",
    ),
) -> None:
    """Watch study progress with live updates.

    Reads the events logs, so it works from another terminal or machine
    sharing the results directory. Press Ctrl+C to exit.
    """
    if not results_dir.is_dir():
        console.print(f"[red]Error:[/red] Not a directory: {results_dir}")
        raise typer.Exit(1)

    if once:
        console.print(build_studies_table(results_dir))
        return

    console.print("[dim]Starting watch mode...[/dim]")

    try:
        with Live(console=console, refresh_per_second=1, screen=True) as live:
            while True:
                live.update(build_display(results_dir))
                time.sleep(interval)

    except KeyboardInterrupt:
        console.print("\n[dim]Watch stopped[/dim]")
