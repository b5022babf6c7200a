# Copyright (c) Syntropy Systems
"""simstudy show command."""
from __future__ import annotations

import pickle
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from simstudy.collaborators import ensure_cwd_importable
from simstudy.sink import ArtifactInfo, list_artifacts, load_artifact

console = Console()


def _load_time(artifact: ArtifactInfo) -> tuple[float | None, str | None]:
    try:
        record = load_artifact(artifact.path)
    except (
        OSError,
        EOFError,
        pickle.UnpicklingError,
        ImportError,
        AttributeError,
        TypeError,
        ValueError,
    ) as e:
        return None, f"{type(e).__name__}: {e}"
    return record.elapsed_seconds, None


def find_gaps(indices: list[int]) -> list[int]:
    """Return the run indices missing from 1..max(indices)."""
    if not indices:
        return []
    present = set(indices)
    return [i for i in range(1, max(indices) + 1) if i not in present]


def show(
    results_dir: Path = typer.Argument(
        ...,
        help="Directory holding the saved results",
    ),
    model_name: Optional[str] = typer.Option(
        None,
        "--model",
        help="Only show this model",
    ),
    nrep: Optional[int] = typer.Option(
        None,
        "--nrep",
        help="Only show this replicate count",
    ),
    length: Optional[int] = typer.Option(
        None,
        "--len",
        help="Only show this series length",
    ),
) -> None:
    """List saved runs with their optimizer time.

    Each artifact is loaded to read its timing, so this also checks that
    every file in the study can be read back.
    """
    if not results_dir.is_dir():
        console.print(f"[red]Error:[/red] Not a directory: {escape(str(results_dir))}")
        raise typer.Exit(1)

    artifacts = list_artifacts(
        results_dir,
        model_name=model_name,
        replicate_count=nrep,
        series_length=length,
    )
    if not artifacts:
        console.print("[dim]No results found[/dim]")
        return

    # classes defined in a local models file are imported from here on load
    ensure_cwd_importable()

    table = Table(show_header=True, header_style="bold")
    table.add_column("Model")
    table.add_column("nrep", justify="right")
    table.add_column("len", justify="right")
    table.add_column("Run", justify="right")
    table.add_column("Time (s)", justify="right")
    table.add_column("File", style="dim")

    times: list[float] = []
    unreadable = 0
    by_study: dict[tuple[str, int, int], list[int]] = {}
    for artifact in artifacts:
        elapsed, error = _load_time(artifact)
        if elapsed is None:
            unreadable += 1
            time_str = f"[red]unreadable[/red] [dim]{escape(error or '')}[/dim]"
        else:
            times.append(elapsed)
            time_str = f"{elapsed:.3f}"

        key = (artifact.model_name, artifact.replicate_count, artifact.series_length)
        by_study.setdefault(key, []).append(artifact.run_index)

        table.add_row(
            artifact.model_name,
            str(artifact.replicate_count),
            str(artifact.series_length),
            str(artifact.run_index),
            time_str,
            artifact.name,
        )

    console.print(table)
    console.print(f"\n[bold]{len(artifacts)}[/bold] run(s)")
    if times:
        mean = sum(times) / len(times)
        console.print(f"  [dim]mean time:[/dim] {mean:.3f}s")
        console.print(f"  [dim]total time:[/dim] {sum(times):.3f}s")
    if unreadable:
        console.print(f"  [red]unreadable:[/red] {unreadable}")

    for (model, rep, series_len), indices in by_study.items():
        gaps = find_gaps(indices)
        if gaps:
            console.print(
                f"[yellow]Warning:[/yellow] {model} nrep={rep} len={series_len} "
                f"is missing run(s) {', '.join(str(g) for g in gaps)}"
            )
