# Copyright (c) Syntropy Systems
"""simstudy run command."""
from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.markup import escape

from simstudy.collaborators import ModelRegistry, load_optimizer
from simstudy.config import (
    ConfigError,
    build_run_config,
    load_defaults,
    parse_candidates,
    prepare_output_dir,
)
from simstudy.events import EVENTS_SUFFIX, EventLog
from simstudy.executor import ReplicateExecutor
from simstudy.study import SUMMARY_SUFFIX, StudyRunner, study_file
from simstudy.system_metrics import SYSTEM_SUFFIX, SystemMetricsCollector

if TYPE_CHECKING:
    from simstudy.models.study import RunConfig, StudyEvent
    from simstudy.study import StudyResult

console = Console()
logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to human readable."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    total = int(seconds)
    if total < 3600:
        m, s = divmod(total, 60)
        return f"{m}m {s}s"
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return f"{h}h {m}m {s}s"


class ProgressPrinter:
    """Prints one block of progress lines per study event."""

    def __init__(self, out: Console) -> None:
        self.console = out

    def __call__(self, event: StudyEvent) -> None:
        c = self.console
        if event.kind == "trial_started":
            c.print(f"\n[blue]Replicate starting at {event.timestamp}[/blue]")
            c.print(f"  [dim]attempt:[/dim] {event.attempt}")
            c.print(f"  [dim]successful runs:[/dim] {event.successes}")
            c.print(f"  [dim]failed runs:[/dim] {event.failures}")
            c.print(f"  [dim]results file:[/dim] {event.path}")
        elif event.kind == "trial_succeeded":
            elapsed = event.elapsed_seconds or 0.0
            c.print(f"[green]Run {event.run_index} completed[/green] in {elapsed:.3f} seconds")
        elif event.kind == "trial_failed":
            c.print(
                f"[red]Attempt {event.attempt} failed[/red] during {event.stage}: "
                f"{escape(event.error or '')}"
            )


def _print_parameters(
    config: RunConfig,
    models_source: str,
    optimizer_ref: str,
) -> None:
    console.print("[bold]STUDY PARAMETERS[/bold]")
    console.print(f"  [dim]nsim:[/dim] {config.target_successes}")
    console.print(f"  [dim]ncores:[/dim] {config.parallelism}")
    console.print(f"  [dim]model_name:[/dim] {config.model_name}")
    console.print(f"  [dim]nrep:[/dim] {config.replicate_count}")
    console.print(f"  [dim]len:[/dim] {config.series_length}")
    console.print(f"  [dim]results_dir:[/dim] {config.output_dir}")
    console.print(f"  [dim]bands:[/dim] {list(config.band_candidates)}")
    console.print(f"  [dim]subpops:[/dim] {list(config.subpopulation_candidates)}")
    console.print(f"  [dim]seed:[/dim] {config.seed if config.seed is not None else 'none'}")
    console.print(f"  [dim]models:[/dim] {models_source}")
    console.print(f"  [dim]optimizer:[/dim] {optimizer_ref}")


def _print_summary(result: StudyResult) -> None:
    counters = result.counters
    if result.status == "completed":
        console.print(f"\n\n[green]RUN COMPLETED[/green] {result.finished_at}")
    else:
        console.print(
            f"\n\n[yellow]RUN ABORTED[/yellow] {result.finished_at} "
            f"(failure budget of {result.config.target_successes} exhausted)"
        )
    console.print(f"  [dim]successes:[/dim] {counters.successes}")
    console.print(f"  [dim]failures:[/dim] {counters.failures}")
    console.print(f"  [dim]total runtime:[/dim] {format_duration(result.total_seconds)}")
    console.print(f"  [dim]summary:[/dim] {study_file(result.config, SUMMARY_SUFFIX)}")


def run(  # noqa: PLR0913
    model_name: str = typer.Argument(
        ...,
        help="Data-generating model, e.g. model1",
    ),
    nrep: int = typer.Argument(
        ...,
        help="Number of replicate time series per generated dataset",
    ),
    length: int = typer.Argument(
        ...,
        metavar="LEN",
        help="Length of each time series",
    ),
    nsim: int = typer.Argument(
        ...,
        help="Number of successful runs to collect (also the failure budget)",
    ),
    ncores: int = typer.Argument(
        ...,
        help="Parallelism passed to the optimizer",
    ),
    results_dir: Path = typer.Argument(
        ...,
        help="Directory the results are saved to (created if missing)",
    ),
    models: Optional[str] = typer.Option(
        None,
        "--models", "-m",
        help="Module name or .py file holding the model functions",
    ),
    optimizer: Optional[str] = typer.Option(
        None,
        "--optimizer", "-o",
        help="Optimizer as module:attribute",
    ),
    bands: Optional[str] = typer.Option(
        None,
        "--bands",
        help="Band-count candidates, e.g. 2:6 or 2,3,4",
    ),
    subpops: Optional[str] = typer.Option(
        None,
        "--subpops",
        help="Subpopulation-count candidates, e.g. 2:6 or 2,3,4",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed applied once before the first run",
    ),
    no_seed: bool = typer.Option(
        False,  # noqa: FBT003
        "--no-seed",
        help="Do not seed the random generators",
    ),
    system_metrics: bool = typer.Option(
        True,  # noqa: FBT003
        "--system-metrics/--no-system-metrics",
        help="Sample CPU and memory usage while the study runs",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to a simstudy.yaml with option defaults",
    ),
) -> None:
    """Run a replicated simulation study.

    Generates a dataset from MODEL_NAME, fits it with the optimizer and saves
    the result, until NSIM runs have succeeded or NSIM runs have failed:

        simstudy run model1 10 200 100 8 results/
    """
    try:
        defaults = load_defaults(config_file)
        band_candidates = (
            parse_candidates(bands) if bands else defaults.band_candidates
        )
        subpop_candidates = (
            parse_candidates(subpops) if subpops else defaults.subpopulation_candidates
        )
        if no_seed:
            seed_value = None
        else:
            seed_value = seed if seed is not None else defaults.seed

        config = build_run_config(
            model_name=model_name,
            replicate_count=nrep,
            series_length=length,
            target_successes=nsim,
            parallelism=ncores,
            output_dir=results_dir,
            band_candidates=band_candidates,
            subpopulation_candidates=subpop_candidates,
            seed=seed_value,
        )
        _ = prepare_output_dir(config.output_dir)

        models_source = models or defaults.models
        optimizer_ref = optimizer or defaults.optimizer
        registry = ModelRegistry.from_source(models_source)
        optimize = load_optimizer(optimizer_ref)
        events_path = study_file(config, EVENTS_SUFFIX)
        try:
            event_log = EventLog(events_path)
        except OSError as e:
            msg = f"Cannot write events log {events_path}: {e}"
            raise ConfigError(msg) from e
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if model_name not in registry.names():
        logger.warning(
            "Model %r not found in %s; every run will fail", model_name, models_source
        )

    _print_parameters(config, models_source, optimizer_ref)

    runner = StudyRunner(
        config,
        ReplicateExecutor(registry.generate, optimize),
        listeners=[
            event_log,
            ProgressPrinter(console),
        ],
    )

    with contextlib.ExitStack() as stack:
        if system_metrics:
            _ = stack.enter_context(
                SystemMetricsCollector(
                    study_file(config, SYSTEM_SUFFIX),
                    interval=defaults.system_metrics_interval,
                )
            )
        try:
            result = runner.run()
        except ConfigError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1) from e

    _print_summary(result)
