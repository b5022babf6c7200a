# Copyright (c) Syntropy Systems
"""Main CLI entry point for simstudy."""

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from simstudy.cli.run_cmd import run
from simstudy.cli.show import show
from simstudy.cli.watch import watch

app = typer.Typer(
    name="simstudy",
    help=(
        "Replicated simulation studies. Generate data, fit, checkpoint, "
        "repeat until enough runs succeed."
    ),
    no_args_is_help=True,
    add_completion=False,
)


def configure_logging(verbose: bool = False) -> None:  # noqa: FBT001, FBT002
    """Send log records to stderr through rich."""
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,  # noqa: FBT003
        "--verbose", "-v",
        help="Show debug logging, including tracebacks of failed runs",
    ),
) -> None:
    """Replicated simulation studies."""
    configure_logging(verbose)


# Register commands
_ = app.command()(run)
_ = app.command()(show)
_ = app.command()(watch)


if __name__ == "__main__":
    app()
