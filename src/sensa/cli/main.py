# Copyright (c) Syntropy Systems
"""Main CLI entry point for sensa."""

import logging

import typer
from rich.logging import RichHandler

from sensa.cli.clear import clear
from sensa.cli.common import console
from sensa.cli.export import export
from sensa.cli.init_cmd import init
from sensa.cli.list_cmd import list_cmd
from sensa.cli.new import new
from sensa.cli.run import run
from sensa.cli.serve import serve
from sensa.cli.settings_cmd import base, delta
from sensa.cli.status import status
from sensa.cli.table import table
from sensa.cli.variables import outcome_app, param_app
from sensa.config import load_config

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

app = typer.Typer(
    name="sensa",
    help=(
        "One-at-a-time sensitivity analysis. Perturb each parameter in turn, "
        "re-solve, and compare outcomes against the baseline."
    ),
    no_args_is_help=True,
    add_completion=False,
)


def setup_logging(level: str) -> None:
    """Send library logging through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging before any command runs."""
    level = "DEBUG" if verbose else load_config().log_level
    if level not in LOG_LEVELS:
        level = "WARNING"
    setup_logging(level)


# Register commands
_ = app.command()(init)
_ = app.command()(new)
_ = app.command()(delta)
_ = app.command()(base)
_ = app.command(
    context_settings={"allow_extra_args": True, "allow_interspersed_args": False}
)(run)
_ = app.command()(table)
_ = app.command()(status)
_ = app.command()(clear)
_ = app.command(name="export")(export)
_ = app.command(name="list")(list_cmd)
_ = app.command()(serve)

# Register param/outcome sub-apps
app.add_typer(param_app, name="param")
app.add_typer(outcome_app, name="outcome")


if __name__ == "__main__":
    app()
