# Copyright (c) Syntropy Systems
"""sensa table command - outcome by run matrix."""
from __future__ import annotations

from typing import Optional

import typer
from rich.table import Table

from sensa.aggregate import ColorScale, color_of, max_abs_deviation
from sensa.cli.common import console, fail, open_live_session, project_dir
from sensa.config import load_config
from sensa.errors import SensaError
from sensa.formatting import format_cell, format_row, sig4dig
from sensa.models.matrix import Sentinel, ValueMatrix
from sensa.perturbation import STALE_NOTICE


def build_matrix_table(
    matrix: ValueMatrix,
    scale: ColorScale,
    saturation: float | None,
    title: str | None = None,
) -> Table:
    """Build a rich table: one row per outcome, one column per run.

    In relative mode the baseline column keeps absolute values and the
    other columns show the percentage deviation, shaded on ``scale``.
    """
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Outcome", style="bold")
    for i, label in enumerate(matrix.columns):
        table.add_column(f"#{i} {label}", justify="right")

    if not matrix.outcomes:
        table.add_row("[dim]No outcomes[/dim]", *["-"] * len(matrix.columns))
        return table

    limit = saturation if saturation is not None else max_abs_deviation(matrix)
    for i, outcome in enumerate(matrix.outcomes):
        values = matrix.values[i]
        if matrix.relative is None:
            table.add_row(outcome, *format_row(values))
            continue

        deviations = matrix.relative[i]
        base = values[0] if values else Sentinel.NOT_RUN
        base_text = sig4dig(base) if isinstance(base, float) else format_cell(base)
        cells = [base_text]
        for cell, text in zip(deviations[1:], format_row(deviations[1:], relative=True)):
            color = color_of(cell, scale, saturation=limit)
            cells.append(f"[black on {color}]{text}[/]" if color else text)
        table.add_row(outcome, *cells)

    return table


def table(
    name: str = typer.Argument(..., help="Session name"),
    statistic: Optional[str] = typer.Option(
        None,
        "--statistic",
        "-s",
        help="N, sum, mean, sd, min, max, nz, except or last (default from config)",
    ),
    absolute: bool = typer.Option(
        False,
        "--absolute",
        "-a",
        help="Show absolute values instead of change from the baseline",
    ),
    scale: Optional[ColorScale] = typer.Option(
        None,
        "--scale",
        help="Color scale: rb (red-blue) or no",
    ),
    saturation: Optional[float] = typer.Option(
        None,
        "--saturation",
        help="Deviation (%) at which colors saturate (default: largest deviation)",
    ),
    pending: bool = typer.Option(
        False,
        "--pending",
        "-p",
        help="Include columns for runs that have not run yet",
    ),
) -> None:
    """Show the outcome by run matrix of a session.

    Examples:
        sensa table study
        sensa table study --statistic max --absolute

    """
    if saturation is not None and saturation <= 0:
        fail(f"--saturation must be greater than 0, got {saturation:g}")

    config = load_config(project_dir())
    _, record, session = open_live_session(name)

    relative = config.relative and not absolute
    try:
        matrix = session.compute_matrix(
            statistic or config.default_statistic,
            relative=relative,
            include_pending=pending,
        )
    except SensaError as e:
        fail(str(e), e)

    if not session.runs:
        console.print(f"[yellow]No runs recorded.[/yellow] Run 'sensa run {name}' first.")
        raise typer.Exit(1)

    try:
        color_scale = scale or ColorScale(config.color_scale)
    except ValueError as e:
        fail(f"Unknown color scale '{config.color_scale}' in config.yaml", e)

    mode = "% change from baseline" if relative else "absolute"
    title = f"{record.name}: {matrix.statistic.value} ({mode})"
    limit = saturation if saturation is not None else config.saturation
    console.print(build_matrix_table(matrix, color_scale, limit, title))
    console.print(f"[dim]{session.controller.progress}[/dim]")
    if session.perturbations.stale:
        console.print(f"[yellow]Warning:[/yellow] {STALE_NOTICE}")
