# Copyright (c) Syntropy Systems
"""Export command - export a session's matrix to CSV/JSON."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Optional

import typer
from pydantic import TypeAdapter

from sensa.cli.common import console, fail, open_live_session, project_dir
from sensa.config import load_config
from sensa.errors import SensaError
from sensa.models.base import JSONValue
from sensa.models.matrix import Cell, Sentinel

_EXPORT_ADAPTER = TypeAdapter(dict[str, JSONValue])


def _to_csv_value(cell: Cell) -> str | float:
    if isinstance(cell, Sentinel):
        return cell.value
    return cell


def export(
    name: str = typer.Argument(..., help="Session name"),
    output: Path = typer.Argument(..., help="Output file path (.csv or .json)"),
    statistic: Optional[str] = typer.Option(
        None, "--statistic", "-s", help="Statistic to export (default from config)"
    ),
    relative: bool = typer.Option(
        False, "--relative", "-r", help="Also export % change from the baseline"
    ),
    include_runs: bool = typer.Option(
        False, "--runs", help="Include the recorded runs with their series (JSON only)"
    ),
) -> None:
    """Export the outcome by run matrix of a session.

    Examples:
        sensa export study matrix.csv
        sensa export study matrix.json --relative --runs

    """
    suffix = output.suffix.lower()
    if suffix not in [".csv", ".json"]:
        console.print("[red]Output must be .csv or .json[/red]")
        raise typer.Exit(1)

    if include_runs and suffix == ".csv":
        console.print("[yellow]Warning: --runs only supported for JSON export[/yellow]")
        include_runs = False

    config = load_config(project_dir())
    _, record, session = open_live_session(name)

    if not session.runs:
        console.print("[yellow]No runs to export[/yellow]")
        raise typer.Exit(0)

    try:
        matrix = session.compute_matrix(
            statistic or config.default_statistic, relative=relative
        )
    except SensaError as e:
        fail(str(e), e)

    if suffix == ".json":
        payload: dict[str, JSONValue] = {
            "session": record.name,
            "delta": session.perturbations.delta,
            "base_case_selectors": list(session.perturbations.base_case_selectors),
            "matrix": matrix.model_dump(mode="json"),
        }
        if include_runs:
            payload["runs"] = [run.model_dump(mode="json") for run in session.runs]
        _ = output.write_bytes(_EXPORT_ADAPTER.dump_json(payload, indent=2))
    else:
        with output.open("w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["outcome", "mode", *matrix.columns])
            for i, outcome in enumerate(matrix.outcomes):
                writer.writerow(
                    [outcome, "absolute", *[_to_csv_value(c) for c in matrix.values[i]]]
                )
                if matrix.relative is not None:
                    writer.writerow(
                        [outcome, "relative", *[_to_csv_value(c) for c in matrix.relative[i]]]
                    )

    console.print(
        f"[green]Exported {len(matrix.outcomes)} outcomes x {len(matrix.columns)} runs to {output}[/green]"
    )
