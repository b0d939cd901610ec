# Copyright (c) Syntropy Systems
"""sensa status command."""
from __future__ import annotations

import typer
from rich.table import Table

from sensa.cli.common import console, open_live_session
from sensa.models.session import ControllerState
from sensa.perturbation import STALE_NOTICE

STATE_STYLES = {
    ControllerState.IDLE: "dim",
    ControllerState.RUNNING: "blue",
    ControllerState.PAUSED: "yellow",
    ControllerState.STOPPED: "red",
    ControllerState.COMPLETED: "green",
}


def status(
    name: str = typer.Argument(..., help="Session name"),
) -> None:
    """Show the settings, schedule and progress of a session."""
    _, record, session = open_live_session(name)
    snapshot = session.snapshot()
    settings = snapshot.settings

    style = STATE_STYLES[snapshot.state]
    console.print(f"[bold]{record.name}[/bold] [dim]({record.session_id})[/dim]")
    console.print(f"  [dim]model:[/dim] {record.model_path}")
    console.print(f"  [dim]state:[/dim] [{style}]{snapshot.state.value}[/{style}]")
    if snapshot.progress:
        console.print(f"  [dim]progress:[/dim] {snapshot.progress}")
    console.print(f"  [dim]delta:[/dim] {settings.delta}%")
    console.print(
        f"  [dim]base case:[/dim] {' '.join(settings.base_case_selectors) or '(default)'}"
    )

    variables = Table(show_header=True, header_style="bold")
    variables.add_column("#", style="dim", width=3)
    variables.add_column("Parameter")
    variables.add_column("Outcome")
    rows = max(len(settings.parameters), len(settings.outcomes))
    for i in range(rows):
        cells = [str(i + 1)]
        for items, excluded in (
            (settings.parameters, settings.excluded_parameters),
            (settings.outcomes, settings.excluded_outcomes),
        ):
            if i >= len(items):
                cells.append("")
            elif items[i].name in excluded:
                cells.append(f"[dim strike]{items[i].name}[/dim strike]")
            else:
                cells.append(items[i].name)
        variables.add_row(*cells)
    if rows:
        console.print(variables)
    else:
        console.print("[dim]No parameters or outcomes yet[/dim]")

    if snapshot.schedule:
        schedule = Table(title="Runs", show_header=True, header_style="bold")
        schedule.add_column("Run", style="dim", width=4)
        schedule.add_column("Perturbed")
        schedule.add_column("Status")
        for entry in snapshot.schedule:
            if entry.failed:
                run = snapshot.runs[entry.index]
                state = f"[red]failed[/red] {run.error_message or ''}"
            elif entry.recorded:
                state = "[green]completed[/green]"
            else:
                state = "[dim]pending[/dim]"
            schedule.add_row(str(entry.index), entry.label, state)
        console.print(schedule)
    elif snapshot.runs:
        console.print(f"[dim]{len(snapshot.runs)} recorded runs[/dim]")

    if snapshot.stale:
        console.print(f"[yellow]Warning:[/yellow] {STALE_NOTICE}")
