# Copyright (c) Syntropy Systems
"""sensa list command."""
from __future__ import annotations

from rich.table import Table

from sensa.cli.common import console, project_dir
from sensa.cli.status import STATE_STYLES
from sensa.store import list_sessions


def list_cmd() -> None:
    """List the analysis sessions of this project."""
    sensa_dir = project_dir()
    records = list_sessions(sensa_dir)

    if not records:
        console.print("[dim]No sessions yet. Create one with 'sensa new NAME --model FILE'[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("ID", style="dim", width=6)
    table.add_column("Model")
    table.add_column("State", width=10)
    table.add_column("Runs", justify="right")
    table.add_column("Delta", justify="right")

    for record in records:
        state = record.plan.state
        style = STATE_STYLES[state]
        failed = sum(1 for run in record.runs if run.failed)
        runs = f"{len(record.runs)}" + (f" [red]({failed} failed)[/red]" if failed else "")
        table.add_row(
            record.name,
            record.session_id,
            record.model_path,
            f"[{style}]{state.value}[/{style}]",
            runs,
            f"{record.settings.delta}%",
        )

    console.print(table)
