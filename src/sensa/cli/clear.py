# Copyright (c) Syntropy Systems
"""sensa clear command."""
from __future__ import annotations

import typer

from sensa.cli.common import console, fail, open_live_session
from sensa.errors import SensaError
from sensa.store import clear_session_runs, save_session


def clear(
    name: str = typer.Argument(..., help="Session name"),
) -> None:
    """Discard all recorded runs so the analysis can start over.

    Parameters, outcomes, delta and base case are kept.
    """
    sensa_dir, record, session = open_live_session(name)
    count = len(session.runs)
    try:
        session.clear_results()
    except SensaError as e:
        fail(str(e), e)
    save_session(record, session)
    clear_session_runs(record, sensa_dir)

    console.print(f"[green]Cleared {count} runs from[/green] {name}")
