# Copyright (c) Syntropy Systems
"""sensa run command."""
from __future__ import annotations

import contextlib
import signal
import time
from typing import TYPE_CHECKING

import typer
from rich.live import Live
from rich.text import Text

from sensa.cli.common import console, fail, open_live_session
from sensa.controller import ControllerEvent, EventKind
from sensa.errors import SensaError, SensaStateError
from sensa.models.session import ControllerState
from sensa.store import save_session

if TYPE_CHECKING:
    from types import FrameType

    from sensa.models.session import SessionRecord
    from sensa.session import AnalysisSession


class InterruptHandler:
    """First Ctrl-C pauses after the current run, the second stops."""

    def __init__(self, session: AnalysisSession) -> None:
        self.session = session
        self.presses = 0

    def __call__(self, signum: int, frame: FrameType | None) -> None:
        self.presses += 1
        # The sequence may have left the running state in the meantime
        with contextlib.suppress(SensaStateError):
            if self.presses == 1:
                self.session.pause()
                console.print("[yellow]Pausing after the current run (Ctrl-C again to stop)[/yellow]")
            else:
                self.session.stop(cancel_solver=True)
                console.print("[yellow]Stopping[/yellow]")


def _run_line(event: ControllerEvent) -> str | None:
    run = event.run
    if event.kind != EventKind.RUN_RECORDED or run is None:
        return None
    if run.failed:
        return f"  [red]✗[/red] Run #{run.index} {run.label}: {run.error_message}"
    return f"  [green]✓[/green] Run #{run.index} {run.label}"


def run(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Session name"),
) -> None:
    """Run (or resume) the sensitivity analysis.

    Use -- to give the solver command, otherwise the model's own command
    is used:

        sensa run study -- python solve.py --variant {{variant_path}}

    Template variables:
        {{variant_path}} - Path to the variant JSON of the run
        {{run_dir}} - Directory of the run (outcomes.jsonl goes here)

    Press Ctrl-C once to pause after the current run, twice to stop.
    """
    args = list(ctx.args)
    # Options stop at the session name, so "--" reaches us
    if args and args[0] == "--":
        args = args[1:]
    command = args or None
    _, record, session = open_live_session(name, command=command)

    if not getattr(session.model, "command", None):
        console.print("[red]Error:[/red] No solver command provided")
        console.print("\nUsage: sensa run SESSION -- COMMAND [ARGS]...")
        raise typer.Exit(1)

    state = session.state
    if state in (ControllerState.STOPPED, ControllerState.COMPLETED):
        fail(f"Sequence is {state.value}. Run 'sensa clear {name}' to start over")

    _run_session(record, session)


def _run_session(record: SessionRecord, session: AnalysisSession) -> None:
    lines: list[str] = []

    def on_event(event: ControllerEvent) -> None:
        line = _run_line(event)
        if line is not None:
            lines.append(line)
        if event.kind in (EventKind.RUN_RECORDED, EventKind.PAUSED, EventKind.STOPPED, EventKind.COMPLETED):
            save_session(record, session)

    session.controller.subscribe(on_event)
    handler = InterruptHandler(session)
    previous = signal.signal(signal.SIGINT, handler)

    try:
        try:
            session.start(background=True)
        except SensaError as e:
            fail(str(e), e)

        with Live(Text(session.controller.progress), console=console, refresh_per_second=4) as live:
            while session.state == ControllerState.RUNNING:
                while lines:
                    live.console.print(lines.pop(0))
                live.update(Text(session.controller.progress))
                time.sleep(0.25)
            _ = session.controller.wait()
            while lines:
                live.console.print(lines.pop(0))
            live.update(Text(session.controller.progress))
    finally:
        _ = signal.signal(signal.SIGINT, previous)

    save_session(record, session)
    state = session.state
    progress = session.controller.progress
    if state == ControllerState.COMPLETED:
        console.print(f"[green]Completed[/green] {progress}")
        console.print(f"\nShow results: [cyan]sensa table {record.name}[/cyan]")
    elif state == ControllerState.PAUSED:
        console.print(f"[yellow]Paused[/yellow] {progress}")
        console.print(f"\nResume with: [cyan]sensa run {record.name}[/cyan]")
    else:
        console.print(f"[red]Stopped[/red] {progress}")
