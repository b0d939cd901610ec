# Copyright (c) Syntropy Systems
"""sensa delta / sensa base commands."""
from __future__ import annotations

import typer

from sensa.cli.common import console, fail, open_live_session
from sensa.errors import SensaError
from sensa.store import save_session


def delta(
    name: str = typer.Argument(..., help="Session name"),
    value: str = typer.Argument(..., help="Perturbation in percent, e.g. 10 or -5%"),
) -> None:
    """Set the perturbation applied to each parameter in turn."""
    _, record, session = open_live_session(name)
    perturbations = session.perturbations
    notices_before = len(perturbations.notices)
    try:
        new_delta = perturbations.set_delta(value)
    except SensaError as e:
        fail(str(e), e)
    save_session(record, session)

    console.print(f"[green]Delta:[/green] {new_delta}%")
    if len(perturbations.notices) > notices_before:
        console.print(f"[yellow]Warning:[/yellow] {perturbations.notices[-1]}")


def base(
    name: str = typer.Argument(..., help="Session name"),
    tokens: list[str] = typer.Argument(None, help="Scenario selectors; none for the default case"),
) -> None:
    """Set the scenario selectors that define the base case.

    Examples:
        sensa base study high-demand low-price
        sensa base study

    """
    _, record, session = open_live_session(name)
    perturbations = session.perturbations
    notices_before = len(perturbations.notices)
    try:
        selectors = perturbations.set_base_case_selectors(tokens or [])
    except SensaError as e:
        known = ", ".join(session.model.list_selectors()) or "(none)"
        console.print(f"[red]Error:[/red] {e}")
        console.print(f"  [dim]known selectors:[/dim] {known}")
        raise typer.Exit(1) from e
    save_session(record, session)

    console.print(f"[green]Base case:[/green] {' '.join(selectors) or '(default)'}")
    if len(perturbations.notices) > notices_before:
        console.print(f"[yellow]Warning:[/yellow] {perturbations.notices[-1]}")
