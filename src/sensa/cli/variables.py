# Copyright (c) Syntropy Systems
"""sensa param / sensa outcome subcommand groups."""
from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import typer

from sensa.cli.common import console, fail, open_live_session
from sensa.errors import SensaError
from sensa.models.variables import VariableRole
from sensa.perturbation import Direction
from sensa.store import save_session

if TYPE_CHECKING:
    from sensa.perturbation import PerturbationSet


def _index_of(perturbations: PerturbationSet, role: VariableRole, ref: str) -> int:
    items = perturbations.parameters if role == VariableRole.PARAMETER else perturbations.outcomes
    wanted = ref.strip()
    for i, item in enumerate(items):
        if item.name == wanted:
            return i
    fail(f"No {role.value} '{wanted}' in this session")


def _apply(
    name: str,
    action: Callable[[PerturbationSet], str],
) -> None:
    """Open the session, apply one edit, report it and save."""
    _, record, session = open_live_session(name)
    notices_before = len(session.perturbations.notices)
    try:
        message = action(session.perturbations)
    except SensaError as e:
        fail(str(e), e)
    save_session(record, session)
    console.print(message)
    if len(session.perturbations.notices) > notices_before:
        console.print(f"[yellow]Warning:[/yellow] {session.perturbations.notices[-1]}")


def build_app(role: VariableRole) -> typer.Typer:
    """Build the subcommand group for parameters or outcomes."""
    noun = role.value
    app = typer.Typer(
        name="param" if role == VariableRole.PARAMETER else "outcome",
        help=f"Edit the {noun}s of a session.",
        no_args_is_help=True,
    )

    def add(
        name: str = typer.Argument(..., help="Session name"),
        refs: list[str] = typer.Argument(..., help="References like 'Entity|Attribute'"),
    ) -> None:
        """Append one or more references to the list."""

        def action(perturbations: PerturbationSet) -> str:
            added = []
            for ref in refs:
                if role == VariableRole.PARAMETER:
                    added.append(perturbations.add_parameter(ref).name)
                else:
                    added.append(perturbations.add_outcome(ref).name)
            return f"[green]Added {noun}(s):[/green] {', '.join(added)}"

        _apply(name, action)

    def remove(
        name: str = typer.Argument(..., help="Session name"),
        ref: str = typer.Argument(..., help=f"The {noun} to remove"),
    ) -> None:
        """Remove an entry. Recorded runs are kept."""

        def action(perturbations: PerturbationSet) -> str:
            index = _index_of(perturbations, role, ref)
            if role == VariableRole.PARAMETER:
                removed = perturbations.remove_parameter(index)
            else:
                removed = perturbations.remove_outcome(index)
            return f"[green]Removed {noun}:[/green] {removed.name}"

        _apply(name, action)

    def move(
        name: str = typer.Argument(..., help="Session name"),
        ref: str = typer.Argument(..., help=f"The {noun} to move"),
        direction: Direction = typer.Argument(..., help="up or down"),
    ) -> None:
        """Move an entry one place up or down."""

        def action(perturbations: PerturbationSet) -> str:
            index = _index_of(perturbations, role, ref)
            if role == VariableRole.PARAMETER:
                new_index = perturbations.move_parameter(index, direction)
            else:
                new_index = perturbations.move_outcome(index, direction)
            if new_index == index:
                return f"[dim]{ref} is already at the {'top' if direction == Direction.UP else 'bottom'}[/dim]"
            return f"[green]Moved {noun}:[/green] {ref} to position {new_index + 1}"

        _apply(name, action)

    def _checklist(name: str, ref: str, excluded: bool) -> None:  # noqa: FBT001
        def action(perturbations: PerturbationSet) -> str:
            wanted = ref.strip()
            if role == VariableRole.PARAMETER:
                perturbations.exclude_parameter(wanted, excluded)
            else:
                perturbations.exclude_outcome(wanted, excluded)
            verb = "Excluded" if excluded else "Included"
            return f"[green]{verb} {noun}:[/green] {wanted}"

        _apply(name, action)

    def exclude(
        name: str = typer.Argument(..., help="Session name"),
        ref: str = typer.Argument(..., help=f"The {noun} to leave out"),
    ) -> None:
        """Leave an entry out of runs and tables without removing it."""
        _checklist(name, ref, excluded=True)

    def include(
        name: str = typer.Argument(..., help="Session name"),
        ref: str = typer.Argument(..., help=f"The {noun} to bring back"),
    ) -> None:
        """Bring back an excluded entry."""
        _checklist(name, ref, excluded=False)

    _ = app.command()(add)
    _ = app.command()(remove)
    _ = app.command()(move)
    _ = app.command()(exclude)
    _ = app.command()(include)
    return app


param_app = build_app(VariableRole.PARAMETER)
outcome_app = build_app(VariableRole.OUTCOME)
