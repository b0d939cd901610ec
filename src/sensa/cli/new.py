# Copyright (c) Syntropy Systems
"""sensa new command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from sensa.cli.common import console, fail, project_dir
from sensa.config import load_config
from sensa.errors import SensaError
from sensa.store import create_session


def new(
    name: str = typer.Argument(..., help="Name for the analysis session"),
    model: Path = typer.Option(
        ...,
        "--model",
        "-m",
        help="Model description file (YAML)",
    ),
    delta: Optional[str] = typer.Option(
        None,
        "--delta",
        "-d",
        help="Perturbation in percent (default from config.yaml)",
    ),
    base: Optional[str] = typer.Option(
        None,
        "--base",
        "-b",
        help="Base case selectors, e.g. \"high-demand low-price\"",
    ),
) -> None:
    """Create a new sensitivity analysis session.

    Example:
        sensa new capacity-study --model model.yaml --delta 10

    """
    sensa_dir = project_dir()
    config = load_config(sensa_dir)

    try:
        record = create_session(
            name,
            model,
            sensa_dir,
            delta=delta,
            selectors=base or (),
            config=config,
        )
    except (SensaError, ValueError, FileNotFoundError) as e:
        fail(str(e), e)

    settings = record.settings
    console.print(f"[green]Created session:[/green] {name}")
    console.print(f"  [dim]session_id:[/dim] {record.session_id}")
    console.print(f"  [dim]model:[/dim] {record.model_path}")
    console.print(f"  [dim]delta:[/dim] {settings.delta}%")
    if settings.base_case_selectors:
        console.print(f"  [dim]base case:[/dim] {' '.join(settings.base_case_selectors)}")
    console.print("\nNext steps:")
    console.print(f"  1. Add parameters: [cyan]sensa param add {name} 'Entity|Attribute'[/cyan]")
    console.print(f"  2. Add outcomes:   [cyan]sensa outcome add {name} 'Entity|Attribute'[/cyan]")
    console.print(f"  3. Run:            [cyan]sensa run {name} -- python solve.py[/cyan]")

