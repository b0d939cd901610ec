# Copyright (c) Syntropy Systems
"""sensa init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from sensa.config import SensaConfig

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new sensa project.

    Creates a .sensa directory with configuration and a sessions directory.
    """
    target = path.resolve()
    sensa_dir = target / ".sensa"

    if sensa_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {sensa_dir}")
        return

    sensa_dir.mkdir(parents=True)
    sessions_dir = sensa_dir / "sessions"
    sessions_dir.mkdir()

    config_path = sensa_dir / "config.yaml"
    with config_path.open("w") as f:
        yaml.dump(SensaConfig().to_dict(), f, default_flow_style=False, sort_keys=False)

    console.print(f"[green]Initialized sensa project:[/green] {sensa_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]sessions:[/dim] {sessions_dir}")
