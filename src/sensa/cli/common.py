# Copyright (c) Syntropy Systems
"""Helpers shared by sensa commands."""
from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import typer
from rich.console import Console

from sensa.config import load_config, require_sensa_dir
from sensa.errors import SensaError
from sensa.store import load_session_by_name, open_session

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from sensa.models.session import SessionRecord
    from sensa.session import AnalysisSession

console = Console()


def fail(message: str, cause: BaseException | None = None) -> NoReturn:
    """Print an error line and exit with code 1."""
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1) from cause


def project_dir() -> Path:
    """Return the .sensa directory or exit."""
    try:
        return require_sensa_dir()
    except RuntimeError as e:
        fail(str(e), e)


def load_record(name: str, sensa_dir: Path) -> SessionRecord:
    """Load a stored session by name or exit."""
    try:
        return load_session_by_name(name, sensa_dir)
    except FileNotFoundError as e:
        fail(f"Session '{name}' not found", e)


def open_live_session(
    name: str, command: Sequence[str] | None = None
) -> tuple[Path, SessionRecord, AnalysisSession]:
    """Load a stored session and rebuild its live state, or exit."""
    sensa_dir = project_dir()
    record = load_record(name, sensa_dir)
    try:
        session = open_session(record, sensa_dir, command=command, config=load_config(sensa_dir))
    except (SensaError, FileNotFoundError) as e:
        fail(str(e), e)
    return sensa_dir, record, session
