# Copyright (c) Syntropy Systems
"""CLI command for running the sensa snapshot server."""
from __future__ import annotations

from typing import Optional

import typer

from sensa.cli.common import console, project_dir


def serve(
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="uvicorn log level"),
) -> None:
    """Serve read-only session snapshots over HTTP for polling.

    Examples:

        sensa serve
        sensa serve --host 0.0.0.0 --port 9000

    """
    try:
        import uvicorn
    except ImportError as e:
        console.print("[red]Error:[/red] uvicorn is required for server mode.")
        console.print("Install with: pip install sensa[server]")
        raise typer.Exit(1) from e

    sensa_dir = project_dir()

    try:
        from sensa.server.app import create_app
    except ImportError as e:
        console.print(f"[red]Error:[/red] Missing dependency: {e}")
        console.print("Install server dependencies with: pip install sensa[server]")
        raise typer.Exit(1) from e

    console.print("[bold]sensa server[/bold]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Project: {sensa_dir.parent}")
    console.print()

    uvicorn.run(
        create_app(sensa_dir),
        host=host,
        port=port,
        log_level=(log_level or "info").lower(),
    )
