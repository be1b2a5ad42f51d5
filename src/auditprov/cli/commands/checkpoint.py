# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Checkpoint CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

app = typer.Typer()


@app.command()
def inspect(
    path: Annotated[Path, typer.Argument(help="Checkpoint file to inspect")],
) -> None:
    """List the sections stored in a checkpoint file."""
    from auditprov.cli.formatters.console import console, format_checkpoint_sections
    from auditprov.core.exceptions import CheckpointError
    from auditprov.reporter.checkpoint import describe_sections

    try:
        data = path.read_bytes()
    except OSError as exc:
        console.print(f"[red]Cannot read {path}: {exc}[/red]")
        raise typer.Exit(1) from exc

    try:
        sections = describe_sections(data)
    except CheckpointError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1) from exc

    format_checkpoint_sections(path, sections)
