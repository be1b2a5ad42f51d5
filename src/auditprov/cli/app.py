# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Typer CLI application root."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Annotated, Any

import typer

from auditprov.cli.commands import checkpoint as checkpoint_cmd

app = typer.Typer(
    name="auditprov",
    help="Provenance graph reconstruction from Linux audit logs",
    no_args_is_help=True,
)

app.add_typer(checkpoint_cmd.app, name="checkpoint", help="Inspect saved reporter state")


@app.command()
def ingest(
    input_log: Annotated[
        Path | None,
        typer.Argument(help="Audit log to replay; omit for live capture"),
    ] = None,
    arch: Annotated[
        int | None, typer.Option("--arch", help="Word size of the audited machine (32 or 64)")
    ] = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="JSON-lines graph output file")
    ] = None,
    file_io: Annotated[
        bool | None, typer.Option("--file-io/--no-file-io", help="Track file reads and writes")
    ] = None,
    net_io: Annotated[
        bool | None, typer.Option("--net-io/--no-net-io", help="Track socket sends and receives")
    ] = None,
    units: Annotated[
        bool | None, typer.Option("--units/--no-units", help="Create loop-unit provenance")
    ] = None,
    simplify: Annotated[
        bool | None,
        typer.Option("--simplify/--no-simplify", help="Use the simplified operation vocabulary"),
    ] = None,
    sort_log: Annotated[
        bool | None, typer.Option("--sort/--no-sort", help="Sort the log with sort_command first")
    ] = None,
    wait_for_log: Annotated[
        bool | None,
        typer.Option("--wait-for-log/--no-wait-for-log", help="Drain the whole log on shutdown"),
    ] = None,
    load_state: Annotated[
        bool | None, typer.Option("--load-state/--no-load-state", help="Restore a checkpoint")
    ] = None,
    save_state: Annotated[
        bool | None, typer.Option("--save-state/--no-save-state", help="Save a checkpoint on exit")
    ] = None,
    state_file: Annotated[
        Path | None, typer.Option("--state-file", help="Checkpoint file location")
    ] = None,
) -> None:
    """Replay an audit log, or capture live, into a provenance graph."""
    from auditprov.cli.formatters.console import console
    from auditprov.core.config import get_settings

    if arch is not None and arch not in (32, 64):
        console.print("[red]--arch must be 32 or 64[/red]")
        raise typer.Exit(1)

    overrides: dict[str, Any] = {
        "input_log": input_log,
        "arch": arch,
        "output_path": output,
        "file_io": file_io,
        "net_io": net_io,
        "units": units,
        "simplify": simplify,
        "sort_log": sort_log,
        "wait_for_log": wait_for_log,
        "load_state": load_state,
        "save_state": save_state,
        "state_file": state_file,
    }
    settings = get_settings().model_copy(
        update={key: value for key, value in overrides.items() if value is not None}
    )
    exit_code = asyncio.run(_async_ingest(settings))
    if exit_code:
        raise typer.Exit(exit_code)


async def _async_ingest(settings) -> int:
    from auditprov.cli.formatters.console import console, format_ingest_summary
    from auditprov.core.exceptions import (
        CheckpointError,
        ConfigurationError,
        FeedError,
        StorageError,
    )
    from auditprov.core.logging import setup_logging
    from auditprov.reporter.engine import AuditReporter
    from auditprov.sink.base import GraphSink
    from auditprov.sink.jsonl import JsonLinesGraphSink
    from auditprov.sink.memory import MemoryGraphSink

    setup_logging(settings.log_level, settings.log_format)

    sink: GraphSink
    if settings.output_path is not None:
        sink = JsonLinesGraphSink(settings.output_path)
    else:
        sink = MemoryGraphSink()

    reporter = AuditReporter(sink, settings)
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, reporter.request_shutdown)

    try:
        stats = await reporter.run()
    except (ConfigurationError, FeedError, StorageError, CheckpointError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        return 1
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)

    format_ingest_summary(stats)
    if settings.output_path is not None:
        typer.echo(f"Graph written to {settings.output_path}")
    return 0


@app.command()
def rules(
    arch: Annotated[
        int | None, typer.Option("--arch", help="Word size (32 or 64); detected if omitted")
    ] = None,
    file_io: Annotated[bool, typer.Option("--file-io", help="Include read/write rules")] = False,
    net_io: Annotated[bool, typer.Option("--net-io", help="Include send/recv rules")] = False,
    uid: Annotated[
        int | None, typer.Option("--uid", help="User whose activity is excluded")
    ] = None,
) -> None:
    """Print the auditctl rules that live capture would install."""
    import os

    from auditprov.cli.formatters.console import console
    from auditprov.core.config import get_settings
    from auditprov.core.exceptions import ConfigurationError
    from auditprov.reporter.context import ReporterOptions
    from auditprov.reporter.feed import detect_arch
    from auditprov.reporter.rules import build_audit_rules

    settings = get_settings()
    try:
        word_size = arch or settings.arch or detect_arch()
    except ConfigurationError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1) from exc
    if word_size not in (32, 64):
        console.print("[red]--arch must be 32 or 64[/red]")
        raise typer.Exit(1)

    options = ReporterOptions.from_settings(
        settings.model_copy(
            update={"file_io": file_io or settings.file_io, "net_io": net_io or settings.net_io}
        ),
        word_size,
    )
    audit_rules = build_audit_rules(options, uid=uid if uid is not None else os.getuid())
    for line in audit_rules.render():
        typer.echo(line)


@app.command()
def version() -> None:
    """Show version information."""
    from auditprov import __version__

    typer.echo(f"auditprov v{__version__}")
