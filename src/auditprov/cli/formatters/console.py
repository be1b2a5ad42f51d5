# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Rich console output for ingestion summaries and checkpoints."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.table import Table

from auditprov import __version__
from auditprov.reporter.checkpoint import SectionInfo
from auditprov.reporter.engine import ReporterStats

console = Console()


def format_ingest_summary(stats: ReporterStats) -> None:
    """Print the counters of a finished ingestion run."""
    console.print()
    console.print(f"[bold]auditprov v{__version__}[/bold] - Audit Provenance Reporter")
    console.print()

    table = Table(title=f"Ingestion Summary ({stats.source})")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Lines", str(stats.lines))
    table.add_row("Records", str(stats.records))
    table.add_row("Unparseable lines", str(stats.unparseable))
    table.add_row("Finalized events", str(stats.events))
    table.add_row("Discarded events", str(stats.discarded_events))
    table.add_row("Vertices", str(stats.vertices))
    table.add_row("Edges", str(stats.edges))
    console.print(table)

    if stats.caches:
        caches = Table(title="Cache Statistics")
        caches.add_column("Cache", style="cyan")
        caches.add_column("Hits", justify="right")
        caches.add_column("Misses", justify="right")
        caches.add_column("Disk Reads", justify="right")
        caches.add_column("Filter Rejections", justify="right")
        caches.add_column("Evictions", justify="right")
        caches.add_column("Hit Rate", justify="right")
        for name, st in stats.caches.items():
            caches.add_row(
                name,
                str(st["hits"]),
                str(st["misses"]),
                str(st["disk_reads"]),
                str(st["filter_rejections"]),
                str(st["evictions"]),
                f"{st['hit_rate']:.2%}",
            )
        console.print(caches)


def format_checkpoint_sections(path: Path, sections: list[SectionInfo]) -> None:
    table = Table(title=f"Checkpoint {path}")
    table.add_column("Tag", justify="right", style="cyan", no_wrap=True)
    table.add_column("Section", style="bold")
    table.add_column("Bytes", justify="right")
    for info in sections:
        table.add_row(str(info.tag), info.name, str(info.length))
    console.print(table)
