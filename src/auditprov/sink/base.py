# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Abstract graph sink receiving emitted vertices and edges."""

from __future__ import annotations

import abc

from auditprov.models.graph import ArtifactVertex, Edge, ProcessVertex


class GraphSink(abc.ABC):
    """Append-only destination for provenance facts.

    Vertices and edges are never updated or deleted once emitted.
    """

    @abc.abstractmethod
    async def emit_vertex(self, vertex: ProcessVertex | ArtifactVertex) -> None:
        """Record a vertex."""

    @abc.abstractmethod
    async def emit_edge(self, edge: Edge) -> None:
        """Record an edge."""

    async def open(self) -> None:
        """Optional initialization."""

    async def close(self) -> None:
        """Optional cleanup."""
