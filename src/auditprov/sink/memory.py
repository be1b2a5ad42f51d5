# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""In-memory graph sink, mostly useful for tests and small replays."""

from __future__ import annotations

from auditprov.core.constants import EdgeKind
from auditprov.models.graph import ArtifactVertex, Edge, ProcessVertex
from auditprov.sink.base import GraphSink


class MemoryGraphSink(GraphSink):
    """Collects everything it receives in lists."""

    def __init__(self) -> None:
        self.vertices: list[ProcessVertex | ArtifactVertex] = []
        self.edges: list[Edge] = []

    async def emit_vertex(self, vertex: ProcessVertex | ArtifactVertex) -> None:
        self.vertices.append(vertex)

    async def emit_edge(self, edge: Edge) -> None:
        self.edges.append(edge)

    def edges_of(self, kind: EdgeKind) -> list[Edge]:
        return [e for e in self.edges if e.kind == kind]

    @property
    def processes(self) -> list[ProcessVertex]:
        return [v for v in self.vertices if isinstance(v, ProcessVertex)]

    @property
    def artifacts(self) -> list[ArtifactVertex]:
        return [v for v in self.vertices if isinstance(v, ArtifactVertex)]
