# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Graph sink that appends one JSON object per vertex or edge to a file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import aiofiles

from auditprov.core.exceptions import StorageError
from auditprov.models.graph import ArtifactVertex, Edge, ProcessVertex
from auditprov.sink.base import GraphSink

logger = logging.getLogger(__name__)


def vertex_record(vertex: ProcessVertex | ArtifactVertex) -> dict[str, Any]:
    kind = "Process" if isinstance(vertex, ProcessVertex) else "Artifact"
    return {"type": kind, "annotations": vertex.annotations()}


def edge_record(edge: Edge) -> dict[str, Any]:
    return {
        "type": str(edge.kind),
        "from": vertex_record(edge.source)["annotations"],
        "to": vertex_record(edge.destination)["annotations"],
        "annotations": edge.annotations,
    }


class JsonLinesGraphSink(GraphSink):
    """Writes ``{"type": ..., "annotations": ...}`` lines to *path*."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._fh: Any = None
        self.vertex_count = 0
        self.edge_count = 0

    async def open(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = await aiofiles.open(self._path, "a", encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Cannot open graph output {self._path}: {exc}") from exc

    async def close(self) -> None:
        if self._fh is None:
            return
        try:
            await self._fh.close()
        except OSError:
            logger.warning("Failed to close graph output %s", self._path, exc_info=True)
        self._fh = None

    async def emit_vertex(self, vertex: ProcessVertex | ArtifactVertex) -> None:
        await self._write(vertex_record(vertex))
        self.vertex_count += 1

    async def emit_edge(self, edge: Edge) -> None:
        await self._write(edge_record(edge))
        self.edge_count += 1

    async def _write(self, record: dict[str, Any]) -> None:
        if self._fh is None:
            raise StorageError("Graph output is not open. Call open() first.")
        await self._fh.write(json.dumps(record) + "\n")
