# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Provenance graph vertices and edges handed to a graph sink."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from auditprov.core.constants import (
    EPOCH,
    EVENT_ID,
    OPERATION,
    SOURCE,
    SUBTYPE,
    TIME,
    VERSION,
    EdgeKind,
    Source,
)
from auditprov.models.identity import ArtifactIdentity, MemoryIdentity

# Attribute name -> annotation key, in emission order
_PROCESS_ANNOTATIONS: dict[str, str] = {
    "pid": "pid",
    "ppid": "ppid",
    "name": "name",
    "uid": "uid",
    "euid": "euid",
    "gid": "gid",
    "egid": "egid",
    "suid": "suid",
    "fsuid": "fsuid",
    "sgid": "sgid",
    "fsgid": "fsgid",
    "commandline": "commandline",
    "cwd": "cwd",
    "source": SOURCE,
    "start_time": "start time",
    "unit": "unit",
    "iteration": "iteration",
    "count": "count",
}


class ProcessVertex(BaseModel):
    """A process, or one instrumented loop iteration of a process."""

    model_config = ConfigDict(frozen=True)

    vertex_type: Literal["process"] = "process"
    pid: str
    ppid: str | None = None
    name: str | None = None
    uid: str | None = None
    euid: str | None = None
    gid: str | None = None
    egid: str | None = None
    suid: str | None = None
    fsuid: str | None = None
    sgid: str | None = None
    fsgid: str | None = None
    commandline: str | None = None
    cwd: str | None = None
    source: str = Source.DEV_AUDIT
    start_time: str | None = None
    unit: str | None = None
    iteration: str | None = None
    count: str | None = None

    @classmethod
    def from_attributes(cls, attributes: Mapping[str, str]) -> ProcessVertex:
        """Build a vertex from audit event attributes.

        ``comm`` stands in for ``name`` when the latter is absent.
        """
        values = {
            field: attributes[field]
            for field in cls.model_fields
            if field != "vertex_type" and attributes.get(field) is not None
        }
        if "name" not in values and attributes.get("comm") is not None:
            values["name"] = attributes["comm"]
        return cls(**values)

    def annotations(self) -> dict[str, str]:
        return {
            key: value
            for field, key in _PROCESS_ANNOTATIONS.items()
            if (value := getattr(self, field)) is not None
        }


class ArtifactVertex(BaseModel):
    """One version of an artifact."""

    model_config = ConfigDict(frozen=True)

    vertex_type: Literal["artifact"] = "artifact"
    identity: ArtifactIdentity
    version: int
    epoch: int | None = None
    source: str = Source.DEV_AUDIT

    def annotations(self) -> dict[str, str]:
        result = {SUBTYPE: str(self.identity.subtype)}
        result.update(self.identity.annotations())
        result[SOURCE] = self.source
        result[VERSION] = str(self.version)
        if self.epoch is not None and not isinstance(self.identity, MemoryIdentity):
            result[EPOCH] = str(self.epoch)
        return result


Vertex = Annotated[ProcessVertex | ArtifactVertex, Field(discriminator="vertex_type")]


class Edge(BaseModel):
    """A directed provenance fact between two vertices."""

    model_config = ConfigDict(frozen=True)

    kind: EdgeKind
    source: Vertex
    destination: Vertex
    annotations: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        kind: EdgeKind,
        source: ProcessVertex | ArtifactVertex,
        destination: ProcessVertex | ArtifactVertex,
        *,
        operation: str,
        time: str | None,
        event_id: str | None,
        source_label: str = Source.DEV_AUDIT,
        **extra: str,
    ) -> Edge:
        annotations: dict[str, str] = {}
        if time is not None:
            annotations[TIME] = time
        annotations[OPERATION] = operation
        if event_id is not None:
            annotations[EVENT_ID] = event_id
        annotations[SOURCE] = source_label
        annotations.update(extra)
        return cls(kind=kind, source=source, destination=destination, annotations=annotations)

    @property
    def operation(self) -> str | None:
        return self.annotations.get(OPERATION)
