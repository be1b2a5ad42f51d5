# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Domain models for auditprov."""

from auditprov.models.graph import ArtifactVertex, Edge, ProcessVertex, Vertex
from auditprov.models.identity import (
    ArtifactIdentity,
    FileIdentity,
    MemoryIdentity,
    NamedPipeIdentity,
    NetworkSocketIdentity,
    UnixSocketIdentity,
    UnknownIdentity,
    UnnamedPipeIdentity,
)
from auditprov.models.properties import ArtifactProperties

__all__ = [
    "ArtifactIdentity",
    "ArtifactProperties",
    "ArtifactVertex",
    "Edge",
    "FileIdentity",
    "MemoryIdentity",
    "NamedPipeIdentity",
    "NetworkSocketIdentity",
    "ProcessVertex",
    "UnixSocketIdentity",
    "UnknownIdentity",
    "UnnamedPipeIdentity",
    "Vertex",
]
