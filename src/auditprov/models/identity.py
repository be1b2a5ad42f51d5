# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Artifact identities: the closed set of things a process can touch.

Every identity is a frozen pydantic model so that equality and hashing are
structural over its fields.  :data:`ArtifactIdentity` is a discriminated
union on ``kind``; code that branches on the identity class should use a
``match`` statement ending in :func:`typing.assert_never`.
"""

from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from auditprov.core.constants import PID, ArtifactSubtype

_DUPLICATE_SEPARATORS = re.compile(r"/{2,}")


def normalize_path(path: str) -> str:
    """Collapse runs of ``/`` into a single separator."""
    return _DUPLICATE_SEPARATORS.sub("/", path)


class _Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def subtype(self) -> ArtifactSubtype:
        raise NotImplementedError

    def annotations(self) -> dict[str, str]:
        raise NotImplementedError


class _PathIdentity(_Identity):
    path: str

    @field_validator("path")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_path(v)

    def annotations(self) -> dict[str, str]:
        return {"path": self.path}


class FileIdentity(_PathIdentity):
    kind: Literal["file"] = "file"

    @property
    def subtype(self) -> ArtifactSubtype:
        return ArtifactSubtype.FILE


class NamedPipeIdentity(_PathIdentity):
    kind: Literal["named_pipe"] = "named_pipe"

    @property
    def subtype(self) -> ArtifactSubtype:
        return ArtifactSubtype.PIPE


class UnixSocketIdentity(_PathIdentity):
    kind: Literal["unix_socket"] = "unix_socket"

    @property
    def subtype(self) -> ArtifactSubtype:
        return ArtifactSubtype.UNIX_SOCKET


class UnnamedPipeIdentity(_Identity):
    kind: Literal["unnamed_pipe"] = "unnamed_pipe"
    pid: str
    fd0: str
    fd1: str

    @property
    def subtype(self) -> ArtifactSubtype:
        return ArtifactSubtype.PIPE

    def annotations(self) -> dict[str, str]:
        return {"path": f"pipe[{self.fd0}-{self.fd1}]", PID: self.pid}


class NetworkSocketIdentity(_Identity):
    kind: Literal["network_socket"] = "network_socket"
    source_host: str = ""
    source_port: str = ""
    destination_host: str = ""
    destination_port: str = ""
    protocol: str = ""

    @property
    def subtype(self) -> ArtifactSubtype:
        return ArtifactSubtype.NETWORK

    def annotations(self) -> dict[str, str]:
        return {
            "source host": self.source_host,
            "source port": self.source_port,
            "destination host": self.destination_host,
            "destination port": self.destination_port,
            "protocol": self.protocol,
        }


class MemoryIdentity(_Identity):
    kind: Literal["memory"] = "memory"
    pid: str
    address: str
    length: str = ""

    @property
    def subtype(self) -> ArtifactSubtype:
        return ArtifactSubtype.MEMORY

    def annotations(self) -> dict[str, str]:
        return {"memory address": self.address, "size": self.length, PID: self.pid}


class UnknownIdentity(_Identity):
    kind: Literal["unknown"] = "unknown"
    pid: str
    fd: str

    @property
    def subtype(self) -> ArtifactSubtype:
        return ArtifactSubtype.UNKNOWN

    def annotations(self) -> dict[str, str]:
        return {PID: self.pid, "fd": self.fd}


ArtifactIdentity = Annotated[
    FileIdentity
    | NamedPipeIdentity
    | UnixSocketIdentity
    | UnnamedPipeIdentity
    | NetworkSocketIdentity
    | MemoryIdentity
    | UnknownIdentity,
    Field(discriminator="kind"),
]

PathIdentity = FileIdentity | NamedPipeIdentity | UnixSocketIdentity

identity_adapter: TypeAdapter[ArtifactIdentity] = TypeAdapter(ArtifactIdentity)


def same_kind_at(identity: PathIdentity, path: str) -> PathIdentity:
    """Return an identity of the same path-based kind at *path*."""
    return type(identity)(path=path)
