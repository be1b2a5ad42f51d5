# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Artifact version/epoch registry over the bounded properties cache."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from auditprov.cache.bounded import BoundedCache
from auditprov.core.constants import PID, EdgeKind, Source
from auditprov.models.graph import ArtifactVertex, Edge
from auditprov.models.identity import (
    ArtifactIdentity,
    FileIdentity,
    MemoryIdentity,
    NamedPipeIdentity,
    NetworkSocketIdentity,
    PathIdentity,
    UnixSocketIdentity,
)
from auditprov.models.properties import UNINITIALIZED, ArtifactProperties
from auditprov.reporter.records import EventData
from auditprov.reporter.syscalls import Syscall, operation_name
from auditprov.sink.base import GraphSink

logger = logging.getLogger(__name__)


class ArtifactRegistry:
    """Looks up, versions, and emits artifacts.

    Args:
        cache: Bounded map of identity to properties.
        sink: Destination for emitted vertices and version edges.
        simplify: Use the simplified operation vocabulary.
        unix_sockets: Track unix domain sockets at all.
        net_socket_versioning: Bump versions on network socket writes.
        unversioned_path_prefixes: Path prefixes whose writes never bump
            the version (device and virtual filesystems).
    """

    def __init__(
        self,
        cache: BoundedCache[ArtifactIdentity, ArtifactProperties],
        sink: GraphSink,
        *,
        simplify: bool = True,
        unix_sockets: bool = False,
        net_socket_versioning: bool = False,
        unversioned_path_prefixes: Sequence[str] = ("/dev/",),
    ) -> None:
        self._cache = cache
        self._sink = sink
        self._simplify = simplify
        self._unix_sockets = unix_sockets
        self._net_socket_versioning = net_socket_versioning
        self._unversioned_prefixes = tuple(unversioned_path_prefixes)

    @property
    def cache(self) -> BoundedCache[ArtifactIdentity, ArtifactProperties]:
        return self._cache

    async def properties(self, identity: ArtifactIdentity) -> ArtifactProperties:
        """Return the properties for *identity*, creating them on first use."""
        props = await self._cache.get(identity)
        if props is None:
            props = ArtifactProperties()
        await self._cache.put(identity, props)
        return props

    async def mark_new_epoch(self, identity: ArtifactIdentity, event_id: str) -> None:
        props = await self.properties(identity)
        props.mark_new_epoch(event_id)
        await self._cache.put(identity, props)

    async def identity_for_path(self, path: str) -> PathIdentity:
        """Pick the path-based identity most recently created at *path*.

        File wins ties and is the default when nothing is known.
        """
        candidates: list[PathIdentity] = [
            FileIdentity(path=path),
            NamedPipeIdentity(path=path),
            UnixSocketIdentity(path=path),
        ]
        best = candidates[0]
        best_id = await self._creation_event_id(best)
        for candidate in candidates[1:]:
            creation_id = await self._creation_event_id(candidate)
            if creation_id > best_id:
                best, best_id = candidate, creation_id
        return best

    async def _creation_event_id(self, identity: ArtifactIdentity) -> int:
        props = await self._cache.get(identity)
        return props.creation_event_id if props is not None else UNINITIALIZED

    def _suppress_version_update(self, identity: ArtifactIdentity) -> bool:
        match identity:
            case FileIdentity() | NamedPipeIdentity() | UnixSocketIdentity():
                return identity.path.startswith(self._unversioned_prefixes)
            case NetworkSocketIdentity():
                return not self._net_socket_versioning
            case _:
                return False

    async def put_artifact(
        self,
        event: EventData,
        identity: ArtifactIdentity,
        update_version: bool,
        source: str = Source.DEV_AUDIT,
    ) -> ArtifactVertex | None:
        """Resolve the current version of *identity*, emitting it if new.

        Returns ``None`` for unix sockets when they are not tracked.
        """
        if isinstance(identity, UnixSocketIdentity) and not self._unix_sockets:
            return None
        if update_version and self._suppress_version_update(identity):
            update_version = False

        props = await self.properties(identity)
        vertex_not_seen_before = update_version or props.version_uninitialized
        version = props.get_version(update_version)
        epoch = None if isinstance(identity, MemoryIdentity) else props.get_epoch()
        await self._cache.put(identity, props)

        vertex = ArtifactVertex(identity=identity, version=version, epoch=epoch, source=source)
        if vertex_not_seen_before:
            await self._sink.emit_vertex(vertex)

        if update_version and isinstance(identity, FileIdentity) and version >= 1:
            previous = vertex.model_copy(update={"version": version - 1})
            await self._sink.emit_edge(
                Edge.create(
                    EdgeKind.WAS_DERIVED_FROM,
                    vertex,
                    previous,
                    operation=operation_name(Syscall.UPDATE, self._simplify),
                    time=event.time,
                    event_id=event.event_id,
                    source_label=source,
                    **{PID: event.require(PID)},
                )
            )
        return vertex
