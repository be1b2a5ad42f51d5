# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Processing context: every piece of mutable reporter state in one place.

Handlers never reach for module-level state; they receive a
:class:`ProcessingContext`, which makes it possible to run them against
synthetic state in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import TypeAdapter

from auditprov.cache.bloom import BloomFilter, FilterState
from auditprov.cache.bounded import BoundedCache
from auditprov.cache.hashing import ARTIFACT_HASHER, EVENT_ID_HASHER
from auditprov.cache.sqlite import SQLiteOverflowStore
from auditprov.core.config import Settings
from auditprov.models.identity import ArtifactIdentity
from auditprov.models.properties import ArtifactProperties
from auditprov.reporter.artifacts import ArtifactRegistry
from auditprov.reporter.descriptors import DescriptorTable
from auditprov.reporter.processes import ProcessUnitTracker
from auditprov.sink.base import GraphSink

EventBuffer = BoundedCache[str, dict[str, str]]
ArtifactCache = BoundedCache[ArtifactIdentity, ArtifactProperties]


@dataclass(frozen=True)
class ReporterOptions:
    """Feature toggles consulted while interpreting events."""

    arch: int = 64
    file_io: bool = False
    net_io: bool = False
    units: bool = False
    simplify: bool = True
    net_socket_versioning: bool = False
    unix_sockets: bool = False
    memory_syscalls: bool = True
    success_only: bool = True
    unversioned_path_prefixes: tuple[str, ...] = ("/dev/",)

    @classmethod
    def from_settings(cls, settings: Settings, arch: int) -> ReporterOptions:
        return cls(
            arch=arch,
            file_io=settings.file_io,
            net_io=settings.net_io,
            units=settings.units,
            simplify=settings.simplify,
            net_socket_versioning=settings.net_socket_versioning,
            unix_sockets=settings.unix_sockets,
            memory_syscalls=settings.memory_syscalls,
            success_only=settings.success_only,
            unversioned_path_prefixes=tuple(settings.unversioned_path_prefixes),
        )


class ProcessingContext:
    """State shared by the assembler and every syscall handler.

    Args:
        options: Feature toggles.
        sink: Graph sink receiving vertices and edges.
        event_buffer: Pending attribute maps keyed by event id.
        artifact_cache: Artifact properties keyed by identity.
        descriptors: Restored descriptor tables, or a fresh set.
        processes: Restored process tracker, or a fresh one.
        pending_memory_addresses: Restored BEEP high address words.
    """

    def __init__(
        self,
        options: ReporterOptions,
        sink: GraphSink,
        event_buffer: EventBuffer,
        artifact_cache: ArtifactCache,
        *,
        descriptors: DescriptorTable | None = None,
        processes: ProcessUnitTracker | None = None,
        pending_memory_addresses: dict[str, int] | None = None,
    ) -> None:
        self.options = options
        self.sink = sink
        self.event_buffer = event_buffer
        self.descriptors = descriptors if descriptors is not None else DescriptorTable()
        if processes is None:
            processes = ProcessUnitTracker(sink, simplify=options.simplify, units=options.units)
        self.processes = processes
        self.artifacts = ArtifactRegistry(
            artifact_cache,
            sink,
            simplify=options.simplify,
            unix_sockets=options.unix_sockets,
            net_socket_versioning=options.net_socket_versioning,
            unversioned_path_prefixes=options.unversioned_path_prefixes,
        )
        self.pending_memory_addresses: dict[str, int] = dict(pending_memory_addresses or {})

    @property
    def artifact_cache(self) -> ArtifactCache:
        return self.artifacts.cache

    async def close(self) -> None:
        await self.event_buffer.close()
        await self.artifact_cache.close()


# ----------------------------------------------------------------------
# Cache construction
# ----------------------------------------------------------------------


def event_buffer_dir(settings: Settings) -> Path:
    return settings.cache_dir / settings.event_buffer_db_name


def artifacts_dir(settings: Settings) -> Path:
    return settings.cache_dir / settings.artifacts_db_name


async def open_caches(
    settings: Settings,
    *,
    event_filter: FilterState | None = None,
    artifact_filter: FilterState | None = None,
) -> tuple[EventBuffer, ArtifactCache]:
    """Open both bounded caches over SQLite stores under ``cache_dir``.

    Filters restored from a checkpoint replace freshly sized ones.
    """
    event_store = SQLiteOverflowStore(event_buffer_dir(settings), settings.event_buffer_db_name)
    artifact_store = SQLiteOverflowStore(artifacts_dir(settings), settings.artifacts_db_name)
    await event_store.open()
    await artifact_store.open()

    event_bloom = (
        BloomFilter.from_state(event_filter)
        if event_filter is not None
        else BloomFilter(
            settings.event_buffer_expected_elements, settings.event_buffer_false_positive_rate
        )
    )
    artifact_bloom = (
        BloomFilter.from_state(artifact_filter)
        if artifact_filter is not None
        else BloomFilter(
            settings.artifacts_expected_elements, settings.artifacts_false_positive_rate
        )
    )

    event_buffer: EventBuffer = BoundedCache(
        "eventbuffer",
        settings.event_buffer_cache_size,
        event_store,
        TypeAdapter(dict[str, str]),
        event_filter.hasher if event_filter is not None else EVENT_ID_HASHER,
        event_bloom,
    )
    artifact_cache: ArtifactCache = BoundedCache(
        "artifacts",
        settings.artifacts_cache_size,
        artifact_store,
        TypeAdapter(ArtifactProperties),
        artifact_filter.hasher if artifact_filter is not None else ARTIFACT_HASHER,
        artifact_bloom,
    )
    return event_buffer, artifact_cache
