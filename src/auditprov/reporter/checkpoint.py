# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Checkpoint save/restore for all mutable reporter state.

File layout (all integers big-endian)::

    magic     8 bytes   b"AUDPROV\\x00"
    version   u16       schema version
    sections  u16       number of sections that follow
    repeated:
      tag     u16       :class:`Section`
      length  u32       payload length in bytes
      payload           UTF-8 JSON

Alongside the file, the two overflow-store directories are copied to a
durable location on save and moved back under ``cache_dir`` on restore.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import struct
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any

import aiofiles
from pydantic import TypeAdapter, ValidationError

from auditprov.cache.bloom import FilterState
from auditprov.core.config import Settings
from auditprov.core.exceptions import CheckpointError
from auditprov.models.graph import ProcessVertex
from auditprov.models.identity import ArtifactIdentity
from auditprov.reporter.context import (
    ProcessingContext,
    ReporterOptions,
    artifacts_dir,
    event_buffer_dir,
    open_caches,
)
from auditprov.reporter.descriptors import DescriptorTable
from auditprov.reporter.processes import ProcessUnitTracker, RepetitionCount, TrackerState
from auditprov.sink.base import GraphSink

logger = logging.getLogger(__name__)

MAGIC = b"AUDPROV\x00"
SCHEMA_VERSION = 1

_HEADER = struct.Struct(">8sHH")
_SECTION = struct.Struct(">HI")


class Section(IntEnum):
    DESCRIPTORS = 1
    PENDING_MEMORY = 2
    REPETITIONS = 3
    ITERATIONS = 4
    STACKS = 5
    LAST_TIMESTAMP = 6
    EVENT_FILTER = 7
    ARTIFACT_FILTER = 8


_DESCRIPTORS = TypeAdapter(
    tuple[list[dict[str, ArtifactIdentity]], dict[str, int]]
)
_ADAPTERS: dict[Section, TypeAdapter[Any]] = {
    Section.DESCRIPTORS: _DESCRIPTORS,
    Section.PENDING_MEMORY: TypeAdapter(dict[str, int]),
    Section.REPETITIONS: TypeAdapter(list[RepetitionCount]),
    Section.ITERATIONS: TypeAdapter(dict[str, dict[str, int]]),
    Section.STACKS: TypeAdapter(dict[str, list[ProcessVertex]]),
    Section.LAST_TIMESTAMP: TypeAdapter(str | None),
    Section.EVENT_FILTER: TypeAdapter(FilterState),
    Section.ARTIFACT_FILTER: TypeAdapter(FilterState),
}


@dataclass(frozen=True)
class SectionInfo:
    tag: int
    name: str
    length: int


# ----------------------------------------------------------------------
# Wire format
# ----------------------------------------------------------------------


def encode_checkpoint(sections: dict[Section, Any]) -> bytes:
    """Serialize *sections* in tag order."""
    parts = [_HEADER.pack(MAGIC, SCHEMA_VERSION, len(sections))]
    for tag in sorted(sections):
        payload = _ADAPTERS[tag].dump_json(sections[tag])
        parts.append(_SECTION.pack(tag, len(payload)))
        parts.append(payload)
    return b"".join(parts)


def split_sections(data: bytes) -> list[tuple[int, bytes]]:
    """Validate the header and return raw ``(tag, payload)`` pairs."""
    if len(data) < _HEADER.size:
        raise CheckpointError("Checkpoint is truncated: missing header")
    magic, version, count = _HEADER.unpack_from(data)
    if magic != MAGIC:
        raise CheckpointError("Not a checkpoint file: bad magic")
    if version != SCHEMA_VERSION:
        raise CheckpointError(f"Unsupported checkpoint schema version {version}")

    offset = _HEADER.size
    raw: list[tuple[int, bytes]] = []
    for _ in range(count):
        if offset + _SECTION.size > len(data):
            raise CheckpointError("Checkpoint is truncated: missing section header")
        tag, length = _SECTION.unpack_from(data, offset)
        offset += _SECTION.size
        if offset + length > len(data):
            raise CheckpointError(f"Checkpoint is truncated in section {tag}")
        raw.append((tag, data[offset : offset + length]))
        offset += length
    if offset != len(data):
        raise CheckpointError("Checkpoint has trailing bytes after the last section")
    return raw


def decode_checkpoint(data: bytes) -> dict[Section, Any]:
    sections: dict[Section, Any] = {}
    for tag, payload in split_sections(data):
        try:
            section = Section(tag)
        except ValueError:
            logger.warning("Skipping unknown checkpoint section %d", tag)
            continue
        try:
            sections[section] = _ADAPTERS[section].validate_json(payload)
        except ValidationError as exc:
            raise CheckpointError(f"Invalid {section.name} section: {exc}") from exc
    missing = set(Section) - set(sections)
    if missing:
        names = ", ".join(s.name for s in sorted(missing))
        raise CheckpointError(f"Checkpoint is missing sections: {names}")
    return sections


def describe_sections(data: bytes) -> list[SectionInfo]:
    """Summarize a checkpoint without decoding its payloads."""
    known = {section.value: section.name for section in Section}
    return [
        SectionInfo(tag=tag, name=known.get(tag, "UNKNOWN"), length=len(payload))
        for tag, payload in split_sections(data)
    ]


# ----------------------------------------------------------------------
# Directory relocation
# ----------------------------------------------------------------------


def _replace_tree(source: Path, target: Path, *, move: bool) -> None:
    if target.exists():
        shutil.rmtree(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    if move:
        shutil.move(str(source), str(target))
    else:
        shutil.copytree(source, target)


# ----------------------------------------------------------------------
# Manager
# ----------------------------------------------------------------------


class CheckpointManager:
    """Saves and restores a :class:`ProcessingContext` between runs.

    Must only run while no events are being processed: at startup before
    the consumer starts, or at shutdown after it has joined.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def state_file(self) -> Path:
        return self._settings.state_file

    async def save(self, context: ProcessingContext) -> None:
        """Write the checkpoint file and copy both overflow stores aside.

        The context's caches are flushed and closed; the context is not
        usable afterwards.
        """
        tables, owners = context.descriptors.export_state()
        tracker = context.processes.export_state()
        sections: dict[Section, Any] = {
            Section.DESCRIPTORS: (tables, owners),
            Section.PENDING_MEMORY: context.pending_memory_addresses,
            Section.REPETITIONS: tracker.repetitions,
            Section.ITERATIONS: tracker.iterations,
            Section.STACKS: tracker.stacks,
            Section.LAST_TIMESTAMP: tracker.last_timestamp,
            Section.EVENT_FILTER: context.event_buffer.export_filter(),
            Section.ARTIFACT_FILTER: context.artifact_cache.export_filter(),
        }
        data = encode_checkpoint(sections)

        await context.event_buffer.flush()
        await context.artifact_cache.flush()
        await context.close()

        settings = self._settings
        try:
            await asyncio.to_thread(
                _replace_tree,
                event_buffer_dir(settings),
                settings.saved_event_buffer_dir,
                move=False,
            )
            await asyncio.to_thread(
                _replace_tree, artifacts_dir(settings), settings.saved_artifacts_dir, move=False
            )
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.state_file, "wb") as fh:
                await fh.write(data)
        except OSError as exc:
            raise CheckpointError(f"Failed to save checkpoint {self.state_file}: {exc}") from exc

        logger.info(
            "Saved checkpoint %s (%d bytes, %d processes, %d descriptor tables)",
            self.state_file,
            len(data),
            len(tracker.stacks),
            len(tables),
        )

    async def read(self) -> dict[Section, Any]:
        try:
            async with aiofiles.open(self.state_file, "rb") as fh:
                data = await fh.read()
        except OSError as exc:
            raise CheckpointError(f"Failed to read checkpoint {self.state_file}: {exc}") from exc
        return decode_checkpoint(data)

    async def restore(self, sink: GraphSink, options: ReporterOptions) -> ProcessingContext:
        """Rebuild a processing context from the checkpoint and saved stores."""
        sections = await self.read()
        settings = self._settings
        try:
            await asyncio.to_thread(
                _replace_tree,
                settings.saved_event_buffer_dir,
                event_buffer_dir(settings),
                move=True,
            )
            await asyncio.to_thread(
                _replace_tree, settings.saved_artifacts_dir, artifacts_dir(settings), move=True
            )
        except OSError as exc:
            raise CheckpointError(f"Failed to restore saved cache stores: {exc}") from exc

        event_buffer, artifact_cache = await open_caches(
            settings,
            event_filter=sections[Section.EVENT_FILTER],
            artifact_filter=sections[Section.ARTIFACT_FILTER],
        )

        tables, owners = sections[Section.DESCRIPTORS]
        processes = ProcessUnitTracker(sink, simplify=options.simplify, units=options.units)
        processes.load_state(
            TrackerState(
                stacks=sections[Section.STACKS],
                iterations=sections[Section.ITERATIONS],
                repetitions=sections[Section.REPETITIONS],
                last_timestamp=sections[Section.LAST_TIMESTAMP],
            )
        )
        logger.info("Restored checkpoint %s", self.state_file)
        return ProcessingContext(
            options,
            sink,
            event_buffer,
            artifact_cache,
            descriptors=DescriptorTable.from_state(tables, owners),
            processes=processes,
            pending_memory_addresses=sections[Section.PENDING_MEMORY],
        )
