# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Event assembler: groups raw audit record lines into complete events.

Every record line carries ``msg=audit(<time>:<event id>)``.  Records that
share an event id are merged into one attribute map in the event buffer
until an end-of-event marker arrives, at which point the map is handed to
the dispatcher and dropped from the buffer.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from auditprov.core.constants import RecordType
from auditprov.core.logging import OnceLogger
from auditprov.reporter.context import EventBuffer
from auditprov.reporter.records import (
    CWD_VALUE,
    PATH_VALUE,
    RECORD_START,
    decode_audit_string,
    decode_hex,
    parse_key_values,
    parse_raw_key_values,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, str]], Awaitable[None]]

_EXECVE_ARGUMENT = re.compile(r"a\d+")
_HEX = re.compile(r"(?:[0-9A-Fa-f]{2})+")

_GENERIC_RECORDS = frozenset(
    {RecordType.FD_PAIR, RecordType.SOCKADDR, RecordType.MMAP, RecordType.NETFILTER_PKT}
)


def _decode(value: str) -> str:
    try:
        return decode_audit_string(value)
    except ValueError:
        logger.debug("Keeping undecodable value %r", value)
        return value


@dataclass
class AssemblerStats:
    lines: int = 0
    records: int = 0
    events: int = 0
    unparseable: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "lines": self.lines,
            "records": self.records,
            "events": self.events,
            "unparseable": self.unparseable,
        }


class EventAssembler:
    """Buffers record lines by event id and finalizes complete events.

    Args:
        buffer: Bounded cache of pending attribute maps.
        on_event: Coroutine receiving each finalized attribute map.
    """

    def __init__(self, buffer: EventBuffer, on_event: EventHandler) -> None:
        self._buffer = buffer
        self._on_event = on_event
        self._unknown_types = OnceLogger(logger)
        self.stats = AssemblerStats()

    async def process_line(self, line: str) -> None:
        """Parse one raw log line."""
        self.stats.lines += 1
        line = line.rstrip("\n")
        match = RECORD_START.match(line)
        if match is None:
            self.stats.unparseable += 1
            logger.warning("Unable to match line: %s", line)
            return

        self.stats.records += 1
        record_type, time, event_id = match.group(2), match.group(3), match.group(4)
        body = line[match.end() :]

        if record_type == RecordType.EOE:
            await self.finish_event(event_id)
            return

        if record_type == RecordType.PROCTITLE:
            return

        try:
            record = RecordType(record_type)
        except ValueError:
            self._unknown_types.log(record_type, "Unknown audit record type %s", record_type)
            return

        attributes = await self._buffer.get(event_id)
        if attributes is None:
            attributes = {"eventid": event_id}
        self._merge(attributes, record, time, body)
        await self._buffer.put(event_id, attributes)

        if record == RecordType.NETFILTER_PKT:
            await self.finish_event(event_id)

    def _merge(
        self, attributes: dict[str, str], record: RecordType, time: str, body: str
    ) -> None:
        if record == RecordType.SYSCALL:
            attributes.update(parse_key_values(body))
            attributes["time"] = time
        elif record == RecordType.CWD:
            cwd = CWD_VALUE.search(body)
            if cwd is not None:
                attributes["cwd"] = _decode(cwd.group(1))
        elif record == RecordType.PATH:
            path = PATH_VALUE.search(body)
            if path is not None:
                item = path.group(1)
                attributes[f"path{item}"] = _decode(path.group(2))
                attributes[f"nametype{item}"] = path.group(3)
        elif record == RecordType.EXECVE:
            for key, value, quoted in parse_raw_key_values(body):
                if not quoted and _EXECVE_ARGUMENT.fullmatch(key) and _HEX.fullmatch(value):
                    value = decode_hex(value)
                attributes[f"execve_{key}"] = value
        elif record == RecordType.SOCKETCALL:
            for key, value in parse_key_values(body).items():
                attributes[f"socketcall_{key}"] = value
        elif record in _GENERIC_RECORDS:
            attributes.update(parse_key_values(body))
        else:
            self._unknown_types.log(record, "Unhandled audit record type %s", record)

    async def finish_event(self, event_id: str) -> None:
        """Hand the buffered event to the dispatcher and drop it."""
        attributes = await self._buffer.get(event_id)
        if attributes is None:
            logger.warning("EOE for event id %s with no buffered data", event_id)
            return
        self.stats.events += 1
        try:
            await self._on_event(attributes)
        finally:
            await self._buffer.remove(event_id)
