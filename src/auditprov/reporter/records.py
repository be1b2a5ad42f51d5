# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Audit record parsing helpers and typed access to event attributes."""

from __future__ import annotations

import ipaddress
import logging
import posixpath
import re
from collections.abc import MutableMapping

from auditprov.core.constants import NameType
from auditprov.core.exceptions import MalformedFieldError, MissingFieldError
from auditprov.models.identity import NetworkSocketIdentity, UnixSocketIdentity

logger = logging.getLogger(__name__)

RECORD_START = re.compile(r"(?:node=(\S+) )?type=(.+) msg=audit\(([0-9\.]+)\:([0-9]+)\):\s*")
KEY_VALUE = re.compile(r'(\w+)="*((?<=")[^"]+(?=")|([^\s]+))"*')
CWD_VALUE = re.compile(r'cwd=(".+"|[a-zA-Z0-9]+)')
PATH_VALUE = re.compile(r'item=([0-9]*) name=(".+"|[a-zA-Z0-9]+) .*nametype=([a-zA-Z]*)')
_NAMETYPE_KEY = re.compile(r"nametype(\d+)")


def parse_key_values(text: str) -> dict[str, str]:
    """Extract ``key=value`` and ``key="value"`` pairs from a record body."""
    return {m.group(1): m.group(2) for m in KEY_VALUE.finditer(text)}


def parse_raw_key_values(text: str) -> list[tuple[str, str, bool]]:
    """Like :func:`parse_key_values` but also report whether each value was quoted."""
    return [(m.group(1), m.group(2), m.group(3) is None) for m in KEY_VALUE.finditer(text)]


def decode_hex(value: str) -> str:
    """Decode a kernel hex-encoded string as UTF-8.

    An odd trailing digit (the implicit terminator) is ignored.
    """
    usable = len(value) - (len(value) % 2)
    return bytes.fromhex(value[:usable]).decode("utf-8", errors="replace")


def decode_audit_string(value: str) -> str:
    """Return *value* unquoted, or hex-decoded when it is not quoted."""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return decode_hex(value)


def resolve_path(directory: str | None, path: str | None) -> str | None:
    """Resolve *path* against *directory* unless it is already absolute."""
    if path is None:
        return None
    if path.startswith("/"):
        return path
    if directory is None:
        return None
    return posixpath.join(directory, path)


def to_int32(value: int) -> int:
    """Reinterpret the low 32 bits of *value* as a signed integer."""
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


# ----------------------------------------------------------------------
# Socket addresses
# ----------------------------------------------------------------------


def parse_saddr(
    saddr: str, *, as_source: bool
) -> UnixSocketIdentity | NetworkSocketIdentity | None:
    """Decode a ``SOCKADDR`` hex blob into a socket identity.

    The address family lives in the first two hex bytes (little endian):
    ``01`` unix, ``02`` IPv4, ``0A`` IPv6.  For bind and connect the
    address is the destination side; for accept it is the source side.
    """
    if len(saddr) < 4:
        return None
    family = saddr[:2].upper()
    try:
        if family == "01":
            raw = bytes.fromhex(saddr[4 : len(saddr) - (len(saddr) % 2)])
            path = raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")
            if not path:
                # Abstract or unnamed socket
                return None
            return UnixSocketIdentity(path=path)
        if family == "02":
            port = str(int(saddr[4:8], 16))
            host = str(ipaddress.IPv4Address(bytes.fromhex(saddr[8:16])))
        elif family == "0A":
            port = str(int(saddr[4:8], 16))
            host = str(ipaddress.IPv6Address(bytes.fromhex(saddr[16:48])))
        else:
            return None
    except ValueError:
        logger.debug("Unable to decode socket address %s", saddr)
        return None
    if as_source:
        return NetworkSocketIdentity(source_host=host, source_port=port)
    return NetworkSocketIdentity(destination_host=host, destination_port=port)


# ----------------------------------------------------------------------
# Event attribute access
# ----------------------------------------------------------------------


class EventData:
    """Completed audit event with explicit required/optional accessors."""

    def __init__(self, attributes: MutableMapping[str, str]) -> None:
        self.attributes = attributes

    @property
    def event_id(self) -> str | None:
        return self.attributes.get("eventid")

    @property
    def time(self) -> str | None:
        return self.attributes.get("time")

    def get(self, key: str) -> str | None:
        return self.attributes.get(key)

    def require(self, key: str) -> str:
        value = self.attributes.get(key)
        if value is None:
            raise MissingFieldError(key, self.event_id)
        return value

    def require_int(self, key: str, base: int = 10) -> int:
        value = self.require(key)
        try:
            return int(value, base)
        except ValueError:
            raise MalformedFieldError(key, value, self.event_id) from None

    def optional_int(self, key: str, base: int = 10) -> int | None:
        value = self.attributes.get(key)
        if value is None:
            return None
        try:
            return int(value, base)
        except ValueError:
            raise MalformedFieldError(key, value, self.event_id) from None

    def set(self, key: str, value: str) -> None:
        self.attributes[key] = value

    def discard(self, key: str) -> None:
        self.attributes.pop(key, None)

    def path_items(self) -> list[int]:
        """Item indices of every PATH record in the event, ascending."""
        return sorted(
            int(m.group(1))
            for key in self.attributes
            if (m := _NAMETYPE_KEY.fullmatch(key)) is not None
        )

    def path(self, item: int) -> str | None:
        return self.attributes.get(f"path{item}")

    def paths_with_nametype(self, nametype: NameType) -> list[str]:
        return [
            path
            for item in self.path_items()
            if self.attributes.get(f"nametype{item}") == nametype
            and (path := self.path(item)) is not None
        ]

    def first_path(self, nametype: NameType) -> str | None:
        paths = self.paths_with_nametype(nametype)
        return paths[0] if paths else None
