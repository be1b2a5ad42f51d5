# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Abstract overflow store interface for the bounded caches."""

from __future__ import annotations

import abc
from pathlib import Path


class OverflowStore(abc.ABC):
    """Persistent key/value store that receives entries evicted from memory.

    Keys and values are strings; the owning cache handles hashing and
    serialization.  Any I/O failure must surface as
    :class:`~auditprov.core.exceptions.StorageError`.
    """

    @property
    @abc.abstractmethod
    def directory(self) -> Path:
        """Directory holding the store's files (relocated by checkpoints)."""

    @abc.abstractmethod
    async def open(self) -> None:
        """Create or reopen the store on disk."""

    @abc.abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or ``None`` if the key is not present."""

    @abc.abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Insert or overwrite a value."""

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key.

        Returns:
            ``True`` if the key existed, ``False`` otherwise.
        """

    @abc.abstractmethod
    async def flush(self) -> None:
        """Make all writes durable."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Flush and release any resources held by the store."""
