# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Bounded in-memory LRU map backed by an overflow store and a Bloom filter.

:class:`BoundedCache` keeps at most ``max_size`` entries in an
``OrderedDict``.  When the bound is exceeded the least recently used entry
is serialized and written to the :class:`OverflowStore`.  Every key ever
put is recorded in the filter, so a lookup for a key that was never
written returns ``None`` without touching disk.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Generic, TypeVar

from pydantic import TypeAdapter

from auditprov.cache.base import OverflowStore
from auditprov.cache.bloom import BloomFilter, FilterState
from auditprov.cache.hashing import get_hasher

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class CacheStats:
    """Hit/miss and disk traffic counters."""

    __slots__ = ("disk_reads", "evictions", "filter_rejections", "hits", "misses")

    def __init__(self) -> None:
        self.hits: int = 0
        self.misses: int = 0
        self.disk_reads: int = 0
        self.filter_rejections: int = 0
        self.evictions: int = 0

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total if self.total else 0.0

    def to_dict(self) -> dict[str, object]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "total": self.total,
            "hit_rate": round(self.hit_rate, 4),
            "disk_reads": self.disk_reads,
            "filter_rejections": self.filter_rejections,
            "evictions": self.evictions,
        }


class BoundedCache(Generic[K, V]):
    """Bounded map over ``K`` whose overflow lives on disk.

    Values handed out by :meth:`get` are the live in-memory objects;
    callers that mutate them must :meth:`put` them back so the change
    survives a later eviction.

    Args:
        name: Label used in log messages.
        max_size: Maximum number of entries held in memory.
        store: Overflow store receiving evicted entries.
        value_adapter: Pydantic adapter used to serialize values.
        hasher: Name of the key hasher (see :mod:`auditprov.cache.hashing`).
        bloom: Membership filter over hashed keys.
    """

    def __init__(
        self,
        name: str,
        max_size: int,
        store: OverflowStore,
        value_adapter: TypeAdapter[V],
        hasher: str,
        bloom: BloomFilter,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.name = name
        self._max_size = max_size
        self._store = store
        self._adapter = value_adapter
        self._hasher_name = hasher
        self._hash = get_hasher(hasher)
        self._bloom = bloom
        self._memory: OrderedDict[K, V] = OrderedDict()
        self.stats = CacheStats()

    @property
    def store(self) -> OverflowStore:
        return self._store

    @property
    def hasher(self) -> str:
        return self._hasher_name

    def __len__(self) -> int:
        return len(self._memory)

    # ------------------------------------------------------------------
    # Cache operations
    # ------------------------------------------------------------------

    async def get(self, key: K) -> V | None:
        value = self._memory.get(key)
        if value is not None:
            self._memory.move_to_end(key)
            self.stats.hits += 1
            return value

        hashed = self._hash(key)
        if hashed not in self._bloom:
            self.stats.filter_rejections += 1
            self.stats.misses += 1
            return None

        self.stats.disk_reads += 1
        raw = await self._store.get(hashed)
        if raw is None:
            self.stats.misses += 1
            return None
        self.stats.hits += 1
        value = self._adapter.validate_json(raw)
        self._memory[key] = value
        await self._evict_overflow()
        return value

    async def put(self, key: K, value: V) -> None:
        self._bloom.add(self._hash(key))
        if key in self._memory:
            self._memory.move_to_end(key)
        self._memory[key] = value
        await self._evict_overflow()

    async def remove(self, key: K) -> None:
        self._memory.pop(key, None)
        hashed = self._hash(key)
        if hashed in self._bloom:
            await self._store.delete(hashed)

    def might_contain(self, key: K) -> bool:
        """Return the filter's answer for *key* (no false negatives)."""
        return self._hash(key) in self._bloom

    async def _evict_overflow(self) -> None:
        while len(self._memory) > self._max_size:
            old_key, old_value = self._memory.popitem(last=False)
            await self._store.put(self._hash(old_key), self._encode(old_value))
            self.stats.evictions += 1

    def _encode(self, value: V) -> str:
        return self._adapter.dump_json(value).decode("utf-8")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Write every in-memory entry through to the overflow store."""
        for key, value in self._memory.items():
            await self._store.put(self._hash(key), self._encode(value))
        await self._store.flush()
        logger.debug("Flushed %d entries of cache '%s'", len(self._memory), self.name)

    async def close(self) -> None:
        self._memory.clear()
        await self._store.close()

    def export_filter(self) -> FilterState:
        return self._bloom.export_state(self._hasher_name)
