# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Bounded, disk-backed caches for the event buffer and artifact table."""

from auditprov.cache.base import OverflowStore
from auditprov.cache.bloom import BloomFilter, FilterState
from auditprov.cache.bounded import BoundedCache, CacheStats
from auditprov.cache.sqlite import SQLiteOverflowStore

__all__ = [
    "BloomFilter",
    "BoundedCache",
    "CacheStats",
    "FilterState",
    "OverflowStore",
    "SQLiteOverflowStore",
]
