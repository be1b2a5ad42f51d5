# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Bloom filter used to skip overflow-store lookups for unseen keys."""

from __future__ import annotations

import base64
import hashlib
import math

from pydantic import BaseModel


class FilterState(BaseModel):
    """Serializable snapshot of a :class:`BloomFilter`."""

    expected_elements: int
    false_positive_rate: float
    bit_count: int
    hash_count: int
    bits: str  # base64
    hasher: str


class BloomFilter:
    """Fixed-size Bloom filter with double hashing over BLAKE2b.

    Membership answers have false positives but never false negatives.

    Args:
        expected_elements: Number of insertions the filter is sized for.
        false_positive_rate: Target false positive probability, in (0, 1).
    """

    def __init__(self, expected_elements: int, false_positive_rate: float) -> None:
        if expected_elements < 1:
            raise ValueError("expected_elements must be at least 1")
        if not 0.0 < false_positive_rate < 1.0:
            raise ValueError("false_positive_rate must be between 0 and 1 (exclusive)")
        self.expected_elements = expected_elements
        self.false_positive_rate = false_positive_rate
        self.bit_count = max(
            8,
            math.ceil(-expected_elements * math.log(false_positive_rate) / (math.log(2) ** 2)),
        )
        self.hash_count = max(1, round(self.bit_count / expected_elements * math.log(2)))
        self._bits = bytearray((self.bit_count + 7) // 8)

    def _positions(self, key: str) -> list[int]:
        digest = hashlib.blake2b(key.encode("utf-8"), digest_size=16).digest()
        h1 = int.from_bytes(digest[:8], "little")
        h2 = int.from_bytes(digest[8:], "little") | 1
        return [(h1 + i * h2) % self.bit_count for i in range(self.hash_count)]

    def add(self, key: str) -> None:
        for pos in self._positions(key):
            self._bits[pos >> 3] |= 1 << (pos & 7)

    def __contains__(self, key: str) -> bool:
        return all(self._bits[pos >> 3] & (1 << (pos & 7)) for pos in self._positions(key))

    # ------------------------------------------------------------------
    # Checkpoint support
    # ------------------------------------------------------------------

    def export_state(self, hasher: str) -> FilterState:
        return FilterState(
            expected_elements=self.expected_elements,
            false_positive_rate=self.false_positive_rate,
            bit_count=self.bit_count,
            hash_count=self.hash_count,
            bits=base64.b64encode(bytes(self._bits)).decode("ascii"),
            hasher=hasher,
        )

    @classmethod
    def from_state(cls, state: FilterState) -> BloomFilter:
        bloom = cls(state.expected_elements, state.false_positive_rate)
        bits = base64.b64decode(state.bits)
        if bloom.bit_count != state.bit_count or len(bits) != len(bloom._bits):
            # Sizing formula changed since the snapshot; trust the snapshot.
            bloom.bit_count = state.bit_count
        bloom.hash_count = state.hash_count
        bloom._bits = bytearray(bits)
        return bloom
