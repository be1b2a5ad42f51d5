# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""SQLite implementation of the abstract :class:`OverflowStore`.

Wraps an :mod:`aiosqlite` connection holding a single ``entries`` table.
Writes are committed on :meth:`flush` and :meth:`close`; reads on the same
connection always see uncommitted writes.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import aiosqlite

from auditprov.cache.base import OverflowStore
from auditprov.core.exceptions import StorageError

logger = logging.getLogger(__name__)

_SCHEMA = "CREATE TABLE IF NOT EXISTS entries (key TEXT PRIMARY KEY, value TEXT NOT NULL)"


class SQLiteOverflowStore(OverflowStore):
    """Async SQLite overflow store at ``<directory>/<name>.sqlite3``."""

    def __init__(self, directory: Path, name: str) -> None:
        self._directory = Path(directory)
        self._name = name
        self._conn: aiosqlite.Connection | None = None

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def db_path(self) -> Path:
        return self._directory / f"{self._name}.sqlite3"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(str(self.db_path))
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute(_SCHEMA)
            await self._conn.commit()
        except (OSError, sqlite3.Error) as exc:
            self._conn = None
            msg = f"Failed to open overflow store at {self.db_path}: {exc}"
            raise StorageError(msg) from exc
        logger.debug("Opened overflow store %s", self.db_path)

    async def flush(self) -> None:
        conn = self._connection()
        try:
            await conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to commit {self.db_path}: {exc}") from exc

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            await conn.commit()
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    # Key/value operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        conn = self._connection()
        try:
            cursor = await conn.execute("SELECT value FROM entries WHERE key = ?", (key,))
            row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Overflow read failed in {self.db_path}: {exc}") from exc
        return row[0] if row is not None else None

    async def put(self, key: str, value: str) -> None:
        conn = self._connection()
        try:
            await conn.execute(
                "INSERT OR REPLACE INTO entries (key, value) VALUES (?, ?)", (key, value)
            )
        except sqlite3.Error as exc:
            raise StorageError(f"Overflow write failed in {self.db_path}: {exc}") from exc

    async def delete(self, key: str) -> bool:
        conn = self._connection()
        try:
            cursor = await conn.execute("DELETE FROM entries WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise StorageError(f"Overflow delete failed in {self.db_path}: {exc}") from exc
        return cursor.rowcount > 0

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError(f"Overflow store {self.db_path} is not open. Call open() first.")
        return self._conn
