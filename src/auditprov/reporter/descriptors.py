# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Per-process file descriptor tables with clone/fork/exec semantics."""

from __future__ import annotations

from auditprov.models.identity import ArtifactIdentity, UnknownIdentity

FdMap = dict[str, ArtifactIdentity]


class DescriptorTable:
    """Maps ``pid -> fd -> identity``.

    Several pids may share one underlying fd map after :meth:`link` (clone);
    a mutation through any of them is visible to all until :meth:`unlink`.
    """

    def __init__(self) -> None:
        self._tables: dict[str, FdMap] = {}

    def _table(self, pid: str) -> FdMap:
        table = self._tables.get(pid)
        if table is None:
            table = self._tables[pid] = {}
        return table

    def get(self, pid: str, fd: str) -> ArtifactIdentity | None:
        table = self._tables.get(pid)
        return table.get(fd) if table is not None else None

    def add(self, pid: str, fd: str, identity: ArtifactIdentity) -> None:
        self._table(pid)[fd] = identity

    def add_unknown(self, pid: str, fd: str) -> UnknownIdentity:
        identity = UnknownIdentity(pid=pid, fd=fd)
        self.add(pid, fd, identity)
        return identity

    def remove(self, pid: str, fd: str) -> ArtifactIdentity | None:
        table = self._tables.get(pid)
        return table.pop(fd, None) if table is not None else None

    def duplicate(self, pid: str, old_fd: str, new_fd: str) -> None:
        """Point *new_fd* at whatever *old_fd* refers to."""
        if old_fd == new_fd:
            return
        identity = self.get(pid, old_fd)
        if identity is not None:
            self.add(pid, new_fd, identity)

    def copy(self, parent_pid: str, child_pid: str) -> None:
        """Give *child_pid* an independent snapshot of the parent's table."""
        self._tables[child_pid] = dict(self._tables.get(parent_pid, {}))

    def link(self, parent_pid: str, child_pid: str) -> None:
        """Make *child_pid* share the parent's table."""
        self._tables[child_pid] = self._table(parent_pid)

    def unlink(self, pid: str) -> None:
        """Sever any sharing, keeping the current descriptors."""
        table = self._tables.get(pid)
        if table is not None:
            self._tables[pid] = dict(table)

    def is_shared(self, pid: str, other_pid: str) -> bool:
        table = self._tables.get(pid)
        return table is not None and table is self._tables.get(other_pid)

    def snapshot(self, pid: str) -> FdMap:
        return dict(self._tables.get(pid, {}))

    def pids(self) -> list[str]:
        return list(self._tables)

    # ------------------------------------------------------------------
    # Checkpoint support
    # ------------------------------------------------------------------

    def export_state(self) -> tuple[list[FdMap], dict[str, int]]:
        """Return distinct tables plus ``pid -> table index`` preserving aliasing."""
        tables: list[FdMap] = []
        index_by_id: dict[int, int] = {}
        owners: dict[str, int] = {}
        for pid, table in self._tables.items():
            index = index_by_id.get(id(table))
            if index is None:
                index = index_by_id[id(table)] = len(tables)
                tables.append(dict(table))
            owners[pid] = index
        return tables, owners

    @classmethod
    def from_state(cls, tables: list[FdMap], owners: dict[str, int]) -> DescriptorTable:
        result = cls()
        live = [dict(table) for table in tables]
        for pid, index in owners.items():
            result._tables[pid] = live[index]
        return result
