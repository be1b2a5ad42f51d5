# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Syscall dispatcher: turns completed audit events into provenance.

:meth:`SyscallDispatcher.dispatch` resolves the logical syscall of a
finalized event, applies the success filter, normalizes the generic
arguments, and calls the matching handler.  Handlers raise
:class:`~auditprov.core.exceptions.EventError` subclasses when an event
cannot be interpreted; the dispatcher logs those and moves on.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import assert_never

from auditprov.core.constants import (
    AT_FDCWD,
    BEEP_MEM_READ_HIGH,
    BEEP_MEM_READ_LOW,
    BEEP_MEM_WRITE_HIGH,
    BEEP_MEM_WRITE_LOW,
    BEEP_UNIT_ENTRY,
    BEEP_UNIT_EXIT,
    CLONE_VFORK,
    CLONE_VM,
    MODE,
    O_ACCMODE,
    O_CREAT,
    O_RDONLY,
    O_RDWR,
    O_TRUNC,
    O_WRONLY,
    PID,
    PROTECTION,
    RECORD_MISSING,
    S_IFIFO,
    S_IFMT,
    S_IFREG,
    S_IFSOCK,
    SIGCHLD,
    SIZE,
    UNIT_CONTAINING,
    EdgeKind,
    NameType,
    Source,
)
from auditprov.core.exceptions import EventError, InconsistentStateError, MissingFieldError
from auditprov.core.logging import OnceLogger
from auditprov.models.graph import ArtifactVertex, Edge, ProcessVertex
from auditprov.models.identity import (
    ArtifactIdentity,
    FileIdentity,
    MemoryIdentity,
    NamedPipeIdentity,
    NetworkSocketIdentity,
    UnixSocketIdentity,
    UnknownIdentity,
    UnnamedPipeIdentity,
    same_kind_at,
)
from auditprov.reporter.context import ProcessingContext
from auditprov.reporter.records import EventData, parse_saddr, resolve_path, to_int32
from auditprov.reporter.syscalls import (
    READ_SYSCALLS,
    RECV_SYSCALLS,
    SEND_SYSCALLS,
    SOCKETCALLS,
    WRITE_SYSCALLS,
    Syscall,
    operation_name,
    resolve_syscall,
)

logger = logging.getLogger(__name__)

Handler = Callable[[EventData, Syscall], Awaitable[None]]

_ALWAYS_TRACKED = frozenset({Syscall.KILL, Syscall.EXIT, Syscall.EXIT_GROUP})
_FILE_IO = READ_SYSCALLS | WRITE_SYSCALLS
_NETWORK_IO = SEND_SYSCALLS | RECV_SYSCALLS
_CREDENTIAL_KEYS = ("uid", "euid", "suid", "fsuid")


class SyscallDispatcher:
    """Interprets finalized audit events against a :class:`ProcessingContext`."""

    def __init__(self, context: ProcessingContext) -> None:
        self.ctx = context
        self._unknown_syscalls = OnceLogger(logger)
        self._handlers: dict[Syscall, Handler] = {
            Syscall.EXIT: self._handle_exit,
            Syscall.EXIT_GROUP: self._handle_exit,
            Syscall.READ: self._handle_io,
            Syscall.READV: self._handle_io,
            Syscall.PREAD64: self._handle_io,
            Syscall.WRITE: self._handle_io,
            Syscall.WRITEV: self._handle_io,
            Syscall.PWRITE64: self._handle_io,
            Syscall.SENDTO: self._handle_io,
            Syscall.SENDMSG: self._handle_io,
            Syscall.RECVFROM: self._handle_io,
            Syscall.RECVMSG: self._handle_io,
            Syscall.MMAP: self._handle_mmap,
            Syscall.MMAP2: self._handle_mmap,
            Syscall.MPROTECT: self._handle_mprotect,
            Syscall.KILL: self._handle_kill,
            Syscall.CLONE: self._handle_fork,
            Syscall.FORK: self._handle_fork,
            Syscall.VFORK: self._handle_fork,
            Syscall.EXECVE: self._handle_execve,
            Syscall.OPEN: self._handle_open,
            Syscall.OPENAT: self._handle_openat,
            Syscall.CREAT: self._handle_creat,
            Syscall.CLOSE: self._handle_close,
            Syscall.TRUNCATE: self._handle_truncate,
            Syscall.FTRUNCATE: self._handle_truncate,
            Syscall.DUP: self._handle_dup,
            Syscall.DUP2: self._handle_dup,
            Syscall.DUP3: self._handle_dup,
            Syscall.SETUID: self._handle_setuid,
            Syscall.SETREUID: self._handle_setuid,
            Syscall.SETRESUID: self._handle_setuid,
            Syscall.RENAME: self._handle_rename,
            Syscall.LINK: self._handle_link,
            Syscall.SYMLINK: self._handle_link,
            Syscall.MKNOD: self._handle_mknod,
            Syscall.MKNODAT: self._handle_mknodat,
            Syscall.CHMOD: self._handle_chmod,
            Syscall.FCHMOD: self._handle_chmod,
            Syscall.PIPE: self._handle_pipe,
            Syscall.PIPE2: self._handle_pipe,
            Syscall.BIND: self._handle_bind,
            Syscall.CONNECT: self._handle_connect,
            Syscall.ACCEPT: self._handle_accept,
            Syscall.ACCEPT4: self._handle_accept,
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def dispatch(self, attributes: dict[str, str]) -> None:
        """Interpret one finalized event's attributes."""
        event = EventData(attributes)
        raw_syscall = event.get("syscall")
        if raw_syscall is None:
            logger.info("Non-syscall event %s ignored", event.event_id)
            return
        try:
            number = int(raw_syscall)
        except ValueError:
            logger.info("Non-numeric syscall %r in event %s", raw_syscall, event.event_id)
            return

        syscall = resolve_syscall(number, self.ctx.options.arch)
        if syscall is None:
            self._unknown_syscalls.log(
                f"number:{number}",
                "Unsupported syscall number %d (arch %d)",
                number,
                self.ctx.options.arch,
            )
            return

        if (
            self.ctx.options.success_only
            and event.get("success") == "no"
            and syscall not in _ALWAYS_TRACKED
        ):
            return

        self._normalize_arguments(event)

        try:
            if syscall is Syscall.SOCKETCALL:
                syscall = self._resolve_socketcall(event)
                if syscall is None:
                    return
            handler = self._handlers.get(syscall)
            if handler is None:
                self._unknown_syscalls.log(f"name:{syscall}", "Unsupported syscall %s", syscall)
                return
            await handler(event, syscall)
        except EventError as exc:
            logger.info("Dropped %s event: %s", syscall, exc, extra={"event_id": event.event_id})

    @staticmethod
    def _normalize_arguments(event: EventData) -> None:
        for key in ("a0", "a1", "a2", "a3"):
            value = event.get(key)
            if value is None:
                continue
            try:
                event.set(key, str(int(value, 16)))
            except ValueError:
                logger.info(
                    "Non-numeric argument %s=%r", key, value, extra={"event_id": event.event_id}
                )
                event.discard(key)

    def _resolve_socketcall(self, event: EventData) -> Syscall | None:
        call = event.require_int("a0")
        syscall = SOCKETCALLS.get(call)
        if syscall is None:
            self._unknown_syscalls.log(f"socketcall:{call}", "Unsupported socketcall %d", call)
            return None
        for index in range(4):
            value = event.get(f"socketcall_a{index}")
            if value is None:
                event.discard(f"a{index}")
                continue
            try:
                event.set(f"a{index}", str(int(value, 16)))
            except ValueError:
                logger.info(
                    "Non-numeric socketcall argument a%d=%r",
                    index,
                    value,
                    extra={"event_id": event.event_id},
                )
                event.discard(f"a{index}")
        return syscall

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _op(self, syscall: Syscall) -> str:
        return operation_name(syscall, self.ctx.options.simplify)

    async def _edge(
        self,
        kind: EdgeKind,
        source: ProcessVertex | ArtifactVertex,
        destination: ProcessVertex | ArtifactVertex,
        event: EventData,
        operation: str,
        source_label: str = Source.DEV_AUDIT,
        **extra: str,
    ) -> None:
        await self.ctx.sink.emit_edge(
            Edge.create(
                kind,
                source,
                destination,
                operation=operation,
                time=event.time,
                event_id=event.event_id,
                source_label=source_label,
                **extra,
            )
        )

    async def _process(self, event: EventData) -> ProcessVertex:
        event.require(PID)
        return await self.ctx.processes.put_process(event.attributes)

    async def _descriptor_or_unknown(self, event: EventData, pid: str, fd: str) -> ArtifactIdentity:
        identity = self.ctx.descriptors.get(pid, fd)
        if identity is None:
            identity = self.ctx.descriptors.add_unknown(pid, fd)
            await self.ctx.artifacts.mark_new_epoch(identity, event.require("eventid"))
        return identity

    def _file_descriptor_path(self, pid: str, fd: str) -> str:
        identity = self.ctx.descriptors.get(pid, fd)
        if not isinstance(identity, FileIdentity):
            raise InconsistentStateError(f"fd {fd} of pid {pid} is not a known directory")
        return identity.path

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    async def _handle_exit(self, event: EventData, syscall: Syscall) -> None:
        self.ctx.processes.drop(event.require(PID))

    async def _handle_fork(self, event: EventData, syscall: Syscall) -> None:
        if syscall is Syscall.CLONE:
            flags = event.optional_int("a0") or 0
            if flags & (SIGCHLD | CLONE_VM | CLONE_VFORK) == (SIGCHLD | CLONE_VM | CLONE_VFORK):
                syscall = Syscall.VFORK
            elif flags & SIGCHLD == SIGCHLD:
                syscall = Syscall.FORK

        old_pid = event.require(PID)
        new_pid = str(event.require_int("exit"))
        parent = await self._process(event)

        child = await self.ctx.processes.put_process(
            event.attributes,
            replace=True,
            pid=new_pid,
            ppid=old_pid,
            commandline=parent.commandline,
            cwd=event.get("cwd") or parent.cwd,
            start_time=event.time,
        )
        await self._edge(EdgeKind.WAS_TRIGGERED_BY, child, parent, event, self._op(syscall))

        if syscall is Syscall.CLONE:
            self.ctx.descriptors.link(old_pid, new_pid)
        else:
            self.ctx.descriptors.copy(old_pid, new_pid)

    async def _handle_execve(self, event: EventData, syscall: Syscall) -> None:
        pid = event.require(PID)
        argc = event.optional_int("execve_argc")
        if argc is None:
            commandline = RECORD_MISSING
        else:
            args = (event.get(f"execve_a{i}") for i in range(argc))
            commandline = " ".join(arg for arg in args if arg is not None)

        previous = self.ctx.processes.get(pid)
        process = await self.ctx.processes.put_process(
            event.attributes, replace=True, commandline=commandline, start_time=event.time
        )
        if previous is not None:
            await self._edge(EdgeKind.WAS_TRIGGERED_BY, process, previous, event, self._op(syscall))
        else:
            logger.info("No earlier vertex for pid %s at execve (event %s)", pid, event.event_id)

        cwd = event.get("cwd")
        for item in event.path_items():
            path = resolve_path(cwd, event.path(item))
            if path is None:
                logger.info("Unresolvable load path %s in event %s", event.path(item), event.event_id)
                continue
            artifact = await self.ctx.artifacts.put_artifact(event, FileIdentity(path=path), False)
            if artifact is not None:
                await self._edge(EdgeKind.USED, process, artifact, event, self._op(Syscall.LOAD))

        self.ctx.descriptors.unlink(pid)

    # ------------------------------------------------------------------
    # Open family
    # ------------------------------------------------------------------

    async def _handle_open(self, event: EventData, syscall: Syscall) -> None:
        await self._open(event, syscall, event.get("cwd"), event.require_int("a1"))

    async def _handle_creat(self, event: EventData, syscall: Syscall) -> None:
        await self._open(event, Syscall.CREATE, event.get("cwd"), O_CREAT | O_WRONLY | O_TRUNC)

    async def _handle_openat(self, event: EventData, syscall: Syscall) -> None:
        dirfd = to_int32(event.require_int("a0"))
        if dirfd == AT_FDCWD:
            directory = event.get("cwd")
        else:
            directory = self._file_descriptor_path(event.require(PID), str(dirfd))
        await self._open(event, syscall, directory, event.require_int("a2"))

    async def _open(
        self, event: EventData, syscall: Syscall, directory: str | None, flags: int
    ) -> None:
        pid = event.require(PID)
        fd = event.require("exit")

        raw_path = event.first_path(NameType.CREATE)
        is_create = raw_path is not None
        if raw_path is None:
            raw_path = event.first_path(NameType.NORMAL)
        if raw_path is None:
            raise MissingFieldError("path", event.event_id)
        path = resolve_path(directory, raw_path)
        if path is None:
            raise MissingFieldError("cwd", event.event_id)

        process = await self._process(event)
        identity: ArtifactIdentity = await self.ctx.artifacts.identity_for_path(path)

        if is_create:
            if not isinstance(identity, FileIdentity):
                identity = FileIdentity(path=path)
            await self.ctx.artifacts.mark_new_epoch(identity, event.require("eventid"))
            artifact = await self.ctx.artifacts.put_artifact(event, identity, True)
            edge_kind = EdgeKind.WAS_GENERATED_BY
            operation = self._op(Syscall.CREATE)
        else:
            if not isinstance(identity, FileIdentity | NamedPipeIdentity):
                identity = FileIdentity(path=path)
            mode = flags & O_ACCMODE
            if mode == O_RDONLY:
                artifact = await self.ctx.artifacts.put_artifact(event, identity, False)
                edge_kind = EdgeKind.USED
            elif mode in (O_WRONLY, O_RDWR):
                artifact = await self.ctx.artifacts.put_artifact(event, identity, True)
                edge_kind = EdgeKind.WAS_GENERATED_BY
            else:
                raise InconsistentStateError(f"Invalid access mode in flags {flags:#o}")
            operation = self._op(syscall)

        if artifact is None:
            return
        self.ctx.descriptors.add(pid, fd, identity)
        if edge_kind is EdgeKind.USED:
            await self._edge(edge_kind, process, artifact, event, operation)
        else:
            await self._edge(edge_kind, artifact, process, event, operation)

    async def _handle_close(self, event: EventData, syscall: Syscall) -> None:
        self.ctx.descriptors.remove(event.require(PID), event.require("a0"))

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    async def _handle_io(self, event: EventData, syscall: Syscall) -> None:
        pid = event.require(PID)
        fd = event.require("a0")
        options = self.ctx.options
        identity = self.ctx.descriptors.get(pid, fd)

        match identity:
            case None | UnknownIdentity():
                if syscall in _FILE_IO:
                    if options.file_io:
                        await self._file_io(event, syscall, pid, fd)
                elif syscall in _NETWORK_IO:
                    if options.net_io:
                        await self._network_io(event, syscall, pid, fd)
            case NetworkSocketIdentity() | UnixSocketIdentity():
                if options.net_io:
                    await self._network_io(event, syscall, pid, fd)
            case FileIdentity() | MemoryIdentity() | UnnamedPipeIdentity() | NamedPipeIdentity():
                if options.file_io:
                    await self._file_io(event, syscall, pid, fd)
            case _:
                assert_never(identity)

    async def _file_io(self, event: EventData, syscall: Syscall, pid: str, fd: str) -> None:
        if syscall in READ_SYSCALLS | RECV_SYSCALLS:
            await self._read(event, syscall, pid, fd)
        else:
            await self._write(event, syscall, pid, fd)

    async def _network_io(self, event: EventData, syscall: Syscall, pid: str, fd: str) -> None:
        identity = self.ctx.descriptors.get(pid, fd)
        if isinstance(identity, UnixSocketIdentity) and not self.ctx.options.unix_sockets:
            return
        if syscall in READ_SYSCALLS | RECV_SYSCALLS:
            await self._read(event, syscall, pid, fd)
        else:
            await self._write(event, syscall, pid, fd)

    async def _read(self, event: EventData, syscall: Syscall, pid: str, fd: str) -> None:
        size = event.require("exit")
        process = await self._process(event)
        identity = await self._descriptor_or_unknown(event, pid, fd)
        artifact = await self.ctx.artifacts.put_artifact(event, identity, False)
        if artifact is None:
            return
        await self._edge(EdgeKind.USED, process, artifact, event, self._op(syscall), **{SIZE: size})

    async def _write(self, event: EventData, syscall: Syscall, pid: str, fd: str) -> None:
        size = event.require("exit")
        process = await self._process(event)
        identity = await self._descriptor_or_unknown(event, pid, fd)
        artifact = await self.ctx.artifacts.put_artifact(event, identity, True)
        if artifact is None:
            return
        await self._edge(
            EdgeKind.WAS_GENERATED_BY, artifact, process, event, self._op(syscall), **{SIZE: size}
        )

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    async def _handle_mmap(self, event: EventData, syscall: Syscall) -> None:
        if not self.ctx.options.memory_syscalls:
            return
        pid = event.require(PID)
        address = format(event.require_int("exit"), "x")
        length = format(event.require_int("a1"), "x")
        protection = format(event.require_int("a2"), "x")
        fd = event.get("fd")
        if fd is None:
            raise MissingFieldError("fd", event.event_id)
        if fd.startswith("-"):
            return  # anonymous mapping

        identity = await self._descriptor_or_unknown(event, pid, fd)
        if not isinstance(identity, FileIdentity | UnknownIdentity):
            raise InconsistentStateError(f"mmap backed by unexpected {identity.kind} fd {fd}")

        process = await self._process(event)
        file_artifact = await self.ctx.artifacts.put_artifact(event, identity, False)
        memory = await self.ctx.artifacts.put_artifact(
            event, MemoryIdentity(pid=pid, address=address, length=length), True
        )
        if file_artifact is None or memory is None:
            return

        operation = self._op(syscall)
        await self._edge(
            EdgeKind.WAS_GENERATED_BY, memory, process, event,
            f"{operation}_{self._op(Syscall.WRITE)}",
        )
        await self._edge(
            EdgeKind.USED, process, file_artifact, event,
            f"{operation}_{self._op(Syscall.READ)}",
        )
        await self._edge(
            EdgeKind.WAS_DERIVED_FROM, memory, file_artifact, event, operation,
            **{PROTECTION: protection, PID: pid},
        )

    async def _handle_mprotect(self, event: EventData, syscall: Syscall) -> None:
        if not self.ctx.options.memory_syscalls:
            return
        pid = event.require(PID)
        address = format(event.require_int("a0"), "x")
        length = format(event.require_int("a1"), "x")
        protection = format(event.require_int("a2"), "x")

        process = await self._process(event)
        memory = await self.ctx.artifacts.put_artifact(
            event, MemoryIdentity(pid=pid, address=address, length=length), True
        )
        if memory is None:
            return
        await self._edge(
            EdgeKind.WAS_GENERATED_BY, memory, process, event, self._op(syscall),
            **{PROTECTION: protection},
        )

    # ------------------------------------------------------------------
    # BEEP units
    # ------------------------------------------------------------------

    async def _handle_kill(self, event: EventData, syscall: Syscall) -> None:
        if not self.ctx.options.units:
            return
        pid = event.require(PID)
        opcode = to_int32(event.require_int("a0"))
        argument = event.require_int("a1")
        word = argument & 0xFFFFFFFF
        processes = self.ctx.processes

        if opcode == BEEP_UNIT_ENTRY:
            containing_top = await self._process(event)
            unit = await processes.push_unit(pid, str(argument), event.time)
            if unit is None:
                return
            containing = processes.containing(pid) or containing_top
            await self._edge(
                EdgeKind.WAS_TRIGGERED_BY, unit, containing, event,
                self._op(Syscall.UNIT), Source.BEEP,
            )
        elif opcode == BEEP_UNIT_EXIT:
            processes.pop_units(pid, str(argument))
        elif opcode in (BEEP_MEM_READ_HIGH, BEEP_MEM_WRITE_HIGH):
            self.ctx.pending_memory_addresses[pid] = word
        elif opcode in (BEEP_MEM_READ_LOW, BEEP_MEM_WRITE_LOW):
            high = self.ctx.pending_memory_addresses.pop(pid, None)
            if high is None:
                raise InconsistentStateError(f"No pending high address word for pid {pid}")
            process = processes.get(pid)
            if process is None or process.unit in (None, UNIT_CONTAINING):
                raise InconsistentStateError(f"Memory dependency outside a unit for pid {pid}")
            address = format((high << 32) + word, "x")
            memory_identity = MemoryIdentity(pid=pid, address=address, length="")
            if opcode == BEEP_MEM_READ_LOW:
                memory = await self.ctx.artifacts.put_artifact(
                    event, memory_identity, False, Source.BEEP
                )
                if memory is not None:
                    await self._edge(
                        EdgeKind.USED, process, memory, event,
                        self._op(Syscall.READ), Source.BEEP,
                    )
            else:
                memory = await self.ctx.artifacts.put_artifact(
                    event, memory_identity, True, Source.BEEP
                )
                if memory is not None:
                    await self._edge(
                        EdgeKind.WAS_GENERATED_BY, memory, process, event,
                        self._op(Syscall.WRITE), Source.BEEP,
                    )

    # ------------------------------------------------------------------
    # Descriptor manipulation
    # ------------------------------------------------------------------

    async def _handle_dup(self, event: EventData, syscall: Syscall) -> None:
        pid = event.require(PID)
        fd = event.require("a0")
        new_fd = event.require("exit")
        if fd == new_fd:
            return
        await self._descriptor_or_unknown(event, pid, fd)
        self.ctx.descriptors.duplicate(pid, fd, new_fd)

    async def _handle_pipe(self, event: EventData, syscall: Syscall) -> None:
        pid = event.require(PID)
        fd0 = event.require("fd0")
        fd1 = event.require("fd1")
        identity = UnnamedPipeIdentity(pid=pid, fd0=fd0, fd1=fd1)
        self.ctx.descriptors.add(pid, fd0, identity)
        self.ctx.descriptors.add(pid, fd1, identity)
        await self.ctx.artifacts.mark_new_epoch(identity, event.require("eventid"))

    async def _handle_truncate(self, event: EventData, syscall: Syscall) -> None:
        pid = event.require(PID)
        identity: ArtifactIdentity
        if syscall is Syscall.TRUNCATE:
            path = resolve_path(event.get("cwd"), event.first_path(NameType.NORMAL))
            if path is None:
                raise MissingFieldError("path", event.event_id)
            identity = FileIdentity(path=path)
        else:
            identity = await self._descriptor_or_unknown(event, pid, event.require("a0"))

        if not isinstance(identity, FileIdentity | UnknownIdentity):
            logger.warning(
                "Unexpected %s artifact for %s in event %s", identity.kind, syscall, event.event_id
            )
            return
        process = await self._process(event)
        artifact = await self.ctx.artifacts.put_artifact(event, identity, True)
        if artifact is not None:
            await self._edge(EdgeKind.WAS_GENERATED_BY, artifact, process, event, self._op(syscall))

    async def _handle_chmod(self, event: EventData, syscall: Syscall) -> None:
        pid = event.require(PID)
        mode = format(event.require_int("a1"), "o")
        identity: ArtifactIdentity
        if syscall is Syscall.CHMOD:
            path = resolve_path(event.get("cwd"), event.first_path(NameType.NORMAL))
            if path is None:
                raise MissingFieldError("path", event.event_id)
            identity = await self.ctx.artifacts.identity_for_path(path)
        else:
            identity = await self._descriptor_or_unknown(event, pid, event.require("a0"))

        process = await self._process(event)
        artifact = await self.ctx.artifacts.put_artifact(event, identity, True)
        if artifact is not None:
            await self._edge(
                EdgeKind.WAS_GENERATED_BY, artifact, process, event, self._op(syscall),
                **{MODE: mode},
            )

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def _handle_setuid(self, event: EventData, syscall: Syscall) -> None:
        pid = event.require(PID)
        processes = self.ctx.processes
        current = processes.get(pid)
        if current is None:
            await processes.put_process(event.attributes)
            return

        credentials = {key: event.get(key) for key in _CREDENTIAL_KEYS if event.get(key) is not None}
        operation = self._op(syscall)
        old_stack = processes.stack(pid)
        old_containing = old_stack[0]

        new_containing = await processes.put_vertex(
            processes.normalize(old_containing, **credentials), keep_iterations=True
        )
        await self._edge(EdgeKind.WAS_TRIGGERED_BY, new_containing, old_containing, event, operation)

        for old_unit in old_stack[1:]:
            new_unit = await processes.append_frame(
                pid, processes.normalize(old_unit, **credentials)
            )
            await self._edge(EdgeKind.WAS_TRIGGERED_BY, new_unit, old_unit, event, operation)
            await self._edge(
                EdgeKind.WAS_TRIGGERED_BY, new_unit, new_containing, event,
                self._op(Syscall.UNIT), Source.BEEP,
            )

    # ------------------------------------------------------------------
    # Namespace operations
    # ------------------------------------------------------------------

    async def _handle_rename(self, event: EventData, syscall: Syscall) -> None:
        cwd = event.get("cwd")
        source_path = resolve_path(resolve_path(cwd, event.path(0)), event.path(2))
        destination_path = resolve_path(resolve_path(cwd, event.path(1)), event.path(3))
        if source_path is None or destination_path is None:
            raise MissingFieldError("path", event.event_id)
        await self._derive(event, syscall, source_path, destination_path)

    async def _handle_link(self, event: EventData, syscall: Syscall) -> None:
        cwd = event.get("cwd")
        source_path = resolve_path(cwd, event.path(0))
        destination_path = resolve_path(resolve_path(cwd, event.path(1)), event.path(2))
        if source_path is None or destination_path is None:
            raise MissingFieldError("path", event.event_id)
        await self._derive(event, syscall, source_path, destination_path)

    async def _derive(
        self, event: EventData, syscall: Syscall, source_path: str, destination_path: str
    ) -> None:
        """Emit used/generated/derived edges for a rename or link."""
        source = await self.ctx.artifacts.identity_for_path(source_path)
        if isinstance(source, UnixSocketIdentity) and not self.ctx.options.unix_sockets:
            return
        destination = same_kind_at(source, destination_path)

        process = await self._process(event)
        await self.ctx.artifacts.mark_new_epoch(destination, event.require("eventid"))
        source_artifact = await self.ctx.artifacts.put_artifact(event, source, False)
        destination_artifact = await self.ctx.artifacts.put_artifact(event, destination, True)
        if source_artifact is None or destination_artifact is None:
            return

        operation = self._op(syscall)
        await self._edge(
            EdgeKind.USED, process, source_artifact, event, f"{operation}_{self._op(Syscall.READ)}"
        )
        await self._edge(
            EdgeKind.WAS_GENERATED_BY, destination_artifact, process, event,
            f"{operation}_{self._op(Syscall.WRITE)}",
        )
        await self._edge(
            EdgeKind.WAS_DERIVED_FROM, destination_artifact, source_artifact, event, operation,
            **{PID: event.require(PID)},
        )

    async def _handle_mknodat(self, event: EventData, syscall: Syscall) -> None:
        dirfd = to_int32(event.require_int("a0"))
        if dirfd == AT_FDCWD:
            parent = None
        else:
            parent = self._file_descriptor_path(event.require(PID), str(dirfd))
        await self._mknod(event, event.require_int("a2"), parent)

    async def _handle_mknod(self, event: EventData, syscall: Syscall) -> None:
        await self._mknod(event, event.require_int("a1"), None)

    async def _mknod(self, event: EventData, mode: int, parent: str | None) -> None:
        cwd = event.get("cwd")
        if parent is None:
            parent_record = event.first_path(NameType.PARENT)
            parent = resolve_path(cwd, parent_record) if parent_record is not None else cwd
        path = resolve_path(parent, event.first_path(NameType.CREATE))
        if path is None:
            raise MissingFieldError("path", event.event_id)

        identity: ArtifactIdentity
        file_type = mode & S_IFMT
        if file_type == S_IFIFO:
            identity = NamedPipeIdentity(path=path)
        elif file_type == S_IFREG:
            identity = FileIdentity(path=path)
        elif file_type == S_IFSOCK:
            identity = UnixSocketIdentity(path=path)
        else:
            logger.info("mknod of unhandled file type %#o in event %s", file_type, event.event_id)
            return
        await self.ctx.artifacts.mark_new_epoch(identity, event.require("eventid"))

    # ------------------------------------------------------------------
    # Sockets
    # ------------------------------------------------------------------

    def _socket_identity(
        self, event: EventData, *, as_source: bool
    ) -> UnixSocketIdentity | NetworkSocketIdentity | None:
        identity = parse_saddr(event.require("saddr"), as_source=as_source)
        if identity is None:
            logger.info("Unsupported socket address in event %s", event.event_id)
            return None
        if isinstance(identity, UnixSocketIdentity) and not self.ctx.options.unix_sockets:
            return None
        return identity

    async def _handle_bind(self, event: EventData, syscall: Syscall) -> None:
        identity = self._socket_identity(event, as_source=False)
        if identity is None:
            return
        self.ctx.descriptors.add(event.require(PID), event.require("a0"), identity)

    async def _handle_connect(self, event: EventData, syscall: Syscall) -> None:
        identity = self._socket_identity(event, as_source=False)
        if identity is None:
            return
        pid = event.require(PID)
        process = await self._process(event)
        self.ctx.descriptors.add(pid, event.require("a0"), identity)
        await self.ctx.artifacts.mark_new_epoch(identity, event.require("eventid"))
        artifact = await self.ctx.artifacts.put_artifact(event, identity, False)
        if artifact is not None:
            await self._edge(EdgeKind.WAS_GENERATED_BY, artifact, process, event, self._op(syscall))

    async def _handle_accept(self, event: EventData, syscall: Syscall) -> None:
        pid = event.require(PID)
        listening_fd = event.require("a0")
        new_fd = event.require("exit")
        parsed = parse_saddr(event.require("saddr"), as_source=True)
        bound = self.ctx.descriptors.get(pid, listening_fd)

        identity: UnixSocketIdentity | NetworkSocketIdentity
        if isinstance(parsed, UnixSocketIdentity) or isinstance(bound, UnixSocketIdentity):
            if not self.ctx.options.unix_sockets:
                return
            if not isinstance(bound, UnixSocketIdentity):
                raise InconsistentStateError(f"accept on unbound unix socket fd {listening_fd}")
            identity = bound
        elif isinstance(parsed, NetworkSocketIdentity):
            local = bound if isinstance(bound, NetworkSocketIdentity) else NetworkSocketIdentity()
            identity = NetworkSocketIdentity(
                source_host=parsed.source_host,
                source_port=parsed.source_port,
                destination_host=local.destination_host,
                destination_port=local.destination_port,
                protocol=local.protocol,
            )
        else:
            logger.info("Unsupported socket address in event %s", event.event_id)
            return

        process = await self._process(event)
        self.ctx.descriptors.add(pid, new_fd, identity)
        await self.ctx.artifacts.mark_new_epoch(identity, event.require("eventid"))
        artifact = await self.ctx.artifacts.put_artifact(event, identity, False)
        if artifact is not None:
            await self._edge(EdgeKind.USED, process, artifact, event, self._op(syscall))
