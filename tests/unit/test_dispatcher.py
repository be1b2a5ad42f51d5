# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the syscall dispatcher and its handlers."""

from __future__ import annotations

import dataclasses
import logging

import pytest

from auditprov.core.constants import RECORD_MISSING, EdgeKind, Source
from auditprov.models.graph import ArtifactVertex, ProcessVertex
from auditprov.models.identity import (
    FileIdentity,
    MemoryIdentity,
    NamedPipeIdentity,
    NetworkSocketIdentity,
    UnixSocketIdentity,
    UnknownIdentity,
    UnnamedPipeIdentity,
)
from auditprov.reporter.context import ProcessingContext
from auditprov.reporter.dispatcher import SyscallDispatcher
from auditprov.sink.memory import MemoryGraphSink

# x86_64 syscall numbers used below
READ, WRITE, OPEN, CLOSE, MMAP, MPROTECT, PIPE, DUP2 = 0, 1, 2, 3, 9, 10, 22, 33
CONNECT, ACCEPT, SENDTO, BIND, CLONE, FORK, EXECVE = 42, 43, 44, 49, 56, 57, 59
EXIT, KILL, RENAME, CHMOD, SETUID, MKNOD, EXIT_GROUP, OPENAT = 60, 62, 82, 90, 105, 133, 231, 257
TRUNCATE, FTRUNCATE, LINK, SYMLINK, MKNODAT = 76, 77, 86, 88, 259

# i386 multiplexed socket syscall
SOCKETCALL_32 = 102

# kill(2) pid arguments as the kernel logs them (64-bit two's complement)
UNIT_ENTRY = "ffffffffffffff9c"
UNIT_EXIT = "ffffffffffffff9b"
MEM_READ_HIGH = "ffffffffffffff38"
MEM_READ_LOW = "ffffffffffffff37"
MEM_WRITE_HIGH = "fffffffffffffed4"
MEM_WRITE_LOW = "fffffffffffffed3"

# O_WRONLY | O_CREAT | O_TRUNC
CREATE_FLAGS = "241"


def _variant(context: ProcessingContext, **changes) -> SyscallDispatcher:
    """Dispatcher sharing *context*'s caches but with different options."""
    variant = ProcessingContext(
        dataclasses.replace(context.options, **changes),
        context.sink,
        context.event_buffer,
        context.artifact_cache,
    )
    return SyscallDispatcher(variant)


async def _open(dispatcher, make_event, event_id, path, fd, *, flags="0", nametype="NORMAL",
                pid="100"):
    await dispatcher.dispatch(
        make_event(
            event_id, OPEN, pid=pid, exit=fd, a1=flags, path0=path, nametype0=nametype
        )
    )


# ---------------------------------------------------------------------------
# Dispatch entry point
# ---------------------------------------------------------------------------


class TestDispatch:
    async def test_non_syscall_event_ignored(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink
    ) -> None:
        await dispatcher.dispatch({"eventid": "1", "type": "NETFILTER_PKT"})
        assert sink.vertices == []

    async def test_unknown_syscall_logged_once(
        self, dispatcher: SyscallDispatcher, make_event, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="auditprov.reporter.dispatcher"):
            await dispatcher.dispatch(make_event(1, 9999))
            await dispatcher.dispatch(make_event(2, 9999))
        messages = [r.getMessage() for r in caplog.records if "9999" in r.getMessage()]
        assert len(messages) == 1

    async def test_failed_syscall_filtered(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(
            make_event(1, OPEN, success="no", exit="-2", a1="0", path0="/x", nametype0="NORMAL")
        )
        assert sink.vertices == []
        assert sink.edges == []

    async def test_failed_exit_still_processed(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/passwd", "3")
        assert context.processes.get("100") is not None
        await dispatcher.dispatch(make_event(2, EXIT_GROUP, success="no"))
        assert context.processes.get("100") is None

    async def test_failed_syscall_kept_without_success_filter(
        self, context: ProcessingContext, sink: MemoryGraphSink, make_event
    ) -> None:
        dispatcher = _variant(context, success_only=False)
        await dispatcher.dispatch(
            make_event(1, OPEN, success="no", exit="3", a1="0", path0="/x", nametype0="NORMAL")
        )
        assert len(sink.edges) == 1

    async def test_missing_field_drops_event(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, OPEN, exit="3", a1="0"))
        assert sink.edges == []

    async def test_dropped_event_log_carries_event_id(
        self, dispatcher: SyscallDispatcher, make_event, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="auditprov.reporter.dispatcher"):
            await dispatcher.dispatch(make_event(4, OPEN, exit="3", a1="0"))
        dropped = [r for r in caplog.records if r.getMessage().startswith("Dropped")]
        assert [r.event_id for r in dropped] == ["4"]

    async def test_non_numeric_argument_discarded(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(
            make_event(1, OPEN, exit="3", a1="zz", path0="/x", nametype0="NORMAL")
        )
        assert sink.edges == []


# ---------------------------------------------------------------------------
# Open family and file I/O
# ---------------------------------------------------------------------------


class TestOpen:
    async def test_open_create(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        await _open(dispatcher, make_event, 1, "/tmp/x", "7", flags=CREATE_FLAGS,
                    nametype="CREATE")

        assert context.descriptors.get("100", "7") == FileIdentity(path="/tmp/x")
        generated = sink.edges_of(EdgeKind.WAS_GENERATED_BY)
        assert len(generated) == 1
        edge = generated[0]
        assert edge.operation == "create"
        assert isinstance(edge.source, ArtifactVertex)
        assert edge.source.version == 0
        assert edge.source.epoch == 0
        assert isinstance(edge.destination, ProcessVertex)
        assert edge.annotations["event id"] == "1"
        assert edge.annotations["time"] == "1000.000"
        assert len(sink.processes) == 1

    async def test_open_read_only(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/passwd", "3")
        used = sink.edges_of(EdgeKind.USED)
        assert len(used) == 1
        assert used[0].operation == "open"
        assert used[0].destination.identity == FileIdentity(path="/etc/passwd")

    async def test_open_write_bumps_version(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/tmp/f", "3", flags="1")
        await _open(dispatcher, make_event, 2, "/tmp/f", "4", flags="2")
        versions = [a.version for a in sink.artifacts]
        assert versions == [0, 1]
        derived = sink.edges_of(EdgeKind.WAS_DERIVED_FROM)
        assert len(derived) == 1
        assert derived[0].operation == "update"
        assert derived[0].source.version == 1
        assert derived[0].destination.version == 0
        assert derived[0].annotations["pid"] == "100"

    async def test_open_unsimplified_keeps_syscall_name(
        self, context: ProcessingContext, sink: MemoryGraphSink, make_event
    ) -> None:
        dispatcher = _variant(context, simplify=False)
        await dispatcher.dispatch(
            make_event(1, OPENAT, exit="3", a0="ffffff9c", a2="0", cwd="/home/u",
                       path0="notes.txt", nametype0="NORMAL")
        )
        assert sink.edges[0].operation == "openat"

    async def test_openat_relative_to_cwd(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(
            make_event(1, OPENAT, exit="3", a0="ffffff9c", a2="0", cwd="/home/u",
                       path0="notes.txt", nametype0="NORMAL")
        )
        edge = sink.edges_of(EdgeKind.USED)[0]
        assert edge.operation == "open"
        assert edge.destination.identity == FileIdentity(path="/home/u/notes.txt")

    async def test_openat_relative_to_directory_fd(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/srv", "5")
        await dispatcher.dispatch(
            make_event(2, OPENAT, exit="6", a0="5", a2="0", path0="data", nametype0="NORMAL")
        )
        assert sink.edges[-1].destination.identity == FileIdentity(path="/srv/data")

    async def test_openat_unknown_directory_fd_dropped(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(
            make_event(1, OPENAT, exit="6", a0="5", a2="0", path0="data", nametype0="NORMAL")
        )
        assert sink.edges == []

    async def test_open_named_pipe_after_mknod(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        # S_IFIFO | 0644
        await dispatcher.dispatch(
            make_event(1, MKNOD, a1="11a4", cwd="/tmp", path0="/tmp", nametype0="PARENT",
                       path1="fifo", nametype1="CREATE")
        )
        await _open(dispatcher, make_event, 2, "/tmp/fifo", "3")
        assert sink.edges[0].destination.identity == NamedPipeIdentity(path="/tmp/fifo")

    async def test_close_removes_descriptor(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/hosts", "3")
        await dispatcher.dispatch(make_event(2, CLOSE, a0="3"))
        assert context.descriptors.get("100", "3") is None


class TestFileIO:
    async def test_read_and_write(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/tmp/x", "7", flags="2")
        await dispatcher.dispatch(make_event(2, READ, a0="7", exit="10"))
        await dispatcher.dispatch(make_event(3, WRITE, a0="7", exit="5"))

        read = sink.edges_of(EdgeKind.USED)[-1]
        assert read.operation == "read"
        assert read.annotations["size"] == "10"
        assert read.destination.version == 0

        write = sink.edges_of(EdgeKind.WAS_GENERATED_BY)[-1]
        assert write.operation == "write"
        assert write.annotations["size"] == "5"
        assert write.source.version == 1

    async def test_io_on_unknown_descriptor(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        await dispatcher.dispatch(make_event(1, READ, a0="9", exit="4"))
        identity = context.descriptors.get("100", "9")
        assert identity == UnknownIdentity(pid="100", fd="9")
        assert sink.edges[0].destination.identity == identity

    async def test_file_io_disabled(
        self, context: ProcessingContext, sink: MemoryGraphSink, make_event
    ) -> None:
        dispatcher = _variant(context, file_io=False)
        await dispatcher.dispatch(make_event(1, READ, a0="9", exit="4"))
        assert sink.edges == []

    async def test_device_writes_do_not_bump_version(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/dev/null", "3", flags="1")
        await dispatcher.dispatch(make_event(2, WRITE, a0="3", exit="5"))
        assert [a.version for a in sink.artifacts] == [0]
        assert sink.edges_of(EdgeKind.WAS_DERIVED_FROM) == []

    async def test_chmod(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        # 0755
        await dispatcher.dispatch(
            make_event(1, CHMOD, a1="1ed", path0="/tmp/f", nametype0="NORMAL")
        )
        edge = sink.edges[0]
        assert edge.kind == EdgeKind.WAS_GENERATED_BY
        assert edge.operation == "chmod"
        assert edge.annotations["mode"] == "755"

    async def test_ftruncate_bumps_version(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/tmp/f", "3", flags="1")
        await dispatcher.dispatch(make_event(2, FTRUNCATE, a0="3"))
        assert [a.version for a in sink.artifacts] == [0, 1]
        edge = sink.edges_of(EdgeKind.WAS_GENERATED_BY)[-1]
        assert edge.operation == "truncate"
        assert edge.source.version == 1
        assert sink.edges_of(EdgeKind.WAS_DERIVED_FROM)[0].operation == "update"

    async def test_truncate_by_path(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(
            make_event(1, TRUNCATE, cwd="/tmp", path0="/tmp/g", nametype0="NORMAL")
        )
        edge = sink.edges[0]
        assert edge.kind == EdgeKind.WAS_GENERATED_BY
        assert edge.operation == "truncate"
        assert edge.source.identity == FileIdentity(path="/tmp/g")
        assert edge.source.version == 0

    async def test_ftruncate_of_pipe_rejected(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, PIPE, fd0="3", fd1="4"))
        await dispatcher.dispatch(make_event(2, FTRUNCATE, a0="4"))
        assert sink.edges == []


# ---------------------------------------------------------------------------
# Process lifecycle
# ---------------------------------------------------------------------------


class TestProcessLifecycle:
    async def test_fork_copies_descriptors(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/hosts", "3")
        await dispatcher.dispatch(make_event(2, FORK, exit="200"))

        triggered = sink.edges_of(EdgeKind.WAS_TRIGGERED_BY)
        assert len(triggered) == 1
        assert triggered[0].operation == "fork"
        assert triggered[0].source.pid == "200"
        assert triggered[0].source.ppid == "100"
        assert triggered[0].destination.pid == "100"

        assert context.descriptors.get("200", "3") == FileIdentity(path="/etc/hosts")
        await dispatcher.dispatch(make_event(3, CLOSE, pid="200", a0="3"))
        assert context.descriptors.get("100", "3") == FileIdentity(path="/etc/hosts")

    async def test_thread_clone_shares_descriptors(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/hosts", "3")
        # CLONE_VM | CLONE_FS | CLONE_FILES | CLONE_SIGHAND | CLONE_THREAD | ...
        await dispatcher.dispatch(make_event(2, CLONE, a0="3d0f00", exit="201"))
        assert context.descriptors.is_shared("100", "201")
        await dispatcher.dispatch(make_event(3, CLOSE, pid="201", a0="3"))
        assert context.descriptors.get("100", "3") is None

    async def test_clone_with_sigchld_is_fork(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        await dispatcher.dispatch(make_event(1, CLONE, a0="11", exit="202"))
        assert sink.edges[0].operation == "fork"
        assert not context.descriptors.is_shared("100", "202")

    async def test_clone_with_sigchld_and_vm_is_fork(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        # SIGCHLD | CLONE_VM without CLONE_VFORK
        await dispatcher.dispatch(make_event(1, CLONE, a0="111", exit="202"))
        assert sink.edges[0].operation == "fork"
        assert not context.descriptors.is_shared("100", "202")

    async def test_clone_with_vfork_flags_is_vfork(
        self, context: ProcessingContext, sink: MemoryGraphSink, make_event
    ) -> None:
        dispatcher = _variant(context, simplify=False)
        await _open(dispatcher, make_event, 1, "/etc/hosts", "3")
        # SIGCHLD | CLONE_VM | CLONE_VFORK
        await dispatcher.dispatch(make_event(2, CLONE, a0="4111", exit="203"))
        assert sink.edges_of(EdgeKind.WAS_TRIGGERED_BY)[0].operation == "vfork"
        assert not context.descriptors.is_shared("100", "203")
        assert context.descriptors.get("203", "3") == FileIdentity(path="/etc/hosts")

    async def test_vfork_simplifies_to_fork(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, CLONE, a0="4111", exit="204"))
        assert sink.edges[0].operation == "fork"

    async def test_execve_commandline_and_load(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/hosts", "3")
        await dispatcher.dispatch(
            make_event(2, EXECVE, execve_argc="2", execve_a0="ls", execve_a1="-l",
                       cwd="/home/u", path0="/bin/ls", nametype0="NORMAL")
        )
        triggered = sink.edges_of(EdgeKind.WAS_TRIGGERED_BY)
        assert len(triggered) == 1
        assert triggered[0].operation == "execve"
        assert triggered[0].source.commandline == "ls -l"
        assert triggered[0].source.start_time == "1000.000"

        loads = [e for e in sink.edges_of(EdgeKind.USED) if e.operation == "load"]
        assert len(loads) == 1
        assert loads[0].destination.identity == FileIdentity(path="/bin/ls")

    async def test_execve_without_record(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, EXECVE))
        assert sink.processes[-1].commandline == RECORD_MISSING
        assert sink.edges_of(EdgeKind.WAS_TRIGGERED_BY) == []

    async def test_execve_unlinks_shared_table(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/hosts", "3")
        await dispatcher.dispatch(make_event(2, CLONE, a0="3d0f00", exit="201"))
        await dispatcher.dispatch(make_event(3, EXECVE, pid="201", ppid="100"))
        assert not context.descriptors.is_shared("100", "201")
        assert context.descriptors.get("201", "3") == FileIdentity(path="/etc/hosts")

    async def test_execve_clears_unit_state(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="1"))
        assert len(context.processes.stack("100")) == 2
        await dispatcher.dispatch(make_event(2, EXECVE))
        assert len(context.processes.stack("100")) == 1
        assert context.processes.iteration_counter("100", "1") is None

    async def test_exit_drops_process(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/hosts", "3")
        await dispatcher.dispatch(make_event(2, EXIT))
        assert context.processes.get("100") is None

    async def test_setuid_emits_new_process_version(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/hosts", "3")
        await dispatcher.dispatch(make_event(2, SETUID, uid="0", euid="0"))
        edge = sink.edges_of(EdgeKind.WAS_TRIGGERED_BY)[0]
        assert edge.operation == "setuid"
        assert edge.source.uid == "0"
        assert edge.destination.uid == "1000"
        assert context.processes.get("100").euid == "0"

    async def test_setuid_of_unknown_process_just_records_it(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, SETUID, uid="0"))
        assert len(sink.processes) == 1
        assert sink.edges == []

    async def test_setuid_rebuilds_unit_stack(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="1"))
        await dispatcher.dispatch(make_event(2, SETUID, uid="0", euid="0"))

        stack = context.processes.stack("100")
        assert len(stack) == 2
        assert [frame.uid for frame in stack] == ["0", "0"]
        assert stack[0].unit == "0"
        assert stack[1].unit == "1"
        assert stack[1].iteration == "0"
        assert context.processes.iteration_counter("100", "1") == 0

        assert [e.operation for e in sink.edges[1:]] == ["setuid", "setuid", "unit"]
        unit_edge = sink.edges[-1]
        assert unit_edge.annotations["source"] == Source.BEEP
        assert unit_edge.source == stack[1]
        assert unit_edge.destination == stack[0]

        # The iteration counter survives, so the next entry is the second iteration
        await dispatcher.dispatch(make_event(3, KILL, a0=UNIT_ENTRY, a1="1"))
        assert len(context.processes.stack("100")) == 2
        assert context.processes.get("100").iteration == "1"
        assert context.processes.get("100").uid == "0"


# ---------------------------------------------------------------------------
# Descriptor manipulation
# ---------------------------------------------------------------------------


class TestDescriptors:
    async def test_dup2(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/hosts", "7")
        await dispatcher.dispatch(make_event(2, DUP2, a0="7", exit="8"))
        assert context.descriptors.get("100", "8") == FileIdentity(path="/etc/hosts")

    async def test_dup2_same_fd_is_noop(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, DUP2, a0="7", exit="7"))
        assert context.descriptors.get("100", "7") is None

    async def test_dup_of_unknown_descriptor(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, DUP2, a0="9", exit="10"))
        unknown = UnknownIdentity(pid="100", fd="9")
        assert context.descriptors.get("100", "9") == unknown
        assert context.descriptors.get("100", "10") == unknown

    async def test_pipe(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        await dispatcher.dispatch(make_event(1, PIPE, fd0="3", fd1="4"))
        pipe = UnnamedPipeIdentity(pid="100", fd0="3", fd1="4")
        assert context.descriptors.get("100", "3") == pipe
        assert context.descriptors.get("100", "4") == pipe

        await dispatcher.dispatch(make_event(2, WRITE, a0="4", exit="12"))
        edge = sink.edges_of(EdgeKind.WAS_GENERATED_BY)[0]
        assert edge.source.identity == pipe
        assert edge.source.version == 0
        assert sink.edges_of(EdgeKind.WAS_DERIVED_FROM) == []

    async def test_rename(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(
            make_event(1, RENAME, cwd="/tmp", path0="/tmp", nametype0="PARENT",
                       path1="/tmp", nametype1="PARENT", path2="a", nametype2="DELETE",
                       path3="b", nametype3="CREATE")
        )
        operations = [e.operation for e in sink.edges]
        assert operations == ["rename_read", "rename_write", "rename"]
        derived = sink.edges_of(EdgeKind.WAS_DERIVED_FROM)[0]
        assert derived.source.identity == FileIdentity(path="/tmp/b")
        assert derived.destination.identity == FileIdentity(path="/tmp/a")
        assert derived.annotations["pid"] == "100"

    async def test_link_starts_new_epoch_on_destination(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/tmp/b", "3", flags="1")
        assert (sink.artifacts[-1].version, sink.artifacts[-1].epoch) == (0, 0)

        await dispatcher.dispatch(
            make_event(2, LINK, cwd="/tmp", path0="/tmp/a", nametype0="NORMAL",
                       path1="/tmp", nametype1="PARENT", path2="b", nametype2="CREATE")
        )
        operations = [e.operation for e in sink.edges[1:]]
        assert operations == ["link_read", "link_write", "link"]
        derived = sink.edges_of(EdgeKind.WAS_DERIVED_FROM)[0]
        assert derived.source.identity == FileIdentity(path="/tmp/b")
        assert (derived.source.version, derived.source.epoch) == (0, 1)
        assert derived.destination.identity == FileIdentity(path="/tmp/a")
        assert derived.annotations["pid"] == "100"

    async def test_symlink_keeps_syscall_name(
        self, context: ProcessingContext, sink: MemoryGraphSink, make_event
    ) -> None:
        dispatcher = _variant(context, simplify=False)
        await dispatcher.dispatch(
            make_event(1, SYMLINK, cwd="/tmp", path0="/etc/hosts", nametype0="NORMAL",
                       path1="/tmp", nametype1="PARENT", path2="hosts", nametype2="CREATE")
        )
        operations = [e.operation for e in sink.edges]
        assert operations == ["symlink_read", "symlink_write", "symlink"]
        derived = sink.edges_of(EdgeKind.WAS_DERIVED_FROM)[0]
        assert derived.source.identity == FileIdentity(path="/tmp/hosts")
        assert derived.destination.identity == FileIdentity(path="/etc/hosts")


# ---------------------------------------------------------------------------
# Special files and path identities
# ---------------------------------------------------------------------------


class TestSpecialFiles:
    async def test_mknod_socket(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        # S_IFSOCK | 0755
        await dispatcher.dispatch(
            make_event(1, MKNOD, a1="c1ed", cwd="/tmp", path0="/tmp", nametype0="PARENT",
                       path1="s", nametype1="CREATE")
        )
        assert await context.artifacts.identity_for_path("/tmp/s") == UnixSocketIdentity(
            path="/tmp/s"
        )

    async def test_mknod_regular_file_replaces_fifo(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        # S_IFIFO | 0644, then S_IFREG | 0644 on the same path
        await dispatcher.dispatch(
            make_event(1, MKNOD, a1="11a4", cwd="/tmp", path0="n", nametype0="CREATE")
        )
        assert await context.artifacts.identity_for_path("/tmp/n") == NamedPipeIdentity(
            path="/tmp/n"
        )
        await dispatcher.dispatch(
            make_event(2, MKNOD, a1="81a4", cwd="/tmp", path0="n", nametype0="CREATE")
        )
        assert await context.artifacts.identity_for_path("/tmp/n") == FileIdentity(
            path="/tmp/n"
        )

    async def test_mknodat_relative_to_directory_fd(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/srv", "5")
        await dispatcher.dispatch(
            make_event(2, MKNODAT, a0="5", a2="11a4", path0="fifo", nametype0="CREATE")
        )
        assert await context.artifacts.identity_for_path("/srv/fifo") == NamedPipeIdentity(
            path="/srv/fifo"
        )

    async def test_identity_defaults_to_file(self, context: ProcessingContext) -> None:
        assert await context.artifacts.identity_for_path("/x") == FileIdentity(path="/x")

    async def test_identity_prefers_latest_creation(self, context: ProcessingContext) -> None:
        await context.artifacts.mark_new_epoch(FileIdentity(path="/x"), "3")
        await context.artifacts.mark_new_epoch(NamedPipeIdentity(path="/x"), "5")
        assert await context.artifacts.identity_for_path("/x") == NamedPipeIdentity(path="/x")
        await context.artifacts.mark_new_epoch(UnixSocketIdentity(path="/x"), "9")
        assert await context.artifacts.identity_for_path("/x") == UnixSocketIdentity(path="/x")

    async def test_identity_tie_goes_to_file(self, context: ProcessingContext) -> None:
        await context.artifacts.mark_new_epoch(NamedPipeIdentity(path="/x"), "7")
        await context.artifacts.mark_new_epoch(FileIdentity(path="/x"), "7")
        assert await context.artifacts.identity_for_path("/x") == FileIdentity(path="/x")


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------


class TestMemory:
    async def test_mmap_of_file(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/lib/libc.so", "7")
        await dispatcher.dispatch(make_event(2, MMAP, exit="4096", a1="2000", a2="5", fd="7"))

        memory = MemoryIdentity(pid="100", address="1000", length="2000")
        operations = [e.operation for e in sink.edges[1:]]
        assert operations == ["mmap_write", "mmap_read", "mmap"]
        derived = sink.edges_of(EdgeKind.WAS_DERIVED_FROM)[0]
        assert derived.source.identity == memory
        assert derived.source.epoch is None
        assert derived.destination.identity == FileIdentity(path="/lib/libc.so")
        assert derived.annotations["protection"] == "5"

    async def test_anonymous_mmap_ignored(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, MMAP, exit="4096", a1="2000", a2="3", fd="-1"))
        assert sink.edges == []

    async def test_mprotect(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, MPROTECT, a0="1000", a1="2000", a2="1"))
        edge = sink.edges[0]
        assert edge.operation == "mprotect"
        assert edge.annotations["protection"] == "1"
        assert edge.source.identity == MemoryIdentity(pid="100", address="1000", length="2000")

    async def test_memory_syscalls_disabled(
        self, context: ProcessingContext, sink: MemoryGraphSink, make_event
    ) -> None:
        dispatcher = _variant(context, memory_syscalls=False)
        await dispatcher.dispatch(make_event(1, MPROTECT, a0="1000", a1="2000", a2="1"))
        assert sink.edges == []


# ---------------------------------------------------------------------------
# BEEP units
# ---------------------------------------------------------------------------


class TestUnits:
    async def test_unit_entry_creates_iteration(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="1"))
        edge = sink.edges[0]
        assert edge.kind == EdgeKind.WAS_TRIGGERED_BY
        assert edge.operation == "unit"
        assert edge.annotations["source"] == Source.BEEP
        assert edge.source.unit == "1"
        assert edge.source.iteration == "0"
        assert edge.source.count == "0"
        assert edge.destination.unit == "0"

        await dispatcher.dispatch(make_event(2, READ, a0="9", exit="1"))
        assert sink.edges[-1].source.unit == "1"

    async def test_unit_exit_restores_containing(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="1"))
        await dispatcher.dispatch(make_event(2, KILL, a0=UNIT_EXIT, a1="1"))
        assert context.processes.get("100").unit == "0"

    async def test_reserved_unit_id(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="0"))
        assert sink.edges == []

    async def test_repetition_count_within_same_timestamp(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="1"))
        await dispatcher.dispatch(make_event(2, KILL, a0=UNIT_EXIT, a1="1"))
        await dispatcher.dispatch(make_event(3, KILL, a0=UNIT_ENTRY, a1="1"))
        units = [e.source for e in sink.edges_of(EdgeKind.WAS_TRIGGERED_BY)]
        assert [(u.iteration, u.count) for u in units] == [("0", "0"), ("0", "1")]

    async def test_memory_dependency_inside_unit(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="1"))
        await dispatcher.dispatch(make_event(2, KILL, a0=MEM_READ_HIGH, a1="1"))
        await dispatcher.dispatch(make_event(3, KILL, a0=MEM_READ_LOW, a1="10"))
        edge = sink.edges[-1]
        assert edge.kind == EdgeKind.USED
        assert edge.annotations["source"] == Source.BEEP
        assert edge.destination.identity == MemoryIdentity(
            pid="100", address="100000010", length=""
        )

    async def test_memory_write_inside_unit(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="1"))
        await dispatcher.dispatch(make_event(2, KILL, a0=MEM_WRITE_HIGH, a1="2"))
        await dispatcher.dispatch(make_event(3, KILL, a0=MEM_WRITE_LOW, a1="ff"))
        edge = sink.edges[-1]
        assert edge.kind == EdgeKind.WAS_GENERATED_BY
        assert edge.operation == "write"
        assert edge.annotations["source"] == Source.BEEP
        assert edge.source.identity == MemoryIdentity(pid="100", address="2000000ff", length="")
        assert edge.destination.unit == "1"

    async def test_memory_low_word_without_high_dropped(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="1"))
        await dispatcher.dispatch(make_event(2, KILL, a0=MEM_WRITE_LOW, a1="ff"))
        assert len(sink.edges) == 1

    async def test_unit_frame_records_entry_time(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await _open(dispatcher, make_event, 1, "/etc/hosts", "3")
        await dispatcher.dispatch(make_event(2, KILL, a0=UNIT_ENTRY, a1="1", time="1009.500"))
        assert context.processes.get("100").start_time == "1009.500"

    async def test_units_disabled(
        self, context: ProcessingContext, sink: MemoryGraphSink, make_event
    ) -> None:
        dispatcher = _variant(context, units=False)
        await dispatcher.dispatch(make_event(1, KILL, a0=UNIT_ENTRY, a1="1"))
        assert sink.vertices == []


# ---------------------------------------------------------------------------
# Sockets
# ---------------------------------------------------------------------------


# AF_INET 93.184.216.34:80
REMOTE_SADDR = "020000505DB8D8220000000000000000"
# AF_INET 0.0.0.0:8080
LISTEN_SADDR = "02001F90000000000000000000000000"
# AF_INET 10.0.0.1:54321
PEER_SADDR = "0200D4310A0000010000000000000000"
# AF_UNIX /tmp/sock
UNIX_SADDR = "01002F746D702F736F636B00"


class TestSockets:
    async def test_connect_and_send(
        self,
        dispatcher: SyscallDispatcher,
        context: ProcessingContext,
        sink: MemoryGraphSink,
        make_event,
    ) -> None:
        await dispatcher.dispatch(make_event(1, CONNECT, a0="3", saddr=REMOTE_SADDR))
        remote = NetworkSocketIdentity(destination_host="93.184.216.34", destination_port="80")
        assert context.descriptors.get("100", "3") == remote
        assert sink.edges[0].operation == "connect"

        await dispatcher.dispatch(make_event(2, SENDTO, a0="3", exit="100"))
        send = sink.edges[-1]
        assert send.operation == "send"
        assert send.annotations["size"] == "100"
        # Network writes do not version the socket by default
        assert [a.version for a in sink.artifacts] == [0]

    async def test_i386_socketcall_is_remapped(
        self, context: ProcessingContext, sink: MemoryGraphSink, make_event
    ) -> None:
        dispatcher = _variant(context, arch=32)
        # SYS_CONNECT with the socket fd in the SOCKETCALL record
        await dispatcher.dispatch(
            make_event(1, SOCKETCALL_32, a0="3", socketcall_a0="5", saddr=REMOTE_SADDR)
        )
        remote = NetworkSocketIdentity(destination_host="93.184.216.34", destination_port="80")
        assert context.descriptors.get("100", "5") == remote
        assert sink.edges[0].operation == "connect"

        # SYS_SEND
        await dispatcher.dispatch(
            make_event(2, SOCKETCALL_32, a0="9", socketcall_a0="5", exit="64")
        )
        send = sink.edges[-1]
        assert send.operation == "send"
        assert send.annotations["size"] == "64"

    async def test_accept_combines_peer_and_bound_address(
        self, dispatcher: SyscallDispatcher, sink: MemoryGraphSink, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, BIND, a0="3", saddr=LISTEN_SADDR))
        await dispatcher.dispatch(make_event(2, ACCEPT, a0="3", exit="4", saddr=PEER_SADDR))
        edge = sink.edges_of(EdgeKind.USED)[0]
        assert edge.operation == "accept"
        assert edge.destination.identity == NetworkSocketIdentity(
            source_host="10.0.0.1",
            source_port="54321",
            destination_host="0.0.0.0",
            destination_port="8080",
        )

    async def test_unix_socket_connect(
        self, dispatcher: SyscallDispatcher, context: ProcessingContext, make_event
    ) -> None:
        await dispatcher.dispatch(make_event(1, CONNECT, a0="3", saddr=UNIX_SADDR))
        assert context.descriptors.get("100", "3") == UnixSocketIdentity(path="/tmp/sock")

    async def test_unix_socket_ignored_when_disabled(
        self, context: ProcessingContext, sink: MemoryGraphSink, make_event
    ) -> None:
        dispatcher = _variant(context, unix_sockets=False)
        await dispatcher.dispatch(make_event(1, CONNECT, a0="3", saddr=UNIX_SADDR))
        assert sink.edges == []
        assert context.descriptors.get("100", "3") is None
