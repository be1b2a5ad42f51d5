# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Logical syscalls, per-architecture number tables, and operation names."""

from __future__ import annotations

from enum import StrEnum


class Syscall(StrEnum):
    # Real syscalls
    READ = "read"
    READV = "readv"
    PREAD64 = "pread64"
    WRITE = "write"
    WRITEV = "writev"
    PWRITE64 = "pwrite64"
    OPEN = "open"
    OPENAT = "openat"
    CREAT = "creat"
    CLOSE = "close"
    MMAP = "mmap"
    MMAP2 = "mmap2"
    MPROTECT = "mprotect"
    PIPE = "pipe"
    PIPE2 = "pipe2"
    DUP = "dup"
    DUP2 = "dup2"
    DUP3 = "dup3"
    KILL = "kill"
    CLONE = "clone"
    FORK = "fork"
    VFORK = "vfork"
    EXECVE = "execve"
    EXIT = "exit"
    EXIT_GROUP = "exit_group"
    TRUNCATE = "truncate"
    FTRUNCATE = "ftruncate"
    RENAME = "rename"
    LINK = "link"
    SYMLINK = "symlink"
    CHMOD = "chmod"
    FCHMOD = "fchmod"
    MKNOD = "mknod"
    MKNODAT = "mknodat"
    SETUID = "setuid"
    SETREUID = "setreuid"
    SETRESUID = "setresuid"
    BIND = "bind"
    CONNECT = "connect"
    ACCEPT = "accept"
    ACCEPT4 = "accept4"
    SENDTO = "sendto"
    SENDMSG = "sendmsg"
    RECVFROM = "recvfrom"
    RECVMSG = "recvmsg"
    SOCKETCALL = "socketcall"
    # Pseudo operations
    SEND = "send"
    RECV = "recv"
    UNIT = "unit"
    UPDATE = "update"
    LOAD = "load"
    CREATE = "create"
    UNKNOWN = "unknown"


SYSCALLS_64: dict[int, Syscall] = {
    0: Syscall.READ,
    1: Syscall.WRITE,
    2: Syscall.OPEN,
    3: Syscall.CLOSE,
    9: Syscall.MMAP,
    10: Syscall.MPROTECT,
    17: Syscall.PREAD64,
    18: Syscall.PWRITE64,
    19: Syscall.READV,
    20: Syscall.WRITEV,
    22: Syscall.PIPE,
    32: Syscall.DUP,
    33: Syscall.DUP2,
    42: Syscall.CONNECT,
    43: Syscall.ACCEPT,
    44: Syscall.SENDTO,
    45: Syscall.RECVFROM,
    46: Syscall.SENDMSG,
    47: Syscall.RECVMSG,
    49: Syscall.BIND,
    56: Syscall.CLONE,
    57: Syscall.FORK,
    58: Syscall.VFORK,
    59: Syscall.EXECVE,
    60: Syscall.EXIT,
    62: Syscall.KILL,
    76: Syscall.TRUNCATE,
    77: Syscall.FTRUNCATE,
    82: Syscall.RENAME,
    85: Syscall.CREAT,
    86: Syscall.LINK,
    88: Syscall.SYMLINK,
    90: Syscall.CHMOD,
    91: Syscall.FCHMOD,
    105: Syscall.SETUID,
    113: Syscall.SETREUID,
    117: Syscall.SETRESUID,
    133: Syscall.MKNOD,
    231: Syscall.EXIT_GROUP,
    257: Syscall.OPENAT,
    259: Syscall.MKNODAT,
    288: Syscall.ACCEPT4,
    292: Syscall.DUP3,
    293: Syscall.PIPE2,
}

SYSCALLS_32: dict[int, Syscall] = {
    1: Syscall.EXIT,
    2: Syscall.FORK,
    3: Syscall.READ,
    4: Syscall.WRITE,
    5: Syscall.OPEN,
    6: Syscall.CLOSE,
    8: Syscall.CREAT,
    9: Syscall.LINK,
    11: Syscall.EXECVE,
    14: Syscall.MKNOD,
    15: Syscall.CHMOD,
    23: Syscall.SETUID,
    37: Syscall.KILL,
    38: Syscall.RENAME,
    41: Syscall.DUP,
    42: Syscall.PIPE,
    63: Syscall.DUP2,
    70: Syscall.SETREUID,
    83: Syscall.SYMLINK,
    90: Syscall.MMAP,
    92: Syscall.TRUNCATE,
    93: Syscall.FTRUNCATE,
    94: Syscall.FCHMOD,
    102: Syscall.SOCKETCALL,
    120: Syscall.CLONE,
    125: Syscall.MPROTECT,
    145: Syscall.READV,
    146: Syscall.WRITEV,
    164: Syscall.SETRESUID,
    180: Syscall.PREAD64,
    181: Syscall.PWRITE64,
    190: Syscall.VFORK,
    192: Syscall.MMAP2,
    203: Syscall.SETREUID,  # setreuid32
    208: Syscall.SETRESUID,  # setresuid32
    213: Syscall.SETUID,  # setuid32
    252: Syscall.EXIT_GROUP,
    295: Syscall.OPENAT,
    297: Syscall.MKNODAT,
    330: Syscall.DUP3,
    331: Syscall.PIPE2,
    361: Syscall.BIND,
    362: Syscall.CONNECT,
    364: Syscall.ACCEPT4,
    369: Syscall.SENDTO,
    370: Syscall.SENDMSG,
    371: Syscall.RECVFROM,
    372: Syscall.RECVMSG,
}

# socketcall(2) sub-call numbers (linux/net.h)
SOCKETCALLS: dict[int, Syscall] = {
    2: Syscall.BIND,
    3: Syscall.CONNECT,
    5: Syscall.ACCEPT,
    9: Syscall.SENDTO,  # send
    10: Syscall.RECVFROM,  # recv
    11: Syscall.SENDTO,
    12: Syscall.RECVFROM,
    16: Syscall.SENDMSG,
    17: Syscall.RECVMSG,
    18: Syscall.ACCEPT4,
}

_SIMPLIFIED: dict[Syscall, Syscall] = {
    Syscall.PIPE2: Syscall.PIPE,
    Syscall.EXIT_GROUP: Syscall.EXIT,
    Syscall.DUP2: Syscall.DUP,
    Syscall.DUP3: Syscall.DUP,
    Syscall.MKNODAT: Syscall.MKNOD,
    Syscall.MMAP2: Syscall.MMAP,
    Syscall.OPENAT: Syscall.OPEN,
    Syscall.CREAT: Syscall.OPEN,
    Syscall.VFORK: Syscall.FORK,
    Syscall.FCHMOD: Syscall.CHMOD,
    Syscall.SENDTO: Syscall.SEND,
    Syscall.SENDMSG: Syscall.SEND,
    Syscall.RECVFROM: Syscall.RECV,
    Syscall.RECVMSG: Syscall.RECV,
    Syscall.FTRUNCATE: Syscall.TRUNCATE,
    Syscall.READV: Syscall.READ,
    Syscall.PREAD64: Syscall.READ,
    Syscall.WRITEV: Syscall.WRITE,
    Syscall.PWRITE64: Syscall.WRITE,
    Syscall.ACCEPT4: Syscall.ACCEPT,
    Syscall.SYMLINK: Syscall.LINK,
    Syscall.SETREUID: Syscall.SETUID,
    Syscall.SETRESUID: Syscall.SETUID,
}

READ_SYSCALLS = frozenset({Syscall.READ, Syscall.READV, Syscall.PREAD64})
WRITE_SYSCALLS = frozenset({Syscall.WRITE, Syscall.WRITEV, Syscall.PWRITE64})
SEND_SYSCALLS = frozenset({Syscall.SENDTO, Syscall.SENDMSG})
RECV_SYSCALLS = frozenset({Syscall.RECVFROM, Syscall.RECVMSG})


def syscall_table(arch: int) -> dict[int, Syscall]:
    if arch == 64:
        return SYSCALLS_64
    if arch == 32:
        return SYSCALLS_32
    raise ValueError(f"Unsupported architecture: {arch}")


def resolve_syscall(number: int, arch: int) -> Syscall | None:
    """Map a raw syscall number to its logical syscall, or ``None``."""
    return syscall_table(arch).get(number)


def operation_name(syscall: Syscall, simplify: bool) -> str:
    """Return the ``operation`` annotation for *syscall*."""
    if simplify:
        return str(_SIMPLIFIED.get(syscall, syscall))
    return str(syscall)
