# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Enumerations, kernel constants, and annotation vocabulary."""

from enum import StrEnum


class RecordType(StrEnum):
    SYSCALL = "SYSCALL"
    CWD = "CWD"
    PATH = "PATH"
    EXECVE = "EXECVE"
    FD_PAIR = "FD_PAIR"
    SOCKETCALL = "SOCKETCALL"
    SOCKADDR = "SOCKADDR"
    MMAP = "MMAP"
    NETFILTER_PKT = "NETFILTER_PKT"
    PROCTITLE = "PROCTITLE"
    EOE = "EOE"


class NameType(StrEnum):
    PARENT = "PARENT"
    CREATE = "CREATE"
    NORMAL = "NORMAL"
    DELETE = "DELETE"
    UNKNOWN = "UNKNOWN"


class EdgeKind(StrEnum):
    USED = "Used"
    WAS_GENERATED_BY = "WasGeneratedBy"
    WAS_DERIVED_FROM = "WasDerivedFrom"
    WAS_TRIGGERED_BY = "WasTriggeredBy"


class Source(StrEnum):
    DEV_AUDIT = "/dev/audit"
    BEEP = "beep"
    PROC_FS = "/proc"


class ArtifactSubtype(StrEnum):
    FILE = "file"
    PIPE = "pipe"
    UNIX_SOCKET = "unix socket"
    NETWORK = "network"
    MEMORY = "memory"
    UNKNOWN = "unknown"


# Annotation keys shared by vertices and edges
TIME = "time"
OPERATION = "operation"
EVENT_ID = "event id"
SOURCE = "source"
SIZE = "size"
MODE = "mode"
PROTECTION = "protection"
PID = "pid"
SUBTYPE = "subtype"
VERSION = "version"
EPOCH = "epoch"

UNIT_CONTAINING = "0"
RECORD_MISSING = "[Record Missing]"

# Kernel constants (asm-generic / x86)
SIGCHLD = 17
CLONE_VM = 0x00000100
CLONE_VFORK = 0x00004000

O_ACCMODE = 0o3
O_RDONLY = 0o0
O_WRONLY = 0o1
O_RDWR = 0o2
O_CREAT = 0o100
O_TRUNC = 0o1000

S_IFMT = 0o170000
S_IFIFO = 0o010000
S_IFREG = 0o100000
S_IFSOCK = 0o140000

AT_FDCWD = -100

# BEEP instrumentation opcodes carried in kill(2)'s pid argument
BEEP_UNIT_ENTRY = -100
BEEP_UNIT_EXIT = -101
BEEP_MEM_READ_HIGH = -200
BEEP_MEM_READ_LOW = -201
BEEP_MEM_WRITE_HIGH = -300
BEEP_MEM_WRITE_LOW = -301
