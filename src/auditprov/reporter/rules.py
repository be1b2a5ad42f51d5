# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""auditctl rules installed for live capture."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from collections.abc import Sequence
from dataclasses import dataclass, field

from auditprov.core.exceptions import FeedError
from auditprov.reporter.context import ReporterOptions

logger = logging.getLogger(__name__)

AUDITCTL = "auditctl"
MAX_RULE_FIELDS = 64
IGNORED_PROCESSES = ("auditd", "kauditd", "audispd")

_CORE_SYSCALLS = (
    "link", "symlink",
    "clone", "fork", "vfork", "execve",
    "open", "close", "creat", "openat", "mknodat", "mknod",
    "dup", "dup2", "dup3",
    "bind", "accept", "accept4", "connect",
    "rename",
    "setuid", "setreuid", "setresuid",
    "chmod", "fchmod",
    "pipe", "pipe2",
    "truncate", "ftruncate",
)  # fmt: skip


@dataclass
class AuditRules:
    """Argument lists for ``auditctl``, in the order they must be applied.

    Per-pid exclusions go in first so that the main rule never records
    activity from the excluded processes.
    """

    exclusions: list[list[str]] = field(default_factory=list)
    unconditional: list[str] = field(default_factory=list)
    main: list[str] = field(default_factory=list)

    def commands(self) -> list[list[str]]:
        return [*self.exclusions, self.unconditional, self.main]

    def render(self) -> list[str]:
        return [" ".join([AUDITCTL, *args]) for args in self.commands()]


def _syscall_args(names: Sequence[str]) -> list[str]:
    args: list[str] = []
    for name in names:
        args += ["-S", name]
    return args


def build_audit_rules(
    options: ReporterOptions,
    *,
    uid: int,
    ignored_pids: Sequence[str] = (),
) -> AuditRules:
    """Build the rules for *options*.

    ``kill`` and the exit syscalls are always recorded regardless of
    outcome; everything else respects the success filter.  Events from
    *uid* (the reporter's own user) and from *ignored_pids* are excluded.
    """
    arch = ["-F", f"arch=b{options.arch}"]

    unconditional = ["-a", "exit,always", *arch, *_syscall_args(("kill", "exit", "exit_group"))]

    tracked: list[str] = []
    if options.file_io:
        tracked += ["read", "readv", "write", "writev"]
    if options.net_io:
        tracked += ["sendto", "recvfrom", "sendmsg", "recvmsg"]
    if options.memory_syscalls:
        tracked += ["mmap", "mprotect"]
        if options.arch == 32:
            tracked.append("mmap2")
    tracked += _CORE_SYSCALLS

    success = "1" if options.success_only else "0"
    main = ["-a", "exit,always", *arch, *_syscall_args(tracked), "-F", f"success={success}"]

    owner = ["-F", f"uid!={uid}"]
    unconditional += owner
    main += owner

    # auditctl caps the number of -F fields per rule; each pid costs two.
    used = main.count("-F")
    inline_count = max(0, (MAX_RULE_FIELDS - used) // 2)
    pid_fields: list[str] = []
    for pid in ignored_pids[:inline_count]:
        pid_fields += ["-F", f"pid!={pid}", "-F", f"ppid!={pid}"]

    exclusions: list[list[str]] = []
    for pid in ignored_pids[inline_count:]:
        exclusions.append(["-a", "exit,never", "-F", f"pid={pid}"])
        exclusions.append(["-a", "exit,never", "-F", f"ppid={pid}"])

    return AuditRules(
        exclusions=exclusions,
        unconditional=unconditional + pid_fields,
        main=main + pid_fields,
    )


# ----------------------------------------------------------------------
# Applying rules
# ----------------------------------------------------------------------


async def _run(argv: Sequence[str]) -> tuple[int, str]:
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as exc:
        raise FeedError(f"Cannot run {argv[0]}: {exc}") from exc
    output, _ = await proc.communicate()
    return proc.returncode or 0, output.decode("utf-8", errors="replace").strip()


async def find_pids(process_names: Sequence[str]) -> list[str]:
    """Return the pids of running processes with any of *process_names*."""
    if not process_names:
        return []
    code, output = await _run(["pidof", *process_names])
    if code != 0:
        return []
    return output.split()


async def clear_rules(auditctl: str = AUDITCTL) -> None:
    code, output = await _run([auditctl, "-D"])
    if code != 0:
        raise FeedError(f"auditctl -D failed: {output}")
    logger.info("Removed audit rules")


async def apply_rules(rules: AuditRules, auditctl: str = AUDITCTL) -> None:
    """Clear existing rules and install *rules*.

    Raises:
        FeedError: If any rule is rejected; rules added so far are removed.
    """
    await clear_rules(auditctl)
    for args in rules.commands():
        code, output = await _run([auditctl, *args])
        logger.info("Configured audit rule: %s", " ".join(args))
        if code != 0 or "error" in output.lower():
            await clear_rules(auditctl)
            raise FeedError(f"auditctl rejected rule {' '.join(args)}: {output}")


async def install_live_rules(options: ReporterOptions, bridge_command: str) -> AuditRules:
    """Build and apply the live-capture rules, excluding the audit daemons."""
    names = list(IGNORED_PROCESSES)
    bridge = shlex.split(bridge_command)
    if bridge:
        names.append(os.path.basename(bridge[0]))
    rules = build_audit_rules(options, uid=os.getuid(), ignored_pids=await find_pids(names))
    await apply_rules(rules)
    return rules
