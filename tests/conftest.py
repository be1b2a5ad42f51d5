# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Shared test fixtures and configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from auditprov.core.config import Settings
from auditprov.reporter.context import ProcessingContext, ReporterOptions, open_caches
from auditprov.reporter.dispatcher import SyscallDispatcher
from auditprov.sink.memory import MemoryGraphSink

LOGS_DIR = Path(__file__).parent / "fixtures" / "logs"


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep AUDITPROV_* variables and a stray .env out of the settings."""
    import os

    for key in list(os.environ):
        if key.startswith("AUDITPROV_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def logs_dir() -> Path:
    return LOGS_DIR


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        cache_dir=tmp_path / "cache",
        event_buffer_cache_size=64,
        artifacts_cache_size=64,
        event_buffer_expected_elements=1_000,
        artifacts_expected_elements=1_000,
        state_file=tmp_path / "saved" / "state.ckpt",
        saved_event_buffer_dir=tmp_path / "saved" / "eventbuffer",
        saved_artifacts_dir=tmp_path / "saved" / "artifacts",
    )


@pytest.fixture
def options() -> ReporterOptions:
    return ReporterOptions(arch=64, file_io=True, net_io=True, units=True, unix_sockets=True)


@pytest.fixture
def sink() -> MemoryGraphSink:
    return MemoryGraphSink()


@pytest.fixture
async def context(settings: Settings, options: ReporterOptions, sink: MemoryGraphSink):
    event_buffer, artifact_cache = await open_caches(settings)
    ctx = ProcessingContext(options, sink, event_buffer, artifact_cache)
    yield ctx
    await ctx.close()


@pytest.fixture
def dispatcher(context: ProcessingContext) -> SyscallDispatcher:
    return SyscallDispatcher(context)


def syscall_event(
    event_id: int,
    syscall: int,
    *,
    pid: str = "100",
    ppid: str = "1",
    exit: str = "0",
    success: str = "yes",
    time: str = "1000.000",
    comm: str = "proc",
    **extra: str,
) -> dict[str, str]:
    """Attribute map of a finalized event, as the assembler would build it.

    ``a0``..``a3`` are given as hex strings, the way the kernel logs them.
    """
    attributes = {
        "eventid": str(event_id),
        "time": time,
        "syscall": str(syscall),
        "success": success,
        "exit": exit,
        "pid": pid,
        "ppid": ppid,
        "uid": "1000",
        "euid": "1000",
        "suid": "1000",
        "fsuid": "1000",
        "gid": "1000",
        "egid": "1000",
        "sgid": "1000",
        "fsgid": "1000",
        "comm": comm,
    }
    attributes.update(extra)
    return attributes


@pytest.fixture
def make_event():
    return syscall_event
