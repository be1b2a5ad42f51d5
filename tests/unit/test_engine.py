# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the reporter lifecycle: replay, shutdown, and checkpoints."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from auditprov.core.config import Settings
from auditprov.core.constants import EdgeKind, Source
from auditprov.core.exceptions import ConfigurationError, FeedError
from auditprov.models.graph import ProcessVertex
from auditprov.models.identity import FileIdentity
from auditprov.reporter.context import artifacts_dir, event_buffer_dir
from auditprov.reporter.engine import AuditReporter
from auditprov.reporter.feed import LineFeed
from auditprov.sink.memory import MemoryGraphSink


class ScriptedFeed(LineFeed):
    """Yields fixed lines, then optionally blocks until closed."""

    def __init__(self, lines: list[str], *, block: bool = False, fail: bool = False) -> None:
        self._lines = lines
        self._block = block
        self._fail = fail
        self._closed = asyncio.Event()
        self.close_calls = 0

    @property
    def name(self) -> str:
        return "scripted"

    async def lines(self) -> AsyncIterator[str]:
        for line in self._lines:
            yield line
        if self._fail:
            raise FeedError("bridge went away")
        if self._block:
            await self._closed.wait()

    async def close(self) -> None:
        self.close_calls += 1
        self._closed.set()


@pytest.fixture
def replay_settings(settings: Settings, logs_dir: Path) -> Settings:
    return settings.model_copy(
        update={"input_log": logs_dir / "session.log", "arch": 64, "file_io": True}
    )


class TestReplay:
    async def test_replays_whole_log(self, replay_settings: Settings) -> None:
        sink = MemoryGraphSink()
        stats = await AuditReporter(sink, replay_settings).run()

        assert stats.source == str(replay_settings.input_log)
        assert stats.lines == 29
        assert stats.records == 29
        assert stats.unparseable == 0
        assert stats.events == 8
        assert stats.vertices == len(sink.vertices) == 7
        assert stats.edges == len(sink.edges) == 9
        assert stats.discarded_events == 0
        assert set(stats.caches) == {"eventbuffer", "artifacts"}

    async def test_provenance_of_session(self, replay_settings: Settings) -> None:
        sink = MemoryGraphSink()
        await AuditReporter(sink, replay_settings).run()

        report = FileIdentity(path="/tmp/report.txt")
        created = sink.edges[0]
        assert created.operation == "create"
        assert created.source.identity == report

        triggered = sink.edges_of(EdgeKind.WAS_TRIGGERED_BY)
        assert [e.operation for e in triggered] == ["fork", "execve"]
        assert triggered[1].source.commandline == "cat /tmp/report.txt"

        reads = [e for e in sink.edges_of(EdgeKind.USED) if e.operation == "read"]
        assert len(reads) == 1
        assert reads[0].source.pid == "501"
        assert reads[0].destination.identity == report
        assert reads[0].destination.version == 1

    async def test_cache_directories_removed(self, replay_settings: Settings) -> None:
        await AuditReporter(MemoryGraphSink(), replay_settings).run()
        assert not event_buffer_dir(replay_settings).exists()
        assert not artifacts_dir(replay_settings).exists()

    async def test_missing_arch(self, settings: Settings, logs_dir: Path) -> None:
        reporter = AuditReporter(
            MemoryGraphSink(), settings.model_copy(update={"input_log": logs_dir / "session.log"})
        )
        with pytest.raises(ConfigurationError):
            await reporter.run()

    async def test_file_io_disabled(self, replay_settings: Settings) -> None:
        sink = MemoryGraphSink()
        await AuditReporter(sink, replay_settings.model_copy(update={"file_io": False})).run()
        assert [e.operation for e in sink.edges if e.operation in ("read", "write")] == []


class TestLifecycle:
    async def test_shutdown_request_stops_blocked_feed(self, settings: Settings) -> None:
        feed = ScriptedFeed(["type=EOE msg=audit(1.0:1):"], block=True)
        reporter = AuditReporter(
            MemoryGraphSink(),
            settings.model_copy(update={"arch": 64, "feed_join_timeout": 0.1}),
            feed=feed,
        )
        await reporter.start()
        assert reporter.running
        reporter.request_shutdown()
        await reporter.wait()
        await reporter.stop()
        assert not reporter.running
        assert feed.close_calls == 1

    async def test_stop_is_idempotent(self, settings: Settings) -> None:
        feed = ScriptedFeed([])
        reporter = AuditReporter(
            MemoryGraphSink(), settings.model_copy(update={"arch": 64}), feed=feed
        )
        await reporter.run()
        await reporter.stop()
        assert feed.close_calls == 1

    async def test_wait_for_log_drains_after_shutdown(self, replay_settings: Settings) -> None:
        reporter = AuditReporter(
            MemoryGraphSink(), replay_settings.model_copy(update={"wait_for_log": True})
        )
        await reporter.start()
        reporter.request_shutdown()
        await reporter.wait()
        await reporter.stop()
        assert reporter.stats.events == 8

    async def test_feed_failure_propagates(self, settings: Settings) -> None:
        feed = ScriptedFeed([], fail=True)
        reporter = AuditReporter(
            MemoryGraphSink(), settings.model_copy(update={"arch": 64}), feed=feed
        )
        with pytest.raises(FeedError, match="bridge went away"):
            await reporter.run()
        assert not reporter.running

    async def test_incomplete_events_are_counted_on_discard(self, settings: Settings) -> None:
        feed = ScriptedFeed(["type=SYSCALL msg=audit(1.0:5): syscall=2 pid=1"])
        reporter = AuditReporter(
            MemoryGraphSink(), settings.model_copy(update={"arch": 64}), feed=feed
        )
        stats = await reporter.run()
        assert stats.discarded_events == 1

    async def test_procfs_seeding(self, settings: Settings) -> None:
        async def seeder() -> list[ProcessVertex]:
            return [ProcessVertex(pid="1", name="init")]

        sink = MemoryGraphSink()
        reporter = AuditReporter(
            sink,
            settings.model_copy(update={"arch": 64, "procfs": True}),
            seeder=seeder,
            feed=ScriptedFeed([]),
        )
        stats = await reporter.run()
        assert stats.vertices == 1
        assert sink.processes[0].source == Source.PROC_FS


class TestCheckpointing:
    async def test_save_then_resume(self, settings: Settings, logs_dir: Path) -> None:
        first = settings.model_copy(
            update={
                "input_log": logs_dir / "checkpoint_part1.log",
                "arch": 64,
                "file_io": True,
                "save_state": True,
            }
        )
        stats = await AuditReporter(MemoryGraphSink(), first).run()
        assert stats.events == 1
        assert stats.edges == 1
        assert settings.state_file.is_file()
        assert settings.saved_event_buffer_dir.is_dir()
        assert not event_buffer_dir(settings).exists()

        second = first.model_copy(
            update={
                "input_log": logs_dir / "checkpoint_part2.log",
                "save_state": False,
                "load_state": True,
            }
        )
        sink = MemoryGraphSink()
        stats = await AuditReporter(sink, second).run()

        # Event 202 started before the checkpoint and ends after it
        assert stats.events == 2
        assert stats.vertices == 2
        assert stats.edges == 3
        opened = sink.edges_of(EdgeKind.USED)[0]
        assert opened.destination.identity == FileIdentity(path="/etc/hosts")

        written = sink.edges_of(EdgeKind.WAS_GENERATED_BY)[0]
        assert written.operation == "write"
        assert written.source.identity == FileIdentity(path="/tmp/state.txt")
        assert written.source.version == 1
        assert written.destination.pid == "600"
        assert not settings.saved_event_buffer_dir.exists()
