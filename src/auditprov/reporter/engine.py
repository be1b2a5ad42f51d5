# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""AuditReporter: the lifecycle around the assembler and dispatcher.

A producer task copies lines from a :class:`LineFeed` into a bounded
queue; a single consumer task hands them to the assembler one at a time.
Checkpoint restore happens before the consumer starts and checkpoint save
after it has finished, so neither ever races event processing.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from auditprov.core.config import Settings, get_settings
from auditprov.core.exceptions import AuditProvError, FeedError
from auditprov.models.graph import ArtifactVertex, Edge, ProcessVertex
from auditprov.reporter.assembler import EventAssembler
from auditprov.reporter.checkpoint import CheckpointManager
from auditprov.reporter.context import (
    ProcessingContext,
    ReporterOptions,
    artifacts_dir,
    event_buffer_dir,
    open_caches,
)
from auditprov.reporter.dispatcher import SyscallDispatcher
from auditprov.reporter.feed import LineFeed, build_feed, detect_arch
from auditprov.reporter.rules import clear_rules, install_live_rules
from auditprov.sink.base import GraphSink

logger = logging.getLogger(__name__)

ProcessSeeder = Callable[[], Awaitable[Iterable[ProcessVertex]]]

_END_OF_FEED = None


class _CountingSink(GraphSink):
    def __init__(self, inner: GraphSink) -> None:
        self.inner = inner
        self.vertices = 0
        self.edges = 0

    async def emit_vertex(self, vertex: ProcessVertex | ArtifactVertex) -> None:
        await self.inner.emit_vertex(vertex)
        self.vertices += 1

    async def emit_edge(self, edge: Edge) -> None:
        await self.inner.emit_edge(edge)
        self.edges += 1

    async def open(self) -> None:
        await self.inner.open()

    async def close(self) -> None:
        await self.inner.close()


@dataclass
class ReporterStats:
    """Counters reported when a run finishes."""

    source: str = ""
    lines: int = 0
    records: int = 0
    events: int = 0
    unparseable: int = 0
    vertices: int = 0
    edges: int = 0
    discarded_events: int = 0
    caches: dict[str, dict[str, Any]] = field(default_factory=dict)


class AuditReporter:
    """Runs one ingestion session from a feed into a graph sink.

    Args:
        settings: Application settings; defaults to :func:`get_settings`.
        sink: Destination of the provenance graph.
        seeder: Optional coroutine returning processes that already exist
            when capture starts, installed when ``procfs`` is enabled.
        feed: Overrides the feed chosen from settings.
        manage_rules: Install and remove auditctl rules for live feeds.
    """

    def __init__(
        self,
        sink: GraphSink,
        settings: Settings | None = None,
        *,
        seeder: ProcessSeeder | None = None,
        feed: LineFeed | None = None,
        manage_rules: bool = True,
    ) -> None:
        self._settings = settings or get_settings()
        self._sink = _CountingSink(sink)
        self._seeder = seeder
        self._feed = feed
        self._manage_rules = manage_rules
        self._rules_installed = False
        self._stopped = False

        self._shutdown = asyncio.Event()
        self._draining = False
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=self._settings.queue_size)
        self._producer: asyncio.Task[None] | None = None
        self._consumer: asyncio.Task[None] | None = None

        self.context: ProcessingContext | None = None
        self.assembler: EventAssembler | None = None
        self.stats = ReporterStats()
        self._cache_stats: dict[str, dict[str, Any]] = {}

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Acquire the feed, build or restore state, and start the tasks."""
        settings = self._settings
        if self._feed is None:
            self._feed, arch = build_feed(settings)
        else:
            arch = settings.arch if settings.arch is not None else detect_arch()
        options = ReporterOptions.from_settings(settings, arch)
        self.stats.source = self._feed.name

        await self._sink.open()
        if settings.load_state:
            self.context = await CheckpointManager(settings).restore(self._sink, options)
        else:
            event_buffer, artifact_cache = await open_caches(settings)
            self.context = ProcessingContext(options, self._sink, event_buffer, artifact_cache)

        if settings.procfs:
            if self._seeder is None:
                logger.warning("procfs seeding requested but no process seeder is configured")
            else:
                await self.context.processes.seed(await self._seeder())

        dispatcher = SyscallDispatcher(self.context)
        self.assembler = EventAssembler(self.context.event_buffer, dispatcher.dispatch)
        self._draining = settings.wait_for_log and not self._feed.is_live

        self._producer = asyncio.create_task(self._produce(self._feed), name="auditprov-feed")
        self._consumer = asyncio.create_task(
            self._consume(self.assembler), name="auditprov-consumer"
        )

        if self._feed.is_live and self._manage_rules:
            try:
                await install_live_rules(options, settings.bridge_command)
            except FeedError:
                await self.stop()
                raise
            self._rules_installed = True

        logger.info("Audit reporter started (source=%s, arch=%d)", self._feed.name, arch)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _produce(self, feed: LineFeed) -> None:
        try:
            async for line in feed.lines():
                if self._shutdown.is_set() and not self._draining:
                    return
                await self._queue.put(line)
        except FeedError:
            self._shutdown.set()
            raise
        await self._queue.put(_END_OF_FEED)

    async def _consume(self, assembler: EventAssembler) -> None:
        while True:
            line = await self._queue.get()
            if line is _END_OF_FEED:
                return
            await assembler.process_line(line)
            if self._shutdown.is_set() and not self._draining:
                return

    def request_shutdown(self) -> None:
        self._shutdown.set()

    async def wait(self) -> None:
        """Block until the feed is consumed or shutdown is requested.

        Re-raises a failure of either task.
        """
        if self._consumer is None:
            return
        shutdown = asyncio.create_task(self._shutdown.wait())
        try:
            await asyncio.wait({self._consumer, shutdown}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self._cancel(shutdown)
        for task in (self._producer, self._consumer):
            if task is not None and task.done() and not task.cancelled():
                task.result()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def _cancel(self, task: asyncio.Task[None] | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _wake_consumer(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END_OF_FEED)

    async def _stop_tasks(self) -> None:
        if self._draining and self._consumer is not None and not self._consumer.done():
            done, _ = await asyncio.wait({self._consumer}, timeout=self._settings.drain_timeout)
            if not done:
                logger.warning(
                    "Log not drained within %.1fs, abandoning the rest of the feed",
                    self._settings.drain_timeout,
                )
                self._draining = False

        if self._producer is not None and not self._producer.done():
            await asyncio.wait({self._producer}, timeout=self._settings.feed_join_timeout)
            await self._cancel(self._producer)

        if self._consumer is not None and not self._consumer.done():
            self._wake_consumer()
            await asyncio.wait({self._consumer})

        for task in (self._producer, self._consumer):
            if task is not None and task.done() and not task.cancelled() and task.exception():
                logger.error("Task %s failed: %s", task.get_name(), task.exception())

    async def stop(self) -> None:
        """Stop the tasks, save or discard state, and release resources."""
        if self._stopped:
            return
        self._stopped = True
        self._shutdown.set()
        await self._stop_tasks()

        if self._feed is not None:
            try:
                await self._feed.close()
            except OSError:
                logger.warning("Failed to close feed %s", self._feed.name, exc_info=True)

        if self._rules_installed:
            try:
                await clear_rules()
            except FeedError:
                logger.warning("Failed to remove audit rules", exc_info=True)
            self._rules_installed = False

        try:
            await self._release_state()
        finally:
            try:
                await self._sink.close()
            except (AuditProvError, OSError):
                logger.warning("Failed to close graph sink", exc_info=True)
            self._delete_cache_dirs()
            self._collect_stats()
            logger.info("Audit reporter stopped")

    async def _release_state(self) -> None:
        context = self.context
        if context is None:
            return
        self._cache_stats = {
            "eventbuffer": context.event_buffer.stats.to_dict(),
            "artifacts": context.artifact_cache.stats.to_dict(),
        }
        if self._settings.save_state:
            await CheckpointManager(self._settings).save(context)
            return
        self.stats.discarded_events = len(context.event_buffer)
        if self.stats.discarded_events:
            logger.warning(
                "Discarding %d incomplete event(s) still buffered", self.stats.discarded_events
            )
        await context.close()

    def _delete_cache_dirs(self) -> None:
        for directory in (event_buffer_dir(self._settings), artifacts_dir(self._settings)):
            if not directory.exists():
                continue
            try:
                shutil.rmtree(directory)
            except OSError:
                logger.warning("Failed to delete cache directory %s", directory, exc_info=True)

    def _collect_stats(self) -> None:
        if self.assembler is not None:
            assembled = self.assembler.stats
            self.stats.lines = assembled.lines
            self.stats.records = assembled.records
            self.stats.events = assembled.events
            self.stats.unparseable = assembled.unparseable
        self.stats.vertices = self._sink.vertices
        self.stats.edges = self._sink.edges
        self.stats.caches = self._cache_stats

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    async def run(self) -> ReporterStats:
        """Start, process until the feed ends or shutdown is requested, stop."""
        try:
            await self.start()
            await self.wait()
        finally:
            await self.stop()
        return self.stats
