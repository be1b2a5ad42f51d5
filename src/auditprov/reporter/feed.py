# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Line feeds: where raw audit record lines come from."""

from __future__ import annotations

import abc
import asyncio
import logging
import platform
import shlex
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import aiofiles

from auditprov.core.config import Settings
from auditprov.core.exceptions import ConfigurationError, FeedError

logger = logging.getLogger(__name__)

_MACHINE_ARCH = {
    "x86_64": 64,
    "amd64": 64,
    "i386": 32,
    "i486": 32,
    "i586": 32,
    "i686": 32,
    "x86": 32,
}


def detect_arch(machine: str | None = None) -> int:
    """Return the word size (32 or 64) of this machine.

    Raises:
        ConfigurationError: If the machine type is not recognized.
    """
    machine = (machine if machine is not None else platform.machine()).lower()
    arch = _MACHINE_ARCH.get(machine)
    if arch is None:
        raise ConfigurationError(f"Cannot determine architecture from machine type {machine!r}")
    return arch


class LineFeed(abc.ABC):
    """An asynchronous source of raw audit lines."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Human readable description of the source."""

    @property
    def is_live(self) -> bool:
        return False

    @abc.abstractmethod
    def lines(self) -> AsyncIterator[str]:
        """Yield lines without trailing newlines, skipping blank ones."""

    async def close(self) -> None:
        """Release the underlying source."""


class FileFeed(LineFeed):
    """Replays a log file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def name(self) -> str:
        return str(self._path)

    async def lines(self) -> AsyncIterator[str]:
        try:
            async with aiofiles.open(self._path, encoding="utf-8", errors="replace") as fh:
                async for line in fh:
                    line = line.rstrip("\n")
                    if line:
                        yield line
        except OSError as exc:
            raise FeedError(f"Cannot read audit log {self._path}: {exc}") from exc


class CommandFeed(LineFeed):
    """Streams the standard output of a subprocess."""

    def __init__(self, argv: Sequence[str], *, live: bool = False) -> None:
        if not argv:
            raise ConfigurationError("Feed command is empty")
        self._argv = list(argv)
        self._live = live
        self._proc: asyncio.subprocess.Process | None = None

    @property
    def name(self) -> str:
        return " ".join(self._argv)

    @property
    def is_live(self) -> bool:
        return self._live

    async def lines(self) -> AsyncIterator[str]:
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self._argv,
                stdout=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise FeedError(f"Cannot start {self._argv[0]}: {exc}") from exc

        stdout = self._proc.stdout
        if stdout is None:
            raise FeedError(f"No output pipe for {self._argv[0]}")
        async for raw in stdout:
            line = raw.decode("utf-8", errors="replace").rstrip("\n")
            if line:
                yield line

        code = await self._proc.wait()
        if code != 0:
            logger.warning("Feed command %s exited with status %d", self._argv[0], code)

    async def close(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
            await asyncio.wait_for(proc.wait(), timeout=5.0)
        except ProcessLookupError:
            logger.debug("Feed command %s already exited", self._argv[0])
        except TimeoutError:
            logger.warning("Feed command %s did not exit, killing it", self._argv[0])
            proc.kill()
            await proc.wait()


def build_feed(settings: Settings) -> tuple[LineFeed, int]:
    """Pick the feed and architecture for *settings*.

    A replayed log needs an explicit ``arch``; live capture detects it.
    """
    if settings.input_log is not None:
        if settings.arch is None:
            raise ConfigurationError("arch (32 or 64) is required when replaying a log file")
        if not settings.input_log.is_file():
            raise ConfigurationError(f"Input log {settings.input_log} does not exist")
        if settings.sort_log:
            sort_argv = shlex.split(settings.sort_command)
            if not sort_argv:
                raise ConfigurationError("sort_log is set but sort_command is empty")
            return CommandFeed([*sort_argv, str(settings.input_log)]), settings.arch
        return FileFeed(settings.input_log), settings.arch

    arch = settings.arch if settings.arch is not None else detect_arch()
    return CommandFeed(shlex.split(settings.bridge_command), live=True), arch
