# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Process vertices and BEEP unit-iteration stacks, per pid.

Each known pid owns a stack whose first frame is the containing process
(``unit="0"``) and whose later frames are active loop-unit iterations,
innermost last.  Edges for a pid are attributed to the top of its stack.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from auditprov.core.constants import UNIT_CONTAINING, Source
from auditprov.models.graph import ProcessVertex
from auditprov.sink.base import GraphSink

logger = logging.getLogger(__name__)

_NOT_SIMPLIFIED_ONLY = ("suid", "fsuid", "sgid", "fsgid")
_UNIT_FIELDS = ("unit", "iteration", "count")


class RepetitionCount(BaseModel):
    pid: str
    unit: str
    iteration: int
    count: int


class TrackerState(BaseModel):
    """Serializable snapshot of a :class:`ProcessUnitTracker`."""

    stacks: dict[str, list[ProcessVertex]] = Field(default_factory=dict)
    iterations: dict[str, dict[str, int]] = Field(default_factory=dict)
    repetitions: list[RepetitionCount] = Field(default_factory=list)
    last_timestamp: str | None = None


class ProcessUnitTracker:
    """Owns process stacks, unit iteration counters, and repetition counts."""

    def __init__(self, sink: GraphSink, *, simplify: bool = True, units: bool = False) -> None:
        self._sink = sink
        self._simplify = simplify
        self._units = units
        self._stacks: dict[str, list[ProcessVertex]] = {}
        self._iterations: dict[str, dict[str, int]] = {}
        self._repetitions: dict[tuple[str, str, int], int] = {}
        self.last_timestamp: str | None = None

    # ------------------------------------------------------------------
    # Vertex construction
    # ------------------------------------------------------------------

    def normalize(self, vertex: ProcessVertex, **updates: Any) -> ProcessVertex:
        """Apply *updates* and the simplify/unit annotation rules."""
        if self._simplify:
            updates.update({name: None for name in _NOT_SIMPLIFIED_ONLY})
        if self._units:
            if updates.get("unit", vertex.unit) is None:
                updates["unit"] = UNIT_CONTAINING
        else:
            updates.update({name: None for name in _UNIT_FIELDS})
        return vertex.model_copy(update=updates)

    def create_vertex(self, attributes: Mapping[str, str], **updates: Any) -> ProcessVertex:
        return self.normalize(ProcessVertex.from_attributes(attributes), **updates)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, pid: str) -> ProcessVertex | None:
        """Return the active frame (top of stack) for *pid*."""
        stack = self._stacks.get(pid)
        return stack[-1] if stack else None

    def containing(self, pid: str) -> ProcessVertex | None:
        stack = self._stacks.get(pid)
        return stack[0] if stack else None

    def stack(self, pid: str) -> list[ProcessVertex]:
        return list(self._stacks.get(pid, []))

    def iteration_counter(self, pid: str, unit: str) -> int | None:
        return self._iterations.get(pid, {}).get(unit)

    def pids(self) -> list[str]:
        return list(self._stacks)

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    def reset(self, pid: str, vertex: ProcessVertex, *, keep_iterations: bool = False) -> None:
        """Replace the whole stack of *pid* with a single containing frame."""
        self._stacks[pid] = [vertex]
        if not keep_iterations:
            self._iterations.pop(pid, None)

    async def put_process(
        self,
        attributes: Mapping[str, str],
        *,
        replace: bool = False,
        **updates: Any,
    ) -> ProcessVertex:
        """Return the active vertex for the event's pid, creating it if needed.

        With ``replace`` a fresh containing vertex always replaces the
        existing stack and is emitted.
        """
        vertex = self.create_vertex(attributes, **updates)
        existing = self.get(vertex.pid)
        if existing is not None and not replace:
            return existing
        self.reset(vertex.pid, vertex)
        await self._sink.emit_vertex(vertex)
        return vertex

    async def put_vertex(
        self, vertex: ProcessVertex, *, keep_iterations: bool = False
    ) -> ProcessVertex:
        """Install an already built containing vertex and emit it."""
        self.reset(vertex.pid, vertex, keep_iterations=keep_iterations)
        await self._sink.emit_vertex(vertex)
        return vertex

    async def append_frame(self, pid: str, vertex: ProcessVertex) -> ProcessVertex:
        self._stacks.setdefault(pid, []).append(vertex)
        await self._sink.emit_vertex(vertex)
        return vertex

    def drop(self, pid: str) -> None:
        self._stacks.pop(pid, None)
        self._iterations.pop(pid, None)

    async def seed(self, vertices: Iterable[ProcessVertex]) -> None:
        """Install processes discovered outside the audit stream (e.g. /proc)."""
        for vertex in vertices:
            await self.put_vertex(self.normalize(vertex, source=Source.PROC_FS))

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    def _next_iteration(self, pid: str, unit: str) -> int:
        counters = self._iterations.setdefault(pid, {})
        iteration = counters.get(unit, -1) + 1
        counters[unit] = iteration
        return iteration

    async def push_unit(self, pid: str, unit: str, time: str | None) -> ProcessVertex | None:
        """Begin a new iteration of *unit* for *pid*.

        Returns the new unit frame, or ``None`` if the unit id is invalid or
        the process is unknown.
        """
        if unit == UNIT_CONTAINING:
            logger.info("Unit id %s is reserved for the containing process (pid %s)", unit, pid)
            return None
        containing = self.containing(pid)
        if containing is None:
            logger.info("Unit entry for unknown pid %s", pid)
            return None

        stack = self._stacks[pid]
        iteration = self._next_iteration(pid, unit)
        if iteration > 0:
            for index in range(len(stack) - 1, 0, -1):
                frame = stack[index]
                if frame.unit == unit and int(frame.iteration or 0) < iteration:
                    del stack[index]
                    break

        if time != self.last_timestamp:
            self._repetitions.clear()
            self.last_timestamp = time
        key = (pid, unit, iteration)
        count = self._repetitions.get(key, -1) + 1
        self._repetitions[key] = count

        frame = containing.model_copy(
            update={
                "unit": unit,
                "iteration": str(iteration),
                "count": str(count),
                "start_time": time,
                "source": Source.BEEP,
            }
        )
        return await self.append_frame(pid, frame)

    def pop_units(self, pid: str, unit: str) -> None:
        """End *unit*: drop all of its frames and reset its iteration counter."""
        stack = self._stacks.get(pid)
        if stack:
            self._stacks[pid] = [stack[0]] + [f for f in stack[1:] if f.unit != unit]
        self._iterations.get(pid, {}).pop(unit, None)

    # ------------------------------------------------------------------
    # Checkpoint support
    # ------------------------------------------------------------------

    def export_state(self) -> TrackerState:
        return TrackerState(
            stacks={pid: list(stack) for pid, stack in self._stacks.items()},
            iterations={pid: dict(c) for pid, c in self._iterations.items()},
            repetitions=[
                RepetitionCount(pid=pid, unit=unit, iteration=iteration, count=count)
                for (pid, unit, iteration), count in self._repetitions.items()
            ],
            last_timestamp=self.last_timestamp,
        )

    def load_state(self, state: TrackerState) -> None:
        self._stacks = {pid: list(stack) for pid, stack in state.stacks.items()}
        self._iterations = {pid: dict(c) for pid, c in state.iterations.items()}
        self._repetitions = {
            (r.pid, r.unit, r.iteration): r.count for r in state.repetitions
        }
        self.last_timestamp = state.last_timestamp
