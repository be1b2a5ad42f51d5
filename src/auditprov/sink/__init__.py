# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Graph sinks for emitted provenance."""

from auditprov.sink.base import GraphSink
from auditprov.sink.jsonl import JsonLinesGraphSink
from auditprov.sink.memory import MemoryGraphSink

__all__ = ["GraphSink", "JsonLinesGraphSink", "MemoryGraphSink"]
