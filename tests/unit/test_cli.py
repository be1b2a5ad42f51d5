# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Unit tests for the auditprov CLI."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from auditprov.cli.app import app

runner = CliRunner()


def _flat(output: str) -> str:
    """Collapse the line wrapping rich applies to long messages."""
    return " ".join(output.split())


# ---------------------------------------------------------------------------
# version / rules
# ---------------------------------------------------------------------------


class TestVersion:
    def test_version(self):
        from auditprov import __version__

        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"auditprov v{__version__}" in result.output


class TestRules:
    def test_prints_rules(self):
        result = runner.invoke(app, ["rules", "--arch", "64", "--uid", "0"])
        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("auditctl -a exit,always -F arch=b64 -S kill")
        assert "uid!=0" in lines[1]
        assert "-S read " not in lines[1]

    def test_file_io_adds_read_write(self):
        result = runner.invoke(app, ["rules", "--arch", "32", "--uid", "0", "--file-io"])
        assert result.exit_code == 0
        assert "-S read " in result.output
        assert "-S mmap2" in result.output

    def test_rejects_bad_arch(self):
        result = runner.invoke(app, ["rules", "--arch", "16", "--uid", "0"])
        assert result.exit_code == 1
        assert "must be 32 or 64" in _flat(result.output)


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


class TestIngest:
    def test_replay_to_jsonl(self, logs_dir: Path, tmp_path: Path):
        output = tmp_path / "graph.jsonl"
        result = runner.invoke(
            app,
            ["ingest", str(logs_dir / "session.log"), "--arch", "64", "--file-io", "-o",
             str(output)],
        )
        assert result.exit_code == 0, result.output
        assert "Ingestion Summary" in _flat(result.output)
        assert f"Graph written to {output}" in result.output

        records = [json.loads(line) for line in output.read_text().splitlines()]
        assert len(records) == 16
        types = {r["type"] for r in records}
        assert types == {"Process", "Artifact", "Used", "WasGeneratedBy", "WasDerivedFrom",
                         "WasTriggeredBy"}
        first_edge = next(r for r in records if r["type"] == "WasGeneratedBy")
        assert first_edge["annotations"]["operation"] == "create"
        assert first_edge["from"]["path"] == "/tmp/report.txt"

    def test_replay_without_output(self, logs_dir: Path):
        result = runner.invoke(app, ["ingest", str(logs_dir / "session.log"), "--arch", "64"])
        assert result.exit_code == 0, result.output
        assert "Graph written" not in result.output

    def test_replay_requires_arch(self, logs_dir: Path):
        result = runner.invoke(app, ["ingest", str(logs_dir / "session.log")])
        assert result.exit_code == 1
        assert "arch" in _flat(result.output)

    def test_rejects_bad_arch(self, logs_dir: Path):
        result = runner.invoke(app, ["ingest", str(logs_dir / "session.log"), "--arch", "16"])
        assert result.exit_code == 1

    def test_missing_log(self, tmp_path: Path):
        result = runner.invoke(app, ["ingest", str(tmp_path / "absent.log"), "--arch", "64"])
        assert result.exit_code == 1
        assert "does not exist" in _flat(result.output)

    def test_environment_settings(self, logs_dir: Path, tmp_path: Path, monkeypatch):
        output = tmp_path / "env.jsonl"
        monkeypatch.setenv("AUDITPROV_ARCH", "64")
        monkeypatch.setenv("AUDITPROV_OUTPUT_PATH", str(output))
        result = runner.invoke(app, ["ingest", str(logs_dir / "session.log")])
        assert result.exit_code == 0, result.output
        assert output.is_file()


# ---------------------------------------------------------------------------
# checkpoint inspect
# ---------------------------------------------------------------------------


class TestCheckpointInspect:
    def test_inspect_saved_state(self, logs_dir: Path, tmp_path: Path):
        state = tmp_path / "state.ckpt"
        result = runner.invoke(
            app,
            ["ingest", str(logs_dir / "checkpoint_part1.log"), "--arch", "64", "--save-state",
             "--state-file", str(state)],
        )
        assert result.exit_code == 0, result.output
        assert state.is_file()

        result = runner.invoke(app, ["checkpoint", "inspect", str(state)])
        assert result.exit_code == 0
        for name in ("DESCRIPTORS", "STACKS", "EVENT_FILTER", "ARTIFACT_FILTER"):
            assert name in _flat(result.output)

    def test_inspect_missing_file(self, tmp_path: Path):
        result = runner.invoke(app, ["checkpoint", "inspect", str(tmp_path / "nope.ckpt")])
        assert result.exit_code == 1
        assert "Cannot read" in _flat(result.output)

    def test_inspect_corrupt_file(self, tmp_path: Path):
        bogus = tmp_path / "bogus.ckpt"
        bogus.write_bytes(b"definitely not a checkpoint")
        result = runner.invoke(app, ["checkpoint", "inspect", str(bogus)])
        assert result.exit_code == 1
        assert "bad magic" in _flat(result.output)
