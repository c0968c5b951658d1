"""Tests for the sync audit log."""

from __future__ import annotations

import json
from pathlib import Path

from awpsync.audit import audit_event, read_audit_log


class TestAuditLog:
    """Append-only JSONL log."""

    def test_appends_jsonl(self, workspace: Path):
        audit_event(workspace, "SYNC_PASS", "both with team", remote="team", metadata={"signals": 2})
        audit_event(workspace, "SYNC_PUSH", "push with team", remote="team")

        lines = (workspace / ".awp" / "sync" / "audit.log").read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["event_type"] == "SYNC_PASS"
        assert first["remote"] == "team"
        assert first["metadata"] == {"signals": 2}
        assert first["host"]

    def test_read_newest_first(self, workspace: Path):
        for i in range(3):
            audit_event(workspace, "SYNC_PULL", f"pull {i}")
        entries = read_audit_log(workspace)
        assert [e.detail for e in entries] == ["pull 2", "pull 1", "pull 0"]
        assert [e.detail for e in read_audit_log(workspace, limit=1)] == ["pull 2"]

    def test_missing_log(self, workspace: Path):
        assert read_audit_log(workspace) == []

    def test_skips_malformed_lines(self, workspace: Path):
        audit_event(workspace, "SYNC_PULL", "ok")
        with (workspace / ".awp" / "sync" / "audit.log").open("a") as f:
            f.write("garbage\n\n")
        assert [e.detail for e in read_audit_log(workspace)] == ["ok"]
