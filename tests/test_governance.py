"""Audit trail tests."""

from __future__ import annotations

import hashlib
from pathlib import Path

from governance.audit_logger import AuditLogger


def test_audit_log_writes_hashed_jsonl_events(tmp_path: Path) -> None:
    audit = AuditLogger(tmp_path / "logs" / "audit.jsonl")
    audit.log(
        command_id="c1",
        command_type="UpdatePrompt",
        content="Study the logs",
        outcome="applied",
        success=True,
        reason="Prompt updated successfully",
    )
    audit.log(
        command_id="c2",
        command_type="AddGoal",
        content="",
        outcome="rejected",
        success=False,
        reason="AddGoal requires a goal description",
    )

    events = audit.read()
    assert [event["command_id"] for event in events] == ["c1", "c2"]
    assert events[0]["content_hash"] == hashlib.sha256(b"Study the logs").hexdigest()
    assert "Study the logs" not in (tmp_path / "logs" / "audit.jsonl").read_text(encoding="utf-8")
    assert events[1]["success"] is False
    assert audit.read(limit=1)[0]["command_id"] == "c2"


def test_missing_audit_log_reads_empty(tmp_path: Path) -> None:
    assert AuditLogger(tmp_path / "audit.jsonl").read() == []
