"""Structured JSONL audit trail of operator commands."""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path


class AuditLogger:
    """Writes one JSON line per processed steering command."""

    def __init__(self, log_path: Path) -> None:
        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("autoloop.audit")
        self._lock = threading.Lock()

    @staticmethod
    def _hash_content(content: str) -> str:
        return hashlib.sha256(content.encode("utf-8")).hexdigest()

    def log(
        self,
        command_id: str,
        command_type: str,
        content: str,
        outcome: str,
        success: bool,
        reason: str = "",
    ) -> None:
        """Append one JSONL audit event."""
        event = {
            "timestamp": datetime.now(UTC).isoformat(),
            "command_id": command_id,
            "command_type": command_type,
            "content_hash": self._hash_content(content),
            "outcome": outcome,
            "success": success,
            "reason": reason,
        }
        line = json.dumps(event, ensure_ascii=True)
        with self._lock:
            with self.log_path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        self.logger.info(line)

    def read(self, limit: int = 50) -> list[dict[str, object]]:
        """Return the most recent audit events, oldest first."""
        if not self.log_path.exists():
            return []
        with self.log_path.open("r", encoding="utf-8") as fh:
            lines = [line for line in fh if line.strip()]
        return [json.loads(line) for line in lines[-limit:]]
