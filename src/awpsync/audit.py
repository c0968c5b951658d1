"""
Sync audit log -- one JSON line per completed sync operation.

Lives at <workspace>/.awp/sync/audit.log and is only ever appended to.
"""

from __future__ import annotations

import json
import logging
import socket
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from .store import SYNC_DIR

logger = logging.getLogger("awpsync.audit")

AUDIT_LOG_NAME = "audit.log"


class AuditEntry(BaseModel):
    """A single structured audit log entry."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    event_type: str
    detail: str
    host: str = Field(default_factory=socket.gethostname)
    remote: Optional[str] = None
    metadata: Optional[dict] = None


def audit_event(
    workspace: Path,
    event_type: str,
    detail: str,
    remote: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> AuditEntry:
    """Append a structured event to the sync audit log.

    Args:
        workspace: Local workspace root.
        event_type: Event category (SYNC_PASS, SYNC_PULL, SYNC_PUSH,
            SIGNALS_PULL, SIGNALS_PUSH, ...).
        detail: Human-readable event description.
        remote: Remote name the event concerns.
        metadata: Optional dict of extra structured data.

    Returns:
        AuditEntry: The entry that was written.
    """
    sync_dir = Path(workspace) / SYNC_DIR
    sync_dir.mkdir(parents=True, exist_ok=True)

    entry = AuditEntry(
        event_type=event_type, detail=detail, remote=remote, metadata=metadata
    )
    with (sync_dir / AUDIT_LOG_NAME).open("a", encoding="utf-8") as f:
        f.write(entry.model_dump_json() + "\n")
    return entry


def read_audit_log(workspace: Path, limit: int = 0) -> list[AuditEntry]:
    """Read the audit log, newest first.

    Args:
        workspace: Local workspace root.
        limit: Maximum entries to return (0 = all).
    """
    path = Path(workspace) / SYNC_DIR / AUDIT_LOG_NAME
    if not path.exists():
        return []

    entries = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            entries.append(AuditEntry(**json.loads(line)))
        except (json.JSONDecodeError, ValidationError):
            logger.warning("Skipping malformed audit line: %s", line[:80])
    entries.reverse()
    return entries[:limit] if limit else entries
