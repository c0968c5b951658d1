"""
Sync state tracking and artifact diffing.

Per-remote watermarks live in <workspace>/.awp/sync/state/<remote>.json.
The diff itself is version precedence: the higher version wins and
travels. Equal versions with different content go to the tie-break
policy, unless both sides still hash to what the last sync left
behind (the pull's own provenance entry would otherwise re-trigger
the tie-break on every pass).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from ..models import (
    RemoteArtifactManifest,
    SyncAction,
    SyncDiffEntry,
    SyncState,
    TieBreakPolicy,
)
from ..store import SYNC_DIR

logger = logging.getLogger("awpsync.sync.state")

PULL = "pull"
PUSH = "push"
BOTH = "both"


def state_path(workspace: Path, remote_name: str) -> Path:
    return Path(workspace) / SYNC_DIR / "state" / f"{remote_name}.json"


def load_state(workspace: Path, remote_name: str) -> SyncState:
    """Load sync state for a remote, or a fresh state if none exists."""
    path = state_path(workspace, remote_name)
    if path.exists():
        try:
            return SyncState(**json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Failed to load sync state for %s: %s", remote_name, exc)
    return SyncState(remote=remote_name)


def save_state(workspace: Path, state: SyncState) -> Path:
    """Persist sync state atomically."""
    path = state_path(workspace, state.remote)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".json.tmp")
    tmp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
    tmp_path.rename(path)
    return path


def _entry(
    slug: str,
    action: SyncAction,
    local: Optional[RemoteArtifactManifest],
    remote: Optional[RemoteArtifactManifest],
    reason: str,
) -> SyncDiffEntry:
    return SyncDiffEntry(
        slug=slug,
        action=action,
        local_version=local.version if local else None,
        remote_version=remote.version if remote else None,
        local_hash=local.content_hash if local else None,
        remote_hash=remote.content_hash if remote else None,
        reason=reason,
    )


def compute_artifact_diff(
    local_artifacts: Iterable[RemoteArtifactManifest],
    remote_artifacts: Iterable[RemoteArtifactManifest],
    state: SyncState,
    tie_break: TieBreakPolicy = TieBreakPolicy.REMOTE_WINS,
    direction: str = BOTH,
) -> list[SyncDiffEntry]:
    """Decide what to do with every artifact on either side.

    Args:
        local_artifacts: Manifests of the local workspace.
        remote_artifacts: Manifests from the remote.
        state: Watermarks from the previous sync with this remote.
        tie_break: Policy for equal versions with differing content.
        direction: ``pull``, ``push``, or ``both``.

    Returns:
        One entry per slug, sorted by slug.
    """
    pulling = direction in (PULL, BOTH)
    pushing = direction in (PUSH, BOTH)

    local_map = {a.slug: a for a in local_artifacts}
    remote_map = {a.slug: a for a in remote_artifacts}
    entries = []

    for slug in sorted(set(local_map) | set(remote_map)):
        local = local_map.get(slug)
        remote = remote_map.get(slug)

        if local is None:
            if pulling:
                entries.append(_entry(slug, SyncAction.IMPORT, local, remote, "New artifact from remote"))
            else:
                entries.append(_entry(slug, SyncAction.SKIP, local, remote, "Remote only (pull candidate)"))
            continue

        if remote is None:
            if pushing:
                entries.append(_entry(slug, SyncAction.PUSH, local, remote, "New artifact, not on remote"))
            else:
                entries.append(_entry(slug, SyncAction.SKIP, local, remote, "Local only (push candidate)"))
            continue

        if remote.version > local.version:
            if pulling:
                entries.append(_entry(slug, SyncAction.FAST_FORWARD, local, remote, "Remote version is newer"))
            else:
                entries.append(_entry(slug, SyncAction.SKIP, local, remote, "Remote newer (pull candidate)"))
            continue

        if local.version > remote.version:
            if pushing:
                entries.append(_entry(slug, SyncAction.PUSH, local, remote, "Local version is newer"))
            else:
                entries.append(_entry(slug, SyncAction.SKIP, local, remote, "Local newer (push candidate)"))
            continue

        if local.content_hash == remote.content_hash:
            entries.append(_entry(slug, SyncAction.SKIP, local, remote, "In sync"))
            continue

        watermark = state.artifacts.get(slug)
        if (
            watermark is not None
            and watermark.local_hash_at_sync == local.content_hash
            and watermark.remote_hash_at_sync == remote.content_hash
        ):
            entries.append(_entry(slug, SyncAction.SKIP, local, remote, "No changes since last sync"))
            continue

        if tie_break == TieBreakPolicy.CONFLICT:
            if pulling:
                entries.append(_entry(slug, SyncAction.CONFLICT, local, remote, "Same version, different content"))
            else:
                entries.append(_entry(slug, SyncAction.SKIP, local, remote, "Same version, conflict stashed on pull"))
        elif tie_break == TieBreakPolicy.REMOTE_WINS:
            if pulling:
                entries.append(_entry(slug, SyncAction.RESOLVE, local, remote, "Same version, remote wins"))
            else:
                entries.append(_entry(slug, SyncAction.SKIP, local, remote, "Same version, remote wins on pull"))
        else:
            if pushing:
                entries.append(_entry(slug, SyncAction.PUSH, local, remote, "Same version, local wins"))
            else:
                entries.append(_entry(slug, SyncAction.SKIP, local, remote, "Same version, local wins on push"))

    return entries
