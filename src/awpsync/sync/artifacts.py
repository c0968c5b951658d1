"""
Artifact sync operations -- apply a computed diff.

Pull side: remote reads run concurrently (bounded), local writes are
applied one at a time. Push side: writes are strictly serialized; a
rejected push is retried after a fresh connect, only while the local
copy is still strictly newer than what the remote now holds.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional, Union

from ..errors import (
    ArtifactNotFoundError,
    ArtifactParseError,
    PushRejectedError,
    SyncError,
    VersionRegressionError,
)
from ..frontmatter import join_frontmatter
from ..models import (
    Artifact,
    ArtifactFilter,
    ArtifactWatermark,
    ProvenanceAction,
    ProvenanceEntry,
    SyncAction,
    SyncDiagnostic,
    SyncDiffEntry,
    SyncRemote,
    SyncResult,
    TieBreakPolicy,
)
from ..store import LocalStore, content_hash
from .conflicts import stash_conflict
from .transports import SyncTransport

logger = logging.getLogger("awpsync.sync.artifacts")

PULL_ACTIONS = (SyncAction.IMPORT, SyncAction.FAST_FORWARD, SyncAction.RESOLVE, SyncAction.CONFLICT)

# Per-artifact failures that never abort a pass.
ARTIFACT_ERRORS = (ArtifactNotFoundError, ArtifactParseError, VersionRegressionError)


def _diagnose(result: SyncResult, slug: str, exc: SyncError) -> None:
    logger.warning("Artifact %s: %s (%s)", slug, exc, exc.code)
    result.diagnostics.append(SyncDiagnostic(slug=slug, code=exc.code, message=str(exc)))


def with_provenance(
    artifact: Artifact,
    agent: str,
    action: ProvenanceAction,
    message: str,
    sync_source: str,
) -> str:
    """Serialize ``artifact`` with one more provenance entry appended.

    Existing entries are carried over untouched.
    """
    frontmatter = dict(artifact.frontmatter)
    entry = ProvenanceEntry(
        agent=agent, action=action, message=message, sync_source=sync_source
    )
    frontmatter["provenance"] = artifact.provenance + [entry.to_frontmatter()]
    return join_frontmatter(frontmatter, artifact.content)


async def fetch_artifacts(
    transport: SyncTransport, slugs: Iterable[str], max_concurrent: int
) -> dict[str, Union[Artifact, SyncError]]:
    """Read several remote artifacts concurrently.

    Per-artifact read failures are returned in place of the artifact;
    anything else propagates.
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def _read(slug: str) -> tuple[str, Union[Artifact, SyncError]]:
        async with semaphore:
            try:
                return slug, await transport.read_artifact(slug)
            except (ArtifactNotFoundError, ArtifactParseError) as exc:
                return slug, exc

    pairs = await asyncio.gather(*(_read(slug) for slug in slugs))
    return dict(pairs)


async def pull_artifacts(
    store: LocalStore,
    transport: SyncTransport,
    entries: list[SyncDiffEntry],
    remote_name: str,
    result: SyncResult,
    max_concurrent: int = 8,
    tie_break: TieBreakPolicy = TieBreakPolicy.REMOTE_WINS,
) -> dict[str, ArtifactWatermark]:
    """Apply the pull half of a diff to the local workspace.

    Returns:
        Watermarks for every artifact that was written locally.
    """
    todo = [e for e in entries if e.action in PULL_ACTIONS]
    if not todo:
        return {}

    fetched = await fetch_artifacts(transport, [e.slug for e in todo], max_concurrent)
    agent = store.agent_did
    watermarks: dict[str, ArtifactWatermark] = {}

    for entry in todo:
        remote = fetched[entry.slug]
        if isinstance(remote, SyncError):
            _diagnose(result, entry.slug, remote)
            continue

        if entry.action == SyncAction.CONFLICT:
            await asyncio.to_thread(
                stash_conflict,
                store.root,
                entry.slug,
                remote_name,
                entry.local_version or 0,
                remote.version,
                remote.raw,
                tie_break.value,
                entry.reason,
            )
            result.conflicts.append(entry.slug)
            continue

        if entry.action == SyncAction.RESOLVE:
            raw = with_provenance(
                remote,
                agent,
                ProvenanceAction.MERGED,
                f"Tie-break: {remote_name} version {remote.version} replaced local "
                f"content (prior hash {entry.local_hash})",
                remote_name,
            )
        else:
            raw = with_provenance(
                remote,
                agent,
                ProvenanceAction.SYNCED,
                f"Pulled from {remote_name} (remote version {remote.version})",
                remote_name,
            )

        try:
            await asyncio.to_thread(store.write_artifact, entry.slug, raw)
        except ARTIFACT_ERRORS as exc:
            _diagnose(result, entry.slug, exc)
            continue

        watermarks[entry.slug] = ArtifactWatermark(
            local_version_at_sync=remote.version,
            remote_version_at_sync=remote.version,
            local_hash_at_sync=content_hash(raw),
            remote_hash_at_sync=content_hash(remote.raw),
        )
        if entry.action == SyncAction.IMPORT:
            result.imported.append(entry.slug)
        elif entry.action == SyncAction.RESOLVE:
            result.resolved.append(entry.slug)
        else:
            result.updated.append(entry.slug)

    return watermarks


async def _remote_version(transport: SyncTransport, slug: str) -> Optional[int]:
    manifests = await transport.list_artifacts(ArtifactFilter(slug_pattern=slug))
    for manifest in manifests:
        if manifest.slug == slug:
            return manifest.version
    return None


async def push_artifacts(
    store: LocalStore,
    transport: SyncTransport,
    entries: list[SyncDiffEntry],
    remote: SyncRemote,
    result: SyncResult,
    max_retries: int = 2,
) -> dict[str, ArtifactWatermark]:
    """Apply the push half of a diff, one write at a time.

    On ``push-rejected`` the transport is reconnected (a fresh clone
    for git) and the push retried up to ``max_retries`` times, but
    only while the remote is still behind the local version.

    Returns:
        Watermarks for every artifact that reached the remote.
    """
    watermarks: dict[str, ArtifactWatermark] = {}

    for entry in entries:
        if entry.action != SyncAction.PUSH:
            continue

        try:
            local = await asyncio.to_thread(store.read_artifact, entry.slug)
        except ARTIFACT_ERRORS as exc:
            _diagnose(result, entry.slug, exc)
            continue

        attempt = 0
        while True:
            try:
                await transport.write_artifact(entry.slug, local.raw)
            except ARTIFACT_ERRORS as exc:
                _diagnose(result, entry.slug, exc)
                break
            except PushRejectedError as exc:
                if attempt >= max_retries:
                    _diagnose(result, entry.slug, exc)
                    result.rejected.append(entry.slug)
                    break
                attempt += 1
                logger.info(
                    "Push of %s rejected, resyncing (retry %d/%d)",
                    entry.slug, attempt, max_retries,
                )
                await transport.disconnect()
                await transport.connect(remote)
                current = await _remote_version(transport, entry.slug)
                if current is not None and current >= local.version:
                    _diagnose(
                        result,
                        entry.slug,
                        PushRejectedError(
                            f"Remote advanced to v{current} while pushing v{local.version}",
                            slug=entry.slug,
                        ),
                    )
                    result.rejected.append(entry.slug)
                    break
                continue

            raw_hash = content_hash(local.raw)
            watermarks[entry.slug] = ArtifactWatermark(
                local_version_at_sync=local.version,
                remote_version_at_sync=local.version,
                local_hash_at_sync=raw_hash,
                remote_hash_at_sync=raw_hash,
            )
            result.pushed.append(entry.slug)
            break

    return watermarks
