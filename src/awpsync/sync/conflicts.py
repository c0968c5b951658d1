"""
Conflict stash -- remote copies parked for manual resolution.

    .awp/sync/conflicts/<slug>.remote.md       the remote's version
    .awp/sync/conflicts/<slug>.conflict.json   descriptor
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ..errors import ArtifactNotFoundError, ConfigError
from ..models import ConflictDescriptor
from ..store import ARTIFACTS_DIR, SYNC_DIR, LocalStore

logger = logging.getLogger("awpsync.sync.conflicts")

CONFLICTS_DIR = SYNC_DIR / "conflicts"
RESOLVE_MODES = ("local", "remote", "merged")


def stash_conflict(
    workspace: Path,
    slug: str,
    remote_name: str,
    local_version: int,
    remote_version: int,
    remote_raw: str,
    strategy: str,
    reason: str,
) -> ConflictDescriptor:
    """Park a remote artifact copy and write its descriptor."""
    conflicts_dir = Path(workspace) / CONFLICTS_DIR
    conflicts_dir.mkdir(parents=True, exist_ok=True)

    remote_copy = conflicts_dir / f"{slug}.remote.md"
    remote_copy.write_bytes(remote_raw.encode("utf-8"))

    descriptor = ConflictDescriptor(
        artifact=slug,
        remote=remote_name,
        local_version=local_version,
        remote_version=remote_version,
        strategy=strategy,
        reason=reason,
        local_path=f"{ARTIFACTS_DIR}/{slug}.md",
        remote_copy_path=str(CONFLICTS_DIR / f"{slug}.remote.md"),
    )
    (conflicts_dir / f"{slug}.conflict.json").write_text(
        descriptor.model_dump_json(indent=2), encoding="utf-8"
    )
    logger.warning("Conflict on %s with %s stashed: %s", slug, remote_name, reason)
    return descriptor


def list_conflicts(workspace: Path) -> list[ConflictDescriptor]:
    conflicts_dir = Path(workspace) / CONFLICTS_DIR
    if not conflicts_dir.is_dir():
        return []

    conflicts = []
    for path in sorted(conflicts_dir.glob("*.conflict.json")):
        try:
            conflicts.append(ConflictDescriptor(**json.loads(path.read_text(encoding="utf-8"))))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Skipping unreadable conflict %s: %s", path.name, exc)
    return conflicts


def resolve_conflict(workspace: Path, slug: str, mode: str) -> None:
    """Resolve a stashed conflict.

    Args:
        workspace: Local workspace root.
        slug: Artifact slug.
        mode: ``remote`` overwrites local with the stashed copy;
            ``local`` and ``merged`` keep the local file as it is.

    Raises:
        ConfigError: If the mode is unknown.
        ArtifactNotFoundError: If no conflict is stashed for ``slug``.
        VersionRegressionError: If ``remote`` would lower the version.
    """
    if mode not in RESOLVE_MODES:
        raise ConfigError(f"Unknown resolve mode {mode!r}; use one of {RESOLVE_MODES}")

    conflicts_dir = Path(workspace) / CONFLICTS_DIR
    descriptor_path = conflicts_dir / f"{slug}.conflict.json"
    remote_copy = conflicts_dir / f"{slug}.remote.md"
    if not descriptor_path.exists():
        raise ArtifactNotFoundError(f'No conflict found for artifact "{slug}"', slug=slug)

    if mode == "remote":
        LocalStore(Path(workspace)).write_artifact(
            slug, remote_copy.read_bytes().decode("utf-8")
        )

    descriptor_path.unlink(missing_ok=True)
    remote_copy.unlink(missing_ok=True)
    logger.info("Resolved conflict on %s (%s)", slug, mode)
