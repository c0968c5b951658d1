"""
Local store -- the on-disk workspace layout.

    <root>/.awp/workspace.json     workspace manifest (name, agent DID)
    <root>/artifacts/<slug>.md     knowledge artifacts
    <root>/reputation/<slug>.md    reputation profiles (signal logs)

Every transport ends up here: the local transport wraps a store on
the remote path, the git transport wraps one on its clone. No
caching -- every call reflects the directory as it is right now.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import uuid
from pathlib import Path
from typing import Any, Iterator, Optional

from pydantic import ValidationError

from .errors import (
    ArtifactNotFoundError,
    ArtifactParseError,
    VersionRegressionError,
)
from .frontmatter import join_frontmatter, split_frontmatter
from .models import (
    Artifact,
    ArtifactFilter,
    RemoteArtifactManifest,
    RemoteWorkspaceInfo,
    frontmatter_version,
    parse_timestamp,
)

logger = logging.getLogger("awpsync.store")

MANIFEST_PATH = Path(".awp") / "workspace.json"
SYNC_DIR = Path(".awp") / "sync"
ARTIFACTS_DIR = "artifacts"
REPUTATION_DIR = "reputation"

_SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def content_hash(raw: str) -> str:
    """SHA-256 hex digest of a serialized artifact."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
    tmp_path.write_bytes(text.encode("utf-8"))
    tmp_path.replace(path)


class LocalStore:
    """Reads and writes one workspace directory tree."""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self.artifacts_dir = self.root / ARTIFACTS_DIR
        self.reputation_dir = self.root / REPUTATION_DIR
        self.sync_dir = self.root / SYNC_DIR

    def exists(self) -> bool:
        return self.root.is_dir()

    def load_manifest(self) -> dict[str, Any]:
        """Read .awp/workspace.json, or an empty dict if absent/corrupt."""
        path = self.root / MANIFEST_PATH
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Unreadable workspace manifest %s: %s", path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def workspace_info(self) -> RemoteWorkspaceInfo:
        manifest = self.load_manifest()
        agent = manifest.get("agent") or {}
        return RemoteWorkspaceInfo(
            root=self.root,
            workspace_name=manifest.get("name") or self.root.name or "unknown",
            agent_did=agent.get("did") if isinstance(agent, dict) else None,
            awp_version=str(manifest.get("awp") or "unknown"),
        )

    @property
    def agent_did(self) -> str:
        return self.workspace_info().agent_did or "unknown"

    # -----------------------------------------------------------------
    # Artifacts
    # -----------------------------------------------------------------

    def artifact_path(self, slug: str) -> Path:
        if not _SLUG_RE.match(slug):
            raise ArtifactNotFoundError(f"Invalid artifact slug: {slug!r}", slug=slug)
        return self.artifacts_dir / f"{slug}.md"

    def list_manifests(
        self, artifact_filter: Optional[ArtifactFilter] = None
    ) -> list[RemoteArtifactManifest]:
        """Describe every parseable artifact, optionally filtered.

        Unparseable files are logged and skipped.
        """
        if not self.artifacts_dir.is_dir():
            return []

        manifests = []
        for path in sorted(self.artifacts_dir.glob("*.md")):
            slug = path.stem
            if not _SLUG_RE.match(slug):
                logger.warning("Skipping artifact with invalid slug: %s", path.name)
                continue
            if artifact_filter and not artifact_filter.matches_slug(slug):
                continue
            try:
                raw = path.read_bytes().decode("utf-8")
                data, _ = split_frontmatter(raw)
            except (OSError, UnicodeDecodeError, ArtifactParseError) as exc:
                logger.warning("Skipping unreadable artifact %s: %s", path.name, exc)
                continue

            try:
                manifest = RemoteArtifactManifest(
                    slug=slug,
                    version=frontmatter_version(data),
                    updated=parse_timestamp(data.get("lastModified") or data.get("created")),
                    content_hash=content_hash(raw),
                    size=len(raw.encode("utf-8")),
                    tags=[str(t) for t in data.get("tags") or []],
                    authors=[str(a) for a in data.get("authors") or []],
                    confidence=data.get("confidence"),
                )
            except (ValueError, TypeError, ValidationError) as exc:
                logger.warning("Skipping artifact %s with bad frontmatter: %s", path.name, exc)
                continue
            if artifact_filter and not artifact_filter.matches(manifest):
                continue
            manifests.append(manifest)
        return manifests

    def read_artifact(self, slug: str) -> Artifact:
        path = self.artifact_path(slug)
        try:
            raw = path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            raise ArtifactNotFoundError(f"Artifact not found: {slug}", slug=slug)
        except UnicodeDecodeError as exc:
            raise ArtifactParseError(f"Artifact {slug} is not UTF-8: {exc}", slug=slug)

        try:
            frontmatter, content = split_frontmatter(raw)
        except ArtifactParseError as exc:
            raise ArtifactParseError(f"Artifact {slug}: {exc}", slug=slug) from exc
        try:
            frontmatter_version(frontmatter)
        except (ValueError, TypeError) as exc:
            raise ArtifactParseError(f"Artifact {slug}: bad version: {exc}", slug=slug) from exc
        return Artifact(frontmatter=frontmatter, content=content, raw=raw)

    def write_artifact(self, slug: str, raw: str) -> Path:
        """Write an artifact file verbatim.

        Raises:
            ArtifactParseError: If ``raw`` has no valid frontmatter.
            VersionRegressionError: If the stored version is higher
                than the incoming one.
        """
        path = self.artifact_path(slug)
        try:
            incoming, _ = split_frontmatter(raw)
        except ArtifactParseError as exc:
            raise ArtifactParseError(f"Refusing to write {slug}: {exc}", slug=slug) from exc

        try:
            new_version = frontmatter_version(incoming)
        except (ValueError, TypeError) as exc:
            raise ArtifactParseError(f"Refusing to write {slug}: bad version: {exc}", slug=slug) from exc
        current = self._stored_version(path)
        if current is not None and new_version < current:
            raise VersionRegressionError(
                f"Refusing to write {slug} v{new_version} over v{current}", slug=slug
            )

        _atomic_write(path, raw)
        logger.debug("Wrote artifact %s v%d to %s", slug, new_version, self.root)
        return path

    def _stored_version(self, path: Path) -> Optional[int]:
        if not path.exists():
            return None
        try:
            data, _ = split_frontmatter(path.read_bytes().decode("utf-8"))
        except (OSError, UnicodeDecodeError, ArtifactParseError):
            return None
        try:
            return frontmatter_version(data)
        except (ValueError, TypeError):
            return None

    # -----------------------------------------------------------------
    # Reputation profiles
    # -----------------------------------------------------------------

    def iter_profiles(self) -> Iterator[tuple[Path, dict[str, Any], str]]:
        """Yield (path, frontmatter, body) for each parseable profile."""
        if not self.reputation_dir.is_dir():
            return
        for path in sorted(self.reputation_dir.glob("*.md")):
            try:
                data, body = split_frontmatter(path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ArtifactParseError) as exc:
                logger.warning("Skipping unreadable profile %s: %s", path.name, exc)
                continue
            yield path, data, body

    def write_profile(self, path: Path, frontmatter: dict[str, Any], body: str) -> None:
        _atomic_write(path, join_frontmatter(frontmatter, body))
