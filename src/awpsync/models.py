"""
Sync data models -- remotes, artifacts, signals, and per-remote state.

These are the shapes that cross the transport boundary. Artifact
frontmatter stays a plain mapping so unknown keys survive a round
trip untouched; everything the engine reasons about gets a model.
"""

from __future__ import annotations

import fnmatch
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Coerce a frontmatter timestamp into an aware UTC datetime.

    YAML hands back either a string or an already-parsed datetime
    depending on whether the value was quoted.

    Args:
        value: String, datetime, or None.

    Returns:
        Aware datetime, or None if the value is empty or unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _aware_timestamp(value: Any) -> Any:
    """Validator hook: naive timestamps are read as UTC.

    Unparseable values are passed through so pydantic reports them.
    """
    return parse_timestamp(value) or value


def frontmatter_version(frontmatter: dict[str, Any]) -> int:
    """The artifact ``version`` from a frontmatter mapping (1 if unset).

    Raises:
        ValueError: If the value is not an integer.
        TypeError: If the value is a list or mapping.
    """
    value = frontmatter.get("version")
    if isinstance(value, bool):
        raise ValueError(f"invalid version {value!r}")
    if not value:
        return 1
    return int(value)


# ---------------------------------------------------------------------------
# Remotes
# ---------------------------------------------------------------------------


class TransportKind(str, Enum):
    """Replication mediums a remote can declare."""

    LOCAL_FS = "local-fs"
    GIT_REMOTE = "git-remote"
    HTTP = "http"


class SyncRemote(BaseModel):
    """A configured remote workspace. Frozen once a pass starts."""

    model_config = ConfigDict(frozen=True)

    transport: TransportKind
    url: str
    branch: str = "main"
    workspace_name: Optional[str] = None
    agent_did: Optional[str] = None
    added: datetime = Field(default_factory=utcnow)
    last_sync: Optional[datetime] = None


class RemoteWorkspaceInfo(BaseModel):
    """Handshake result of ``connect``."""

    root: Path
    workspace_name: str = "unknown"
    agent_did: Optional[str] = None
    awp_version: str = "unknown"


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------


class ProvenanceAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    MERGED = "merged"
    SYNCED = "synced"


class ProvenanceEntry(BaseModel):
    """One immutable record in an artifact's provenance log."""

    model_config = ConfigDict(populate_by_name=True)

    agent: str
    action: ProvenanceAction
    timestamp: datetime = Field(default_factory=utcnow)
    message: Optional[str] = None
    confidence: Optional[float] = None
    sync_source: Optional[str] = Field(default=None, alias="syncSource")

    def to_frontmatter(self) -> dict[str, Any]:
        """Serialize with on-disk key names, dropping empty fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Artifact(BaseModel):
    """Full artifact payload at the transport boundary."""

    frontmatter: dict[str, Any] = Field(default_factory=dict)
    content: str = ""
    raw: str = ""

    @property
    def version(self) -> int:
        return frontmatter_version(self.frontmatter)

    @property
    def provenance(self) -> list[dict[str, Any]]:
        return list(self.frontmatter.get("provenance") or [])


class RemoteArtifactManifest(BaseModel):
    """Lightweight descriptor used to diff without moving bodies."""

    slug: str
    version: int = 1
    updated: Optional[datetime] = None
    content_hash: str
    size: int = 0
    tags: list[str] = Field(default_factory=list)
    authors: list[str] = Field(default_factory=list)
    confidence: Optional[float] = None


class ArtifactFilter(BaseModel):
    """Optional predicate narrowing ``list_artifacts``."""

    slug_pattern: Optional[str] = None
    slug_prefix: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    since: Optional[datetime] = None

    def matches_slug(self, slug: str) -> bool:
        if self.slug_prefix and not slug.startswith(self.slug_prefix):
            return False
        if self.slug_pattern and not fnmatch.fnmatchcase(slug, self.slug_pattern):
            return False
        return True

    def matches(self, manifest: RemoteArtifactManifest) -> bool:
        if not self.matches_slug(manifest.slug):
            return False
        if self.tags and not set(self.tags) & set(manifest.tags):
            return False
        if self.since is not None:
            if manifest.updated is None or manifest.updated <= self.since:
                return False
        return True


# ---------------------------------------------------------------------------
# Reputation signals
# ---------------------------------------------------------------------------


class ReputationSignal(BaseModel):
    """An atomic reputation observation. Immutable once emitted."""

    model_config = ConfigDict(frozen=True)

    source: str
    dimension: str
    domain: Optional[str] = None
    score: float = Field(ge=0.0, le=1.0)
    timestamp: datetime
    evidence: Optional[str] = None
    message: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def timestamp_as_utc(cls, value: Any) -> Any:
        return _aware_timestamp(value)

    @property
    def dedupe_key(self) -> tuple[str, str, Optional[str], datetime]:
        return (self.source, self.dimension, self.domain, self.timestamp)


class ExportedSignal(BaseModel):
    """A signal tagged with the agent it is about."""

    model_config = ConfigDict(frozen=True)

    subject_did: str
    subject_name: str = "unknown"
    signal: ReputationSignal


class ExportedSignalBatch(BaseModel):
    """Ordered batch of signals newer than some cursor."""

    source_workspace: str = "unknown"
    source_agent_did: str = "unknown"
    exported_at: datetime = Field(default_factory=utcnow)
    signals: list[ExportedSignal] = Field(default_factory=list)

    @property
    def max_timestamp(self) -> Optional[datetime]:
        if not self.signals:
            return None
        return max(s.signal.timestamp for s in self.signals)


class ReputationDimension(BaseModel):
    """Per-dimension reputation state."""

    model_config = ConfigDict(populate_by_name=True)

    score: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    sample_size: int = Field(default=0, ge=0, alias="sampleSize")
    last_signal: datetime = Field(alias="lastSignal")

    @field_validator("last_signal", mode="before")
    @classmethod
    def last_signal_as_utc(cls, value: Any) -> Any:
        return _aware_timestamp(value)


# ---------------------------------------------------------------------------
# Sync state and results
# ---------------------------------------------------------------------------


class TieBreakPolicy(str, Enum):
    """What to do when versions match but content hashes differ."""

    REMOTE_WINS = "remote-wins"
    LOCAL_WINS = "local-wins"
    CONFLICT = "conflict"


class SyncAction(str, Enum):
    IMPORT = "import"
    FAST_FORWARD = "fast-forward"
    PUSH = "push"
    RESOLVE = "resolve"
    CONFLICT = "conflict"
    SKIP = "skip"


class SyncDiffEntry(BaseModel):
    """Outcome of comparing one artifact between local and remote."""

    slug: str
    action: SyncAction
    local_version: Optional[int] = None
    remote_version: Optional[int] = None
    local_hash: Optional[str] = None
    remote_hash: Optional[str] = None
    reason: str = ""


class ArtifactWatermark(BaseModel):
    local_version_at_sync: int
    remote_version_at_sync: int
    local_hash_at_sync: Optional[str] = None
    remote_hash_at_sync: Optional[str] = None
    last_synced_at: datetime = Field(default_factory=utcnow)


class SignalWatermark(BaseModel):
    """Signal cursors. Pull and push advance independently."""

    last_synced_timestamp: datetime = EPOCH
    last_pushed_timestamp: datetime = EPOCH
    signal_count: int = 0


class SyncState(BaseModel):
    """Per-remote sync state persisted to disk."""

    version: int = 1
    remote: str
    last_sync: datetime = EPOCH
    artifacts: dict[str, ArtifactWatermark] = Field(default_factory=dict)
    signals: SignalWatermark = Field(default_factory=SignalWatermark)


class SyncOptions(BaseModel):
    """Knobs for a single pass."""

    slug_pattern: Optional[str] = None
    tag: Optional[str] = None
    dry_run: bool = False
    tie_break: Optional[TieBreakPolicy] = None

    def build_filter(self) -> Optional[ArtifactFilter]:
        if not self.slug_pattern and not self.tag:
            return None
        return ArtifactFilter(
            slug_pattern=self.slug_pattern,
            tags=[self.tag] if self.tag else [],
        )


class SyncDiagnostic(BaseModel):
    """A per-artifact failure that did not abort the pass."""

    slug: str
    code: str
    message: str


class SyncResult(BaseModel):
    """Summary of one sync pass."""

    remote: str
    direction: str = "both"
    timestamp: datetime = Field(default_factory=utcnow)
    dry_run: bool = False
    imported: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    pushed: list[str] = Field(default_factory=list)
    resolved: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list)
    signals_synced: int = 0
    diagnostics: list[SyncDiagnostic] = Field(default_factory=list)


class ConflictDescriptor(BaseModel):
    """A stashed remote copy awaiting manual resolution."""

    artifact: str
    remote: str
    local_version: int
    remote_version: int
    detected_at: datetime = Field(default_factory=utcnow)
    strategy: str
    reason: str
    local_path: str
    remote_copy_path: str


class SyncConfig(BaseModel):
    """Sync configuration for one workspace."""

    remotes: dict[str, SyncRemote] = Field(default_factory=dict)
    tie_break: TieBreakPolicy = TieBreakPolicy.REMOTE_WINS
    max_push_retries: int = Field(default=2, ge=0)
    max_concurrent_reads: int = Field(default=8, ge=1)
    ewma_alpha: float = Field(default=0.15, gt=0.0, le=1.0)
    decay_rate: float = Field(default=0.02, ge=0.0)
    sync_signals: bool = True
