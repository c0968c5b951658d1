"""
Sync transports -- how a remote workspace is reached.

Every transport exposes the same contract. The engine never touches
a filesystem or a git binary directly.

Local: Plain directory on this machine (USB drive, NAS, sibling workspace).
Git: Throwaway shallow clone. Reads go to the clone; writes are
    committed and pushed back. The clone lives exactly as long as
    one connect/disconnect pair.
HTTP: Reserved. Rejected by the factory.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Mapping, Optional, Union

from pydantic import ValidationError

from ..errors import (
    CloneFailureError,
    ConfigError,
    PushRejectedError,
    TransportStateError,
    TransportUnreachableError,
    UnsupportedOperationError,
)
from ..models import (
    Artifact,
    ArtifactFilter,
    ExportedSignalBatch,
    RemoteArtifactManifest,
    RemoteWorkspaceInfo,
    SyncConfig,
    SyncRemote,
    TransportKind,
)
from ..reputation import DECAY_RATE, EWMA_ALPHA
from ..store import ARTIFACTS_DIR, LocalStore
from .signals import export_signals, import_signals

logger = logging.getLogger("awpsync.sync.transports")

COMMIT_IDENTITY = ("awp-sync", "awp-sync@localhost")


class SyncTransport(ABC):
    """Abstract replication medium."""

    @abstractmethod
    async def connect(self, remote: SyncRemote) -> RemoteWorkspaceInfo:
        """Establish access to the remote workspace.

        Raises:
            TransportUnreachableError: If the remote cannot be reached.
            CloneFailureError: If a clone-based transport cannot clone.
        """

    @abstractmethod
    async def list_artifacts(
        self, artifact_filter: Optional[ArtifactFilter] = None
    ) -> list[RemoteArtifactManifest]:
        """Describe remote artifacts without transferring bodies."""

    @abstractmethod
    async def read_artifact(self, slug: str) -> Artifact:
        """Read one artifact.

        Raises:
            ArtifactNotFoundError: If no file exists for ``slug``.
            ArtifactParseError: If the body has no valid frontmatter.
        """

    @abstractmethod
    async def write_artifact(self, slug: str, content: str) -> None:
        """Write one serialized artifact to the remote."""

    @abstractmethod
    async def read_signals_since(self, since: datetime) -> ExportedSignalBatch:
        """Return every remote signal strictly newer than ``since``."""

    @abstractmethod
    async def write_signals(self, batch: ExportedSignalBatch) -> int:
        """Hand a signal batch to the remote. Returns signals recorded."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Release all resources. Idempotent."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable transport name."""


class LocalTransport(SyncTransport):
    """Direct filesystem access to a workspace directory."""

    def __init__(self, alpha: float = EWMA_ALPHA, decay_rate: float = DECAY_RATE):
        self.alpha = alpha
        self.decay_rate = decay_rate
        self._store: Optional[LocalStore] = None

    @property
    def name(self) -> str:
        return "local-fs"

    @property
    def store(self) -> LocalStore:
        if self._store is None:
            raise TransportStateError("Local transport used before connect()")
        return self._store

    async def connect(self, remote: SyncRemote) -> RemoteWorkspaceInfo:
        store = LocalStore(Path(remote.url))
        if not store.exists():
            raise TransportUnreachableError(f"Remote path does not exist: {remote.url}")
        self._store = store
        info = await asyncio.to_thread(store.workspace_info)
        logger.debug("Connected to local workspace %s", store.root)
        return info

    async def list_artifacts(
        self, artifact_filter: Optional[ArtifactFilter] = None
    ) -> list[RemoteArtifactManifest]:
        return await asyncio.to_thread(self.store.list_manifests, artifact_filter)

    async def read_artifact(self, slug: str) -> Artifact:
        return await asyncio.to_thread(self.store.read_artifact, slug)

    async def write_artifact(self, slug: str, content: str) -> None:
        await asyncio.to_thread(self.store.write_artifact, slug, content)

    async def read_signals_since(self, since: datetime) -> ExportedSignalBatch:
        return await asyncio.to_thread(export_signals, self.store, since)

    async def write_signals(self, batch: ExportedSignalBatch) -> int:
        return await asyncio.to_thread(
            import_signals, self.store, batch, self.alpha, self.decay_rate
        )

    async def disconnect(self) -> None:
        self._store = None


class GitState(str, Enum):
    DISCONNECTED = "disconnected"
    CLONING = "cloning"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class GitRemoteTransport(SyncTransport):
    """Git-hosted workspace accessed through a temporary shallow clone.

    Owns a LocalTransport pointed at the clone and delegates every
    read to it. Writes additionally stage the one changed path,
    commit, and push. A rejected push is reported, never retried here.
    """

    def __init__(self) -> None:
        self._local = LocalTransport()
        self._state = GitState.DISCONNECTED
        self._clone_dir: Optional[Path] = None
        self._url = ""
        self._branch = "main"
        self._write_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "git-remote"

    @property
    def state(self) -> GitState:
        return self._state

    @property
    def clone_dir(self) -> Optional[Path]:
        return self._clone_dir

    def _require_connected(self) -> None:
        if self._state != GitState.CONNECTED:
            raise TransportStateError(
                f"Git transport is {self._state.value}; call connect() first"
            )

    async def _git(self, *args: str, cwd: Optional[Path] = None) -> tuple[int, str, str]:
        """Run a git command. Returns (returncode, stdout, stderr)."""
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"

        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=env,
        )
        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise
        return (
            proc.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def connect(self, remote: SyncRemote) -> RemoteWorkspaceInfo:
        if self._state != GitState.DISCONNECTED:
            raise TransportStateError(
                f"connect() called while {self._state.value}; disconnect first"
            )

        self._state = GitState.CLONING
        self._url = remote.url
        self._branch = remote.branch or "main"
        self._clone_dir = Path(tempfile.mkdtemp(prefix="awp-sync-"))

        try:
            try:
                code, _, stderr = await self._git(
                    "clone", "--depth", "1", "--single-branch",
                    "--branch", self._branch,
                    "--", self._url, str(self._clone_dir),
                )
            except OSError as exc:
                raise CloneFailureError(f"Could not run git: {exc}") from exc
            if code != 0:
                raise CloneFailureError(
                    f"Clone of {self._url}@{self._branch} failed: {stderr.strip()}"
                )

            info = await self._local.connect(
                SyncRemote(transport=TransportKind.LOCAL_FS, url=str(self._clone_dir))
            )
        except BaseException:
            await self._release()
            raise

        self._state = GitState.CONNECTED
        logger.info("Cloned %s@%s into %s", self._url, self._branch, self._clone_dir)
        return info

    async def list_artifacts(
        self, artifact_filter: Optional[ArtifactFilter] = None
    ) -> list[RemoteArtifactManifest]:
        self._require_connected()
        return await self._local.list_artifacts(artifact_filter)

    async def read_artifact(self, slug: str) -> Artifact:
        self._require_connected()
        return await self._local.read_artifact(slug)

    async def _commit_identity(self) -> list[str]:
        code, stdout, _ = await self._git("config", "user.email", cwd=self._clone_dir)
        if code == 0 and stdout.strip():
            return []
        name, email = COMMIT_IDENTITY
        return ["-c", f"user.name={name}", "-c", f"user.email={email}"]

    async def write_artifact(self, slug: str, content: str) -> None:
        """Write into the clone, then stage, commit, and push.

        Raises:
            PushRejectedError: If the commit or push fails. The commit
                may already exist in the clone; the caller decides
                whether to resync and retry.
        """
        self._require_connected()
        async with self._write_lock:
            await self._local.write_artifact(slug, content)
            rel_path = f"{ARTIFACTS_DIR}/{slug}.md"
            cwd = self._clone_dir

            try:
                code, _, stderr = await self._git("add", "--", rel_path, cwd=cwd)
                if code != 0:
                    raise PushRejectedError(f"git add failed: {stderr.strip()}", slug=slug)

                code, stdout, _ = await self._git(
                    "status", "--porcelain", "--", rel_path, cwd=cwd
                )
                if code == 0 and not stdout.strip():
                    logger.info("Artifact %s unchanged in %s, nothing to push", slug, self._url)
                    return

                identity = await self._commit_identity()
                code, _, stderr = await self._git(
                    *identity, "commit", "-m", f"sync: update artifact {slug}",
                    "--", rel_path, cwd=cwd,
                )
                if code != 0:
                    logger.error("git commit failed for %s: %s", slug, stderr.strip())
                    raise PushRejectedError(f"git commit failed: {stderr.strip()}", slug=slug)

                code, _, stderr = await self._git(
                    "push", "origin", f"HEAD:{self._branch}", cwd=cwd
                )
            except OSError as exc:
                raise TransportUnreachableError(f"Could not run git: {exc}") from exc

            if code != 0:
                logger.error("git push of %s rejected: %s", slug, stderr.strip())
                raise PushRejectedError(
                    f"Push to {self._url}@{self._branch} rejected: {stderr.strip()}",
                    slug=slug,
                )

        logger.info("Pushed artifact %s to %s@%s", slug, self._url, self._branch)

    async def read_signals_since(self, since: datetime) -> ExportedSignalBatch:
        self._require_connected()
        return await self._local.read_signals_since(since)

    async def write_signals(self, batch: ExportedSignalBatch) -> int:
        raise UnsupportedOperationError(
            "write_signals is unsupported on git remotes; import their signals "
            "with awpsync.sync.signals.import_signals (SyncEngine.pull_signals)"
        )

    async def _release(self) -> None:
        clone_dir = self._clone_dir
        try:
            await self._local.disconnect()
            if clone_dir is not None:
                await asyncio.to_thread(shutil.rmtree, clone_dir, ignore_errors=True)
        finally:
            self._clone_dir = None
            self._url = ""
            self._branch = "main"
            self._state = GitState.DISCONNECTED

    async def disconnect(self) -> None:
        if self._state == GitState.DISCONNECTED and self._clone_dir is None:
            return
        self._state = GitState.DISCONNECTING
        clone_dir = self._clone_dir
        await self._release()
        logger.debug("Removed clone %s", clone_dir)


RemoteDescriptor = Union[SyncRemote, Mapping[str, Any]]


def coerce_remote(remote: RemoteDescriptor) -> SyncRemote:
    """Validate a remote descriptor.

    Raises:
        ConfigError: If the descriptor is malformed or names an
            unknown transport kind.
    """
    if isinstance(remote, SyncRemote):
        return remote
    try:
        return SyncRemote.model_validate(dict(remote))
    except ValidationError as exc:
        kind = dict(remote).get("transport")
        raise ConfigError(f"Invalid remote (transport={kind!r}): {exc}") from exc


def create_transport(
    remote: RemoteDescriptor, config: Optional[SyncConfig] = None
) -> SyncTransport:
    """Factory function to create the transport for a remote.

    Args:
        remote: Remote descriptor (model or plain mapping).
        config: Sync config supplying reputation parameters.

    Returns:
        A fresh, disconnected SyncTransport.

    Raises:
        ConfigError: If the transport kind is unknown or not implemented.
    """
    remote = coerce_remote(remote)
    if remote.transport == TransportKind.HTTP:
        raise ConfigError("HTTP transport is not yet implemented")

    if remote.transport == TransportKind.LOCAL_FS:
        if config is None:
            return LocalTransport()
        return LocalTransport(alpha=config.ewma_alpha, decay_rate=config.decay_rate)
    if remote.transport == TransportKind.GIT_REMOTE:
        return GitRemoteTransport()
    raise ConfigError(f"Unknown transport type: {remote.transport}")


@asynccontextmanager
async def transport_session(
    transport: SyncTransport, remote: SyncRemote
) -> AsyncIterator[RemoteWorkspaceInfo]:
    """Connect, yield, and always disconnect.

    If the body fails and disconnect fails too, the disconnect error
    is logged and the first error propagates.
    """
    try:
        info = await transport.connect(remote)
        yield info
    except BaseException:
        try:
            await transport.disconnect()
        except Exception as exc:
            logger.error("Disconnect from %s failed during error cleanup: %s", remote.url, exc)
        raise
    else:
        await transport.disconnect()
