"""
Sync Engine -- orchestrates one replication pass against a remote.

Reads the remote registry, builds a fresh transport, diffs manifests,
and drives the pull/push halves and the signal import:

    awp-sync run team    ->  connect -> diff -> pull -> push -> signals -> disconnect
    awp-sync pull team   ->  connect -> diff -> pull -> signals -> disconnect
    awp-sync push team   ->  connect -> diff -> push -> disconnect

The transport is always disconnected, whatever happened in between.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Optional

from .. import AWP_WORKSPACE
from ..audit import audit_event
from ..errors import SyncInProgressError
from ..models import (
    SyncAction,
    SyncConfig,
    SyncDiffEntry,
    SyncOptions,
    SyncResult,
    SyncState,
)
from ..store import LocalStore
from .artifacts import pull_artifacts, push_artifacts
from .config import get_remote, load_config, touch_remote
from .conflicts import list_conflicts
from .signals import export_signals, import_signals
from .state import BOTH, PULL, PUSH, compute_artifact_diff, load_state, save_state
from .transports import SyncTransport, create_transport, transport_session

logger = logging.getLogger("awpsync.sync.engine")

# Where each planned action lands in a dry-run result.
_PLAN_FIELDS = {
    SyncAction.IMPORT: "imported",
    SyncAction.FAST_FORWARD: "updated",
    SyncAction.PUSH: "pushed",
    SyncAction.RESOLVE: "resolved",
    SyncAction.CONFLICT: "conflicts",
    SyncAction.SKIP: "skipped",
}


class SyncEngine:
    """Orchestrates artifact and signal replication for one workspace.

    One pass per remote at a time; a second concurrent pass against the
    same remote fails fast instead of queueing.
    """

    def __init__(self, workspace: Optional[Path] = None):
        """Initialize the sync engine.

        Args:
            workspace: Local workspace root. Defaults to $AWP_WORKSPACE.
        """
        self.workspace = Path(workspace or AWP_WORKSPACE).expanduser()
        self.store = LocalStore(self.workspace)
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def config(self) -> SyncConfig:
        return load_config(self.workspace)

    @asynccontextmanager
    async def _exclusive(self, remote_name: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(remote_name, asyncio.Lock())
        if lock.locked():
            raise SyncInProgressError(f'A sync with "{remote_name}" is already running')
        async with lock:
            yield

    async def _plan(
        self,
        transport: SyncTransport,
        state: SyncState,
        config: SyncConfig,
        options: SyncOptions,
        direction: str,
    ) -> list[SyncDiffEntry]:
        artifact_filter = options.build_filter()
        local = await asyncio.to_thread(self.store.list_manifests, artifact_filter)
        remote = await transport.list_artifacts(artifact_filter)
        return compute_artifact_diff(
            local,
            remote,
            state,
            tie_break=options.tie_break or config.tie_break,
            direction=direction,
        )

    async def diff(
        self, remote_name: str, options: Optional[SyncOptions] = None
    ) -> list[SyncDiffEntry]:
        """Compute what a full pass would do, without writing anything.

        Raises:
            ConfigError: If the remote is unknown or misconfigured.
            TransportUnreachableError, CloneFailureError: If the remote
                cannot be reached.
        """
        options = options or SyncOptions()
        async with self._exclusive(remote_name):
            config = self.config
            remote = get_remote(self.workspace, remote_name)
            state = load_state(self.workspace, remote_name)
            transport = create_transport(remote, config)
            async with transport_session(transport, remote):
                return await self._plan(transport, state, config, options, BOTH)

    async def sync(
        self, remote_name: str, options: Optional[SyncOptions] = None
    ) -> SyncResult:
        """Run one full pass: pull half, push half, then signal import."""
        return await self._run(remote_name, options or SyncOptions(), BOTH)

    async def pull(
        self, remote_name: str, options: Optional[SyncOptions] = None
    ) -> SyncResult:
        """Bring newer remote artifacts and signals into this workspace."""
        return await self._run(remote_name, options or SyncOptions(), PULL)

    async def push(
        self, remote_name: str, options: Optional[SyncOptions] = None
    ) -> SyncResult:
        """Send newer local artifacts to the remote."""
        return await self._run(remote_name, options or SyncOptions(), PUSH)

    async def _run(self, remote_name: str, options: SyncOptions, direction: str) -> SyncResult:
        result = SyncResult(remote=remote_name, direction=direction, dry_run=options.dry_run)

        async with self._exclusive(remote_name):
            config = self.config
            remote = get_remote(self.workspace, remote_name)
            state = load_state(self.workspace, remote_name)
            transport = create_transport(remote, config)

            try:
                async with transport_session(transport, remote):
                    entries = await self._plan(transport, state, config, options, direction)
                    if options.dry_run:
                        for entry in entries:
                            getattr(result, _PLAN_FIELDS[entry.action]).append(entry.slug)
                        if config.sync_signals and direction != PUSH:
                            batch = await transport.read_signals_since(
                                state.signals.last_synced_timestamp
                            )
                            result.signals_synced = len(batch.signals)
                        return result

                    result.skipped = [e.slug for e in entries if e.action == SyncAction.SKIP]

                    if direction in (PULL, BOTH):
                        state.artifacts.update(
                            await pull_artifacts(
                                self.store,
                                transport,
                                entries,
                                remote_name,
                                result,
                                max_concurrent=config.max_concurrent_reads,
                                tie_break=options.tie_break or config.tie_break,
                            )
                        )
                    if direction in (PUSH, BOTH):
                        state.artifacts.update(
                            await push_artifacts(
                                self.store,
                                transport,
                                entries,
                                remote,
                                result,
                                max_retries=config.max_push_retries,
                            )
                        )
                    if config.sync_signals and direction in (PULL, BOTH):
                        result.signals_synced = await self._fold_remote_signals(
                            transport, state, config, state.signals.last_synced_timestamp
                        )
                    state.last_sync = result.timestamp
            finally:
                if not options.dry_run:
                    save_state(self.workspace, state)

            touch_remote(self.workspace, remote_name)

        self._audit(direction, remote_name, result)
        logger.info(
            "Sync %s with %s: %d imported, %d updated, %d pushed, %d resolved, "
            "%d conflicts, %d rejected, %d signals",
            direction, remote_name, len(result.imported), len(result.updated),
            len(result.pushed), len(result.resolved), len(result.conflicts),
            len(result.rejected), result.signals_synced,
        )
        return result

    async def _fold_remote_signals(
        self,
        transport: SyncTransport,
        state: SyncState,
        config: SyncConfig,
        since: datetime,
    ) -> int:
        """Import remote signals newer than ``since`` and advance the cursor.

        The cursor only moves once the whole batch has been folded in.
        """
        batch = await transport.read_signals_since(since)
        newest = batch.max_timestamp
        if newest is None:
            return 0

        imported = await asyncio.to_thread(
            import_signals, self.store, batch, config.ewma_alpha, config.decay_rate
        )
        state.signals.last_synced_timestamp = max(newest, state.signals.last_synced_timestamp)
        state.signals.signal_count += imported
        return imported

    async def pull_signals(self, remote_name: str, since: Optional[datetime] = None) -> int:
        """Import remote reputation signals.

        Args:
            remote_name: Configured remote.
            since: Explicit cursor. Defaults to the stored pull cursor.

        Returns:
            Number of signals newly recorded locally.
        """
        async with self._exclusive(remote_name):
            config = self.config
            remote = get_remote(self.workspace, remote_name)
            state = load_state(self.workspace, remote_name)
            transport = create_transport(remote, config)

            async with transport_session(transport, remote):
                imported = await self._fold_remote_signals(
                    transport, state, config,
                    since if since is not None else state.signals.last_synced_timestamp,
                )
            save_state(self.workspace, state)

        audit_event(
            self.workspace, "SIGNALS_PULL", f"Imported {imported} signals",
            remote=remote_name,
        )
        return imported

    async def push_signals(self, remote_name: str) -> int:
        """Export local signals newer than the push cursor to the remote.

        Raises:
            UnsupportedOperationError: For git remotes, which only take
                signals through their own import path.
        """
        async with self._exclusive(remote_name):
            config = self.config
            remote = get_remote(self.workspace, remote_name)
            state = load_state(self.workspace, remote_name)
            transport = create_transport(remote, config)

            batch = await asyncio.to_thread(
                export_signals, self.store, state.signals.last_pushed_timestamp
            )
            async with transport_session(transport, remote):
                written = await transport.write_signals(batch)

            newest = batch.max_timestamp
            if newest is not None:
                state.signals.last_pushed_timestamp = newest
                save_state(self.workspace, state)

        audit_event(
            self.workspace, "SIGNALS_PUSH",
            f"Pushed {len(batch.signals)} signals ({written} recorded)",
            remote=remote_name,
        )
        return written

    def status(self) -> dict:
        """Get current sync status.

        Returns:
            Dict with workspace, per-remote state, and pending conflicts.
        """
        config = self.config
        remotes = {}
        for name, remote in config.remotes.items():
            state = load_state(self.workspace, name)
            remotes[name] = {
                "transport": remote.transport.value,
                "url": remote.url,
                "branch": remote.branch,
                "last_sync": remote.last_sync.isoformat() if remote.last_sync else None,
                "tracked_artifacts": len(state.artifacts),
                "signal_cursor": state.signals.last_synced_timestamp.isoformat(),
                "signals_imported": state.signals.signal_count,
            }

        return {
            "workspace": str(self.workspace),
            "workspace_name": self.store.workspace_info().workspace_name,
            "tie_break": config.tie_break.value,
            "sync_signals": config.sync_signals,
            "remotes": remotes,
            "conflicts": len(list_conflicts(self.workspace)),
        }

    def _audit(self, direction: str, remote_name: str, result: SyncResult) -> None:
        event_type = {PULL: "SYNC_PULL", PUSH: "SYNC_PUSH"}.get(direction, "SYNC_PASS")
        audit_event(
            self.workspace,
            event_type,
            f"{direction} with {remote_name}: "
            f"{len(result.imported) + len(result.updated) + len(result.resolved)} in, "
            f"{len(result.pushed)} out, {len(result.conflicts)} conflicts",
            remote=remote_name,
            metadata={
                "signals": result.signals_synced,
                "rejected": result.rejected,
                "diagnostics": len(result.diagnostics),
            },
        )

