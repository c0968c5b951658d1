"""
Reputation signal sync -- export batches and fold them into profiles.

Signals are never copied raw into a workspace. Import goes through
``import_signals``, which dedupes on (source, dimension, domain, timestamp),
appends to the profile's signal log, and folds each new signal into
the matching dimension via decay + EWMA.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..models import (
    ExportedSignal,
    ExportedSignalBatch,
    ReputationDimension,
    ReputationSignal,
    utcnow,
)
from ..reputation import DECAY_RATE, EWMA_ALPHA, update_dimension
from ..store import LocalStore

logger = logging.getLogger("awpsync.sync.signals")

DOMAIN_COMPETENCE = "domain-competence"


def _signal_from_frontmatter(raw: Any) -> Optional[ReputationSignal]:
    if not isinstance(raw, dict):
        return None
    try:
        return ReputationSignal(**raw)
    except (ValidationError, TypeError) as exc:
        logger.warning("Skipping malformed signal %r: %s", raw, exc)
        return None


def _signal_to_frontmatter(signal: ReputationSignal) -> dict[str, Any]:
    return signal.model_dump(mode="json", exclude_none=True)


def _sort_key(exported: ExportedSignal) -> tuple[datetime, str, str]:
    return (exported.signal.timestamp, exported.signal.source, exported.signal.dimension)


def export_signals(store: LocalStore, since: datetime) -> ExportedSignalBatch:
    """Collect every signal in the workspace newer than ``since``.

    Args:
        store: Workspace to read profiles from.
        since: Exclusive lower bound on signal timestamps.

    Returns:
        Batch ordered by (timestamp, source, dimension).
    """
    info = store.workspace_info()
    signals: list[ExportedSignal] = []

    for _path, data, _body in store.iter_profiles():
        subject_did = data.get("agentDid")
        if not subject_did:
            continue
        subject_name = data.get("agentName") or "unknown"
        for raw in data.get("signals") or []:
            signal = _signal_from_frontmatter(raw)
            if signal is None or signal.timestamp <= since:
                continue
            signals.append(
                ExportedSignal(
                    subject_did=subject_did, subject_name=subject_name, signal=signal
                )
            )

    signals.sort(key=_sort_key)
    return ExportedSignalBatch(
        source_workspace=info.workspace_name,
        source_agent_did=info.agent_did or "unknown",
        exported_at=utcnow(),
        signals=signals,
    )


def _profile_slug(did: str) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", did.lower())
    return re.sub(r"-+", "-", slug).strip("-") or "agent"


def _fold(
    data: dict[str, Any],
    signal: ReputationSignal,
    alpha: float,
    decay_rate: float,
) -> None:
    """Fold one signal into the profile's dimension tables in place."""
    if signal.dimension == DOMAIN_COMPETENCE:
        if not signal.domain:
            return
        field, key = "domainCompetence", signal.domain
    else:
        field, key = "dimensions", signal.dimension

    table = dict(data.get(field) or {})
    existing = None
    if key in table:
        try:
            existing = ReputationDimension(**table[key])
        except (ValidationError, TypeError) as exc:
            logger.warning("Resetting malformed dimension %s: %s", key, exc)

    updated = update_dimension(
        existing, signal.score, now=signal.timestamp, alpha=alpha, decay_rate=decay_rate
    )
    table[key] = updated.model_dump(mode="json", by_alias=True)
    data[field] = table


def _merge_into_profile(
    data: dict[str, Any],
    signals: list[ExportedSignal],
    alpha: float,
    decay_rate: float,
) -> int:
    log = list(data.get("signals") or [])
    seen = set()
    for raw in log:
        parsed = _signal_from_frontmatter(raw)
        if parsed is not None:
            seen.add(parsed.dedupe_key)

    imported = 0
    for exported in sorted(signals, key=_sort_key):
        signal = exported.signal
        if signal.dedupe_key in seen:
            continue
        seen.add(signal.dedupe_key)
        log.append(_signal_to_frontmatter(signal))
        _fold(data, signal, alpha, decay_rate)
        imported += 1

    data["signals"] = log
    return imported


def import_signals(
    store: LocalStore,
    batch: ExportedSignalBatch,
    alpha: float = EWMA_ALPHA,
    decay_rate: float = DECAY_RATE,
) -> int:
    """Fold a signal batch into the workspace's reputation profiles.

    Args:
        store: Receiving workspace.
        batch: Signals to import.
        alpha: EWMA learning rate.
        decay_rate: Monthly decay rate.

    Returns:
        Number of signals newly recorded (duplicates excluded).
    """
    by_subject: dict[str, list[ExportedSignal]] = {}
    names: dict[str, str] = {}
    for exported in batch.signals:
        by_subject.setdefault(exported.subject_did, []).append(exported)
        names.setdefault(exported.subject_did, exported.subject_name)

    if not by_subject:
        return 0

    profiles: dict[str, tuple[Path, dict[str, Any], str]] = {}
    for path, data, body in store.iter_profiles():
        did = data.get("agentDid")
        if did and did not in profiles:
            profiles[did] = (path, data, body)

    total = 0
    for did, signals in by_subject.items():
        if did in profiles:
            path, data, body = profiles[did]
        else:
            path = store.reputation_dir / f"{_profile_slug(did)}.md"
            data = {
                "type": "reputation-profile",
                "id": f"reputation:{_profile_slug(did)}",
                "agentDid": did,
                "agentName": names[did],
                "lastUpdated": utcnow().isoformat(),
                "dimensions": {},
                "signals": [],
            }
            body = f"\n# Reputation Profile: {names[did]}\n\nSynced reputation profile.\n"

        imported = _merge_into_profile(data, signals, alpha, decay_rate)
        if imported == 0:
            continue

        data["lastUpdated"] = utcnow().isoformat()
        store.write_profile(path, data, body)
        logger.info("Imported %d signal(s) for %s", imported, did)
        total += imported

    return total
