"""Shared test fixtures for awpsync."""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from awpsync.frontmatter import join_frontmatter

CREATED = "2026-01-01T00:00:00+00:00"
GIT_IDENTITY = ["-c", "user.name=Test", "-c", "user.email=test@awp.local"]


def init_workspace(root: Path, name: str, did: str) -> Path:
    """Lay down a minimal AWP workspace."""
    (root / ".awp").mkdir(parents=True, exist_ok=True)
    (root / "artifacts").mkdir(exist_ok=True)
    (root / ".awp" / "workspace.json").write_text(
        json.dumps({"awp": "0.4.0", "name": name, "agent": {"did": did, "name": name}})
    )
    return root


def artifact_text(
    slug: str,
    version: int,
    body: str = "Body.\n",
    agent: str = "did:awp:alice",
    tags: Optional[list[str]] = None,
    provenance: Optional[list[dict[str, Any]]] = None,
) -> str:
    """Serialize a knowledge artifact."""
    frontmatter = {
        "awp": "0.4.0",
        "type": "knowledge-artifact",
        "id": f"artifact:{slug}",
        "title": slug.replace("-", " ").title(),
        "authors": [agent],
        "version": version,
        "confidence": 0.8,
        "tags": tags or [],
        "created": CREATED,
        "lastModified": CREATED,
        "provenance": provenance
        if provenance is not None
        else [{"agent": agent, "action": "created", "timestamp": CREATED}],
    }
    return join_frontmatter(frontmatter, f"\n# {slug}\n\n{body}")


def profile_text(did: str, name: str, signals: list[dict[str, Any]]) -> str:
    """Serialize a reputation profile carrying a raw signal log."""
    frontmatter = {
        "awp": "0.4.0",
        "type": "reputation-profile",
        "id": f"reputation:{name}",
        "agentDid": did,
        "agentName": name,
        "lastUpdated": CREATED,
        "dimensions": {},
        "signals": signals,
    }
    return join_frontmatter(frontmatter, f"\n# Reputation Profile: {name}\n")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """The local workspace under test."""
    return init_workspace(tmp_path / "local", "local-ws", "did:awp:alice")


@pytest.fixture
def remote_workspace(tmp_path: Path) -> Path:
    """A second workspace reachable as a local-fs remote."""
    return init_workspace(tmp_path / "remote", "remote-ws", "did:awp:bob")


@pytest.fixture
def write_artifact() -> Callable[..., str]:
    """Write an artifact file into a workspace; returns the raw text."""

    def _write(root: Path, slug: str, version: int, **kwargs: Any) -> str:
        raw = artifact_text(slug, version, **kwargs)
        (root / "artifacts" / f"{slug}.md").write_bytes(raw.encode("utf-8"))
        return raw

    return _write


@pytest.fixture
def write_profile() -> Callable[..., Path]:
    """Write a reputation profile into a workspace."""

    def _write(root: Path, slug: str, did: str, name: str, signals: list[dict[str, Any]]) -> Path:
        path = root / "reputation" / f"{slug}.md"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(profile_text(did, name, signals), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def local_remote(workspace: Path, remote_workspace: Path) -> str:
    """Register ``remote_workspace`` as remote "team"; returns the name."""
    from awpsync.sync.config import add_remote

    add_remote(workspace, "team", {"transport": "local-fs", "url": str(remote_workspace)})
    return "team"


def git(*args: str, cwd: Optional[Path] = None) -> str:
    result = subprocess.run(
        ["git", *GIT_IDENTITY, *args],
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def git_remote(tmp_path: Path) -> Path:
    """A bare git repository holding a seeded workspace on ``main``.

    Seeded with artifact ``plan`` at version 2.
    """
    if shutil.which("git") is None:
        pytest.skip("git not installed")

    bare = tmp_path / "remote.git"
    git("init", "--bare", "--initial-branch=main", str(bare))

    seed = init_workspace(tmp_path / "seed", "git-ws", "did:awp:carol")
    (seed / "artifacts" / "plan.md").write_text(artifact_text("plan", 2, agent="did:awp:carol"))
    git("init", "--initial-branch=main", cwd=seed)
    git("add", "-A", cwd=seed)
    git("commit", "-m", "seed workspace", cwd=seed)
    git("push", bare.as_uri(), "main", cwd=seed)
    return bare


@pytest.fixture
def run_git() -> Callable[..., str]:
    """Run a git command with a fixed test identity; returns stdout."""
    return git
