"""
Sync configuration and the remote registry.

Stored as YAML at <workspace>/.awp/sync/config.yaml:

    remotes:
      team:
        transport: git-remote
        url: git@example.com:team/workspace.git
        branch: main
    tie_break: remote-wins
    max_push_retries: 2
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Mapping, Union

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from ..models import SyncConfig, SyncRemote, utcnow
from ..store import SYNC_DIR
from .transports import coerce_remote

logger = logging.getLogger("awpsync.sync.config")

CONFIG_FILENAME = "config.yaml"
_REMOTE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def config_path(workspace: Path) -> Path:
    return Path(workspace) / SYNC_DIR / CONFIG_FILENAME


def load_config(workspace: Path) -> SyncConfig:
    """Load sync configuration, or defaults if none exists yet.

    Raises:
        ConfigError: If the file exists but is not valid config.
    """
    path = config_path(workspace)
    if not path.exists():
        return SyncConfig()

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return SyncConfig(**data)
    except (yaml.YAMLError, ValidationError, TypeError) as exc:
        raise ConfigError(f"Invalid sync config {path}: {exc}") from exc


def save_config(workspace: Path, config: SyncConfig) -> Path:
    """Persist sync configuration to disk."""
    path = config_path(workspace)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False), encoding="utf-8")
    return path


def add_remote(
    workspace: Path, name: str, remote: Union[SyncRemote, Mapping[str, Any]]
) -> SyncRemote:
    """Register a remote workspace.

    Raises:
        ConfigError: If the name is invalid or already taken, or the
            descriptor is malformed.
    """
    if not _REMOTE_NAME_RE.match(name):
        raise ConfigError(f"Invalid remote name: {name!r}")

    config = load_config(workspace)
    if name in config.remotes:
        raise ConfigError(f'Remote "{name}" already exists. Remove it first.')

    entry = coerce_remote(remote).model_copy(update={"added": utcnow(), "last_sync": None})
    config.remotes[name] = entry
    save_config(workspace, config)
    logger.info("Added remote %s (%s %s)", name, entry.transport.value, entry.url)
    return entry


def remove_remote(workspace: Path, name: str) -> None:
    config = load_config(workspace)
    if name not in config.remotes:
        raise ConfigError(f'Remote "{name}" not found.')
    del config.remotes[name]
    save_config(workspace, config)
    logger.info("Removed remote %s", name)


def list_remotes(workspace: Path) -> dict[str, SyncRemote]:
    return dict(load_config(workspace).remotes)


def get_remote(workspace: Path, name: str) -> SyncRemote:
    remotes = list_remotes(workspace)
    if name not in remotes:
        raise ConfigError(f'Remote "{name}" not found.')
    return remotes[name]


def touch_remote(workspace: Path, name: str) -> SyncRemote:
    """Stamp a remote's ``last_sync`` with the current time."""
    config = load_config(workspace)
    if name not in config.remotes:
        raise ConfigError(f'Remote "{name}" not found.')
    updated = config.remotes[name].model_copy(update={"last_sync": utcnow()})
    config.remotes[name] = updated
    save_config(workspace, config)
    return updated
