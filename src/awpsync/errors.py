"""
Typed sync failures.

Callers (CLI, orchestration layer) receive these instead of raw
transport exceptions. Every error carries a stable ``code`` so
configuration problems can be told apart from runtime/network ones.
"""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for all sync failures."""

    code = "sync-error"

    def __init__(self, message: str, slug: Optional[str] = None):
        super().__init__(message)
        self.slug = slug


class ConfigError(SyncError):
    """Unknown/unsupported transport kind or bad remote configuration."""

    code = "config-error"


class TransportUnreachableError(SyncError):
    """The remote path or URL cannot be reached."""

    code = "transport-unreachable"


class CloneFailureError(SyncError):
    """A shallow clone could not be completed."""

    code = "clone-failure"


class ArtifactNotFoundError(SyncError):
    """No artifact file exists for the requested slug."""

    code = "not-found"


class ArtifactParseError(SyncError):
    """An artifact body could not be split into frontmatter + content."""

    code = "parse-error"


class PushRejectedError(SyncError):
    """The remote refused a push (e.g. non-fast-forward)."""

    code = "push-rejected"


class UnsupportedOperationError(SyncError):
    """The transport does not support this operation."""

    code = "unsupported-operation"


class TransportStateError(SyncError):
    """A transport method was called in the wrong lifecycle state."""

    code = "transport-state"


class VersionRegressionError(SyncError):
    """A write would lower an artifact's stored version."""

    code = "version-regression"


class SyncInProgressError(SyncError):
    """Another sync pass against the same remote is still running."""

    code = "sync-in-progress"
