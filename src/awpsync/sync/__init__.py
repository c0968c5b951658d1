"""
Workspace sync -- artifacts and reputation signals between workspaces.

Versions only move forward. Provenance is only ever appended to.
Signals fold in once, however often they arrive.

Transports: local directory, git remote (throwaway shallow clone).
The engine decides what travels. The transport only carries it.
"""

from .engine import SyncEngine
from .transports import GitRemoteTransport, LocalTransport, SyncTransport, create_transport

__all__ = [
    "GitRemoteTransport",
    "LocalTransport",
    "SyncEngine",
    "SyncTransport",
    "create_transport",
]
