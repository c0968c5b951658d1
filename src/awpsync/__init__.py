"""
AWP Sync — workspace-to-workspace replication for agent workspaces.

Knowledge artifacts and reputation signals travel between independently
operated workspaces over a local directory or a git remote.
"""

import os

__version__ = "0.1.0"

AWP_WORKSPACE = os.environ.get("AWP_WORKSPACE", ".")
