"""
AWP Sync CLI -- replicate a workspace with its remotes.

Each command group lives in its own module and is registered onto the
main Click group via a register function.

Entry point: awpsync.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="awp-sync")
@click.option("--verbose", "-v", is_flag=True, help="Log sync activity to stderr.")
def main(verbose):
    """AWP Sync -- artifacts and reputation between workspaces.

    Versions move forward. Provenance grows. Signals count once.
    """
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .remote_cmd import register_remote_commands
from .sync_cmd import register_sync_commands
from .conflicts_cmd import register_conflicts_commands

register_remote_commands(main)
register_sync_commands(main)
register_conflicts_commands(main)
