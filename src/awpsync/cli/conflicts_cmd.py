"""Conflict commands: list, resolve."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import console, handle_errors, workspace_option, workspace_path
from ..sync.conflicts import RESOLVE_MODES, list_conflicts, resolve_conflict


def register_conflicts_commands(main: click.Group) -> None:
    """Register the conflicts command group."""

    @main.group()
    def conflicts():
        """Inspect and resolve stashed sync conflicts."""

    @conflicts.command("list")
    @workspace_option
    def conflicts_list(workspace):
        """List artifacts waiting for manual resolution."""
        found = list_conflicts(workspace_path(workspace))
        if not found:
            console.print("\n  [green]No conflicts.[/]\n")
            return

        table = Table(title="Conflicts")
        table.add_column("Artifact", style="bold")
        table.add_column("Remote")
        table.add_column("Local", justify="right")
        table.add_column("Remote v", justify="right")
        table.add_column("Detected")
        table.add_column("Remote copy", style="dim")
        for c in found:
            table.add_row(
                c.artifact,
                c.remote,
                str(c.local_version),
                str(c.remote_version),
                c.detected_at.isoformat(timespec="seconds"),
                c.remote_copy_path,
            )
        console.print()
        console.print(table)
        console.print()

    @conflicts.command("resolve")
    @click.argument("slug")
    @workspace_option
    @click.option(
        "--mode",
        type=click.Choice(RESOLVE_MODES),
        default="local",
        show_default=True,
        help="local keeps yours, remote takes theirs, merged keeps a hand-edited local file.",
    )
    @handle_errors
    def conflicts_resolve(slug, workspace, mode):
        """Resolve the stashed conflict for SLUG."""
        resolve_conflict(workspace_path(workspace), slug, mode)
        console.print(f"\n  [green]Resolved[/] [cyan]{slug}[/] ({mode})\n")
