"""Remote registry commands: add, remove, list."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import console, handle_errors, workspace_option, workspace_path
from ..models import TransportKind
from ..sync.config import add_remote, list_remotes, remove_remote


def register_remote_commands(main: click.Group) -> None:
    """Register the remote command group."""

    @main.group()
    def remote():
        """Manage remote workspaces."""

    @remote.command("add")
    @click.argument("name")
    @click.argument("url")
    @workspace_option
    @click.option(
        "--transport",
        "-t",
        type=click.Choice([k.value for k in TransportKind]),
        default=TransportKind.LOCAL_FS.value,
        show_default=True,
    )
    @click.option("--branch", "-b", default="main", show_default=True, help="Git branch.")
    @handle_errors
    def remote_add(name, url, workspace, transport, branch):
        """Register URL as remote NAME."""
        entry = add_remote(
            workspace_path(workspace),
            name,
            {"transport": transport, "url": url, "branch": branch},
        )
        console.print(
            f"\n  [green]Added[/] remote [cyan]{name}[/] "
            f"({entry.transport.value} {entry.url})\n"
        )

    @remote.command("remove")
    @click.argument("name")
    @workspace_option
    @handle_errors
    def remote_remove(name, workspace):
        """Forget remote NAME. Its sync state is kept."""
        remove_remote(workspace_path(workspace), name)
        console.print(f"\n  [yellow]Removed[/] remote [cyan]{name}[/]\n")

    @remote.command("list")
    @workspace_option
    @handle_errors
    def remote_list(workspace):
        """List configured remotes."""
        remotes = list_remotes(workspace_path(workspace))
        if not remotes:
            console.print("\n  [dim]No remotes configured.[/]\n")
            return

        table = Table(title="Remotes")
        table.add_column("Name", style="bold")
        table.add_column("Transport")
        table.add_column("URL")
        table.add_column("Branch")
        table.add_column("Last sync")
        for name, entry in sorted(remotes.items()):
            table.add_row(
                name,
                entry.transport.value,
                entry.url,
                entry.branch,
                entry.last_sync.isoformat() if entry.last_sync else "[dim]never[/]",
            )
        console.print()
        console.print(table)
        console.print()
