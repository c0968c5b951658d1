"""Sync commands: diff, pull, push, run, status, signals pull/push."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table

from ._common import console, handle_errors, print_result, run_async, workspace_option, workspace_path
from ..models import SyncAction, SyncOptions, TieBreakPolicy
from ..sync.engine import SyncEngine

_ACTION_STYLE = {
    SyncAction.IMPORT: "green",
    SyncAction.FAST_FORWARD: "green",
    SyncAction.PUSH: "cyan",
    SyncAction.RESOLVE: "yellow",
    SyncAction.CONFLICT: "red",
    SyncAction.SKIP: "dim",
}


def _pass_options(func):
    """Options shared by every artifact pass."""
    func = click.option("--pattern", "slug_pattern", default=None, help="Only slugs matching this glob.")(func)
    func = click.option("--tag", default=None, help="Only artifacts carrying this tag.")(func)
    func = click.option(
        "--tie-break",
        type=click.Choice([p.value for p in TieBreakPolicy]),
        default=None,
        help="Override the configured tie-break policy.",
    )(func)
    return func


def _options(slug_pattern, tag, tie_break, dry_run=False) -> SyncOptions:
    return SyncOptions(
        slug_pattern=slug_pattern,
        tag=tag,
        dry_run=dry_run,
        tie_break=TieBreakPolicy(tie_break) if tie_break else None,
    )


def register_sync_commands(main: click.Group) -> None:
    """Register the artifact pass commands and the signals group."""

    @main.command("diff")
    @click.argument("remote")
    @workspace_option
    @_pass_options
    def diff_cmd(remote, workspace, slug_pattern, tag, tie_break):
        """Show what a sync with REMOTE would do."""
        engine = SyncEngine(workspace_path(workspace))
        entries = run_async(engine.diff(remote, _options(slug_pattern, tag, tie_break)))

        if not entries:
            console.print("\n  [dim]No artifacts on either side.[/]\n")
            return

        table = Table(title=f"Diff with {remote}")
        table.add_column("Artifact", style="bold")
        table.add_column("Action")
        table.add_column("Local", justify="right")
        table.add_column("Remote", justify="right")
        table.add_column("Reason", style="dim")
        for entry in entries:
            style = _ACTION_STYLE[entry.action]
            table.add_row(
                entry.slug,
                f"[{style}]{entry.action.value}[/]",
                str(entry.local_version) if entry.local_version is not None else "-",
                str(entry.remote_version) if entry.remote_version is not None else "-",
                entry.reason,
            )
        console.print()
        console.print(table)
        console.print()

    @main.command("pull")
    @click.argument("remote")
    @workspace_option
    @_pass_options
    @click.option("--dry-run", is_flag=True, help="Report the plan without writing.")
    def pull_cmd(remote, workspace, slug_pattern, tag, tie_break, dry_run):
        """Pull newer artifacts and signals from REMOTE."""
        engine = SyncEngine(workspace_path(workspace))
        print_result(run_async(engine.pull(remote, _options(slug_pattern, tag, tie_break, dry_run))))

    @main.command("push")
    @click.argument("remote")
    @workspace_option
    @_pass_options
    @click.option("--dry-run", is_flag=True, help="Report the plan without writing.")
    def push_cmd(remote, workspace, slug_pattern, tag, tie_break, dry_run):
        """Push newer local artifacts to REMOTE."""
        engine = SyncEngine(workspace_path(workspace))
        print_result(run_async(engine.push(remote, _options(slug_pattern, tag, tie_break, dry_run))))

    @main.command("run")
    @click.argument("remote")
    @workspace_option
    @_pass_options
    @click.option("--dry-run", is_flag=True, help="Report the plan without writing.")
    def run_cmd(remote, workspace, slug_pattern, tag, tie_break, dry_run):
        """Run one full sync pass with REMOTE."""
        engine = SyncEngine(workspace_path(workspace))
        print_result(run_async(engine.sync(remote, _options(slug_pattern, tag, tie_break, dry_run))))

    @main.command("status")
    @workspace_option
    @handle_errors
    def status_cmd(workspace):
        """Show configured remotes and their sync state."""
        status = SyncEngine(workspace_path(workspace)).status()

        console.print()
        console.print(
            Panel(
                f"Workspace: [cyan]{status['workspace_name']}[/] [dim]({status['workspace']})[/]\n"
                f"Tie-break: [bold]{status['tie_break']}[/]\n"
                f"Signals: {'[green]on[/]' if status['sync_signals'] else '[yellow]off[/]'}\n"
                f"Open conflicts: [bold]{status['conflicts']}[/]",
                title="AWP Sync",
                border_style="cyan",
            )
        )

        if not status["remotes"]:
            console.print("  [dim]No remotes configured. Add one with: awp-sync remote add[/]\n")
            return

        table = Table(title="Remotes")
        table.add_column("Name", style="bold")
        table.add_column("Transport")
        table.add_column("URL")
        table.add_column("Last sync")
        table.add_column("Tracked", justify="right")
        table.add_column("Signals", justify="right")
        for name, info in status["remotes"].items():
            table.add_row(
                name,
                info["transport"],
                info["url"],
                info["last_sync"] or "[dim]never[/]",
                str(info["tracked_artifacts"]),
                str(info["signals_imported"]),
            )
        console.print(table)
        console.print()

    @main.group()
    def signals():
        """Reputation signal exchange."""

    @signals.command("pull")
    @click.argument("remote")
    @workspace_option
    @click.option(
        "--since",
        type=click.DateTime(),
        default=None,
        help="Import signals after this time instead of the stored cursor.",
    )
    def signals_pull(remote, workspace, since: Optional[datetime]):
        """Import reputation signals from REMOTE."""
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        engine = SyncEngine(workspace_path(workspace))
        count = run_async(engine.pull_signals(remote, since))
        console.print(f"\n  [green]{count}[/] new signal(s) from [cyan]{remote}[/]\n")

    @signals.command("push")
    @click.argument("remote")
    @workspace_option
    def signals_push(remote, workspace):
        """Export local reputation signals to REMOTE."""
        engine = SyncEngine(workspace_path(workspace))
        count = run_async(engine.push_signals(remote))
        console.print(f"\n  [green]{count}[/] signal(s) recorded on [cyan]{remote}[/]\n")
