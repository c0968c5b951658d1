"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the workspace option, and the
error-to-exit-code mapping used across every command group.
"""

from __future__ import annotations

import asyncio
import functools
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from .. import AWP_WORKSPACE
from ..errors import ConfigError, SyncError
from ..models import SyncResult

console = Console()

EXIT_SYNC_ERROR = 1
EXIT_CONFIG_ERROR = 2


def workspace_option(func):
    """Add the shared ``--workspace`` option."""
    return click.option(
        "--workspace",
        "-w",
        default=AWP_WORKSPACE,
        type=click.Path(file_okay=False),
        envvar="AWP_WORKSPACE",
        show_default=True,
        help="Workspace root.",
    )(func)


def workspace_path(workspace: str) -> Path:
    return Path(workspace).expanduser()


def run_async(coro):
    """Run a coroutine to completion, mapping sync errors to exit codes."""
    try:
        return asyncio.run(coro)
    except SyncError as exc:
        fail(exc)


def handle_errors(func):
    """Report SyncError as a red message and exit non-zero."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SyncError as exc:
            fail(exc)

    return wrapper


def fail(exc: SyncError) -> None:
    console.print(f"[bold red]Error ({exc.code}):[/] {escape(str(exc))}")
    sys.exit(EXIT_CONFIG_ERROR if isinstance(exc, ConfigError) else EXIT_SYNC_ERROR)


def print_result(result: SyncResult) -> None:
    """Render a SyncResult summary."""
    prefix = "[yellow]DRY RUN[/] " if result.dry_run else ""
    console.print(f"\n  {prefix}[bold]{result.direction}[/] with [cyan]{result.remote}[/]")

    rows = (
        ("imported", result.imported, "green"),
        ("updated", result.updated, "green"),
        ("resolved", result.resolved, "yellow"),
        ("pushed", result.pushed, "cyan"),
        ("conflicts", result.conflicts, "red"),
        ("rejected", result.rejected, "red"),
    )
    for label, slugs, color in rows:
        if slugs:
            console.print(f"  [{color}]{label:>9}[/] {', '.join(slugs)}")

    console.print(f"  [dim]{'skipped':>9} {len(result.skipped)}[/]")
    console.print(f"  [dim]{'signals':>9} {result.signals_synced}[/]")

    for diag in result.diagnostics:
        console.print(f"  [red]![/] {diag.slug}: {escape(diag.message)} [dim]({diag.code})[/]")
    console.print()
