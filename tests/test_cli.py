"""Tests for the awp-sync command line.

Covers:
- remote add / list / remove
- diff, pull, push, run (incl. dry run)
- signals pull / push
- conflicts list / resolve
- status
- exit codes for config and sync errors
"""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from awpsync import __version__
from awpsync.cli import main
from awpsync.store import LocalStore
from awpsync.sync.config import list_remotes


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _invoke(runner: CliRunner, workspace: Path, *args: str):
    return runner.invoke(main, [*args, "--workspace", str(workspace)])


class TestMain:
    def test_version(self, runner: CliRunner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner: CliRunner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("remote", "diff", "pull", "push", "run", "signals", "conflicts", "status"):
            assert command in result.output


class TestRemoteCommands:
    def test_add_list_remove(self, runner: CliRunner, workspace: Path, remote_workspace: Path):
        result = _invoke(runner, workspace, "remote", "add", "team", str(remote_workspace))
        assert result.exit_code == 0, result.output
        assert "team" in list_remotes(workspace)

        result = _invoke(runner, workspace, "remote", "list")
        assert result.exit_code == 0
        assert "team" in result.output

        result = _invoke(runner, workspace, "remote", "remove", "team")
        assert result.exit_code == 0
        assert list_remotes(workspace) == {}

    def test_add_git_with_branch(self, runner: CliRunner, workspace: Path):
        result = _invoke(
            runner, workspace, "remote", "add", "origin", "git@example.com:t.git",
            "--transport", "git-remote", "--branch", "dev",
        )
        assert result.exit_code == 0, result.output
        assert list_remotes(workspace)["origin"].branch == "dev"

    def test_duplicate_is_config_error(self, runner: CliRunner, workspace: Path, local_remote):
        result = _invoke(runner, workspace, "remote", "add", local_remote, "/tmp/x")
        assert result.exit_code == 2
        assert "config-error" in result.output

    def test_remove_missing(self, runner: CliRunner, workspace: Path):
        result = _invoke(runner, workspace, "remote", "remove", "ghost")
        assert result.exit_code == 2


class TestPassCommands:
    def test_diff(self, runner: CliRunner, workspace: Path, remote_workspace: Path, local_remote, write_artifact):
        write_artifact(remote_workspace, "plan", 3)
        result = _invoke(runner, workspace, "diff", local_remote)
        assert result.exit_code == 0, result.output
        assert "plan" in result.output
        assert "import" in result.output

    def test_run(self, runner: CliRunner, workspace: Path, remote_workspace: Path, local_remote, write_artifact):
        write_artifact(remote_workspace, "plan", 3)
        write_artifact(workspace, "mine", 1)

        result = _invoke(runner, workspace, "run", local_remote)

        assert result.exit_code == 0, result.output
        assert LocalStore(workspace).read_artifact("plan").version == 3
        assert (remote_workspace / "artifacts" / "mine.md").exists()

    def test_pull_dry_run(self, runner: CliRunner, workspace: Path, remote_workspace: Path, local_remote, write_artifact):
        write_artifact(remote_workspace, "plan", 3)
        result = _invoke(runner, workspace, "pull", local_remote, "--dry-run")
        assert result.exit_code == 0, result.output
        assert "DRY RUN" in result.output
        assert not (workspace / "artifacts" / "plan.md").exists()

    def test_push_with_pattern(self, runner: CliRunner, workspace: Path, remote_workspace: Path, local_remote, write_artifact):
        write_artifact(workspace, "ops-a", 1)
        write_artifact(workspace, "misc", 1)
        result = _invoke(runner, workspace, "push", local_remote, "--pattern", "ops-*")
        assert result.exit_code == 0, result.output
        assert (remote_workspace / "artifacts" / "ops-a.md").exists()
        assert not (remote_workspace / "artifacts" / "misc.md").exists()

    def test_unknown_remote_exits_2(self, runner: CliRunner, workspace: Path):
        result = _invoke(runner, workspace, "run", "ghost")
        assert result.exit_code == 2
        assert "not found" in result.output

    def test_http_remote_exits_2(self, runner: CliRunner, workspace: Path):
        _invoke(runner, workspace, "remote", "add", "web", "https://example.com", "--transport", "http")
        result = _invoke(runner, workspace, "pull", "web")
        assert result.exit_code == 2
        assert "not yet implemented" in result.output

    def test_unreachable_exits_1(self, runner: CliRunner, workspace: Path, tmp_path: Path):
        _invoke(runner, workspace, "remote", "add", "gone", str(tmp_path / "gone"))
        result = _invoke(runner, workspace, "run", "gone")
        assert result.exit_code == 1
        assert "transport-unreachable" in result.output


class TestSignalCommands:
    SIGNALS = [
        {"source": "did:awp:bob", "dimension": "reliability", "score": 0.7,
         "timestamp": "2026-02-01T00:00:00+00:00"},
    ]

    def test_pull(self, runner: CliRunner, workspace: Path, remote_workspace: Path, local_remote, write_profile):
        write_profile(remote_workspace, "dave", "did:awp:dave", "dave", self.SIGNALS)
        result = _invoke(runner, workspace, "signals", "pull", local_remote)
        assert result.exit_code == 0, result.output
        assert "1" in result.output
        assert list(LocalStore(workspace).iter_profiles())

    def test_push(self, runner: CliRunner, workspace: Path, remote_workspace: Path, local_remote, write_profile):
        write_profile(workspace, "dave", "did:awp:dave", "dave", self.SIGNALS)
        result = _invoke(runner, workspace, "signals", "push", local_remote)
        assert result.exit_code == 0, result.output
        assert list(LocalStore(remote_workspace).iter_profiles())


class TestConflictCommands:
    def test_list_and_resolve(self, runner: CliRunner, workspace: Path, remote_workspace: Path, local_remote, write_artifact):
        write_artifact(workspace, "plan", 2, body="Local.\n")
        remote_raw = write_artifact(remote_workspace, "plan", 2, body="Remote.\n")
        _invoke(runner, workspace, "run", local_remote, "--tie-break", "conflict")

        result = _invoke(runner, workspace, "conflicts", "list")
        assert result.exit_code == 0
        assert "plan" in result.output

        result = _invoke(runner, workspace, "conflicts", "resolve", "plan", "--mode", "remote")
        assert result.exit_code == 0, result.output
        assert LocalStore(workspace).read_artifact("plan").raw == remote_raw

        result = _invoke(runner, workspace, "conflicts", "list")
        assert "No conflicts" in result.output

    def test_resolve_missing(self, runner: CliRunner, workspace: Path):
        result = _invoke(runner, workspace, "conflicts", "resolve", "plan")
        assert result.exit_code == 1
        assert "not-found" in result.output


class TestStatusCommand:
    def test_no_remotes(self, runner: CliRunner, workspace: Path):
        result = _invoke(runner, workspace, "status")
        assert result.exit_code == 0
        assert "No remotes configured" in result.output

    def test_with_remote(self, runner: CliRunner, workspace: Path, local_remote):
        result = _invoke(runner, workspace, "status")
        assert result.exit_code == 0
        assert "team" in result.output
        assert "remote-wins" in result.output
