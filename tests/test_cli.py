"""Tests for the CLI commands."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from testrail_jira_sync.cli import main
from testrail_jira_sync.coverage.metrics import PercentagePair
from testrail_jira_sync.coverage.publisher import PublishReport
from testrail_jira_sync.storage.checkpoint import (
    CheckpointLockedError,
    CheckpointState,
    CheckpointStore,
)
from testrail_jira_sync.sync.orchestrator import InvocationResult, SyncResult


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def checkpoint_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "checkpoint.json"


@pytest.fixture
def config_file(tmp_path: Path, checkpoint_path: Path) -> Path:
    """Create a temporary config file."""
    config_content = f"""testrail:
  base_url: https://example.testrail.io
  user: qa@example.com
  token_env: CLI_TESTRAIL_TOKEN

jira:
  base_url: https://example.atlassian.net
  email: qa@example.com
  token_env: CLI_JIRA_TOKEN
  coverage_field_id: customfield_11969
  pass_rate_field_id: customfield_11999

storage:
  checkpoint_path: {checkpoint_path}
"""
    path = tmp_path / "config.yaml"
    path.write_text(config_content)
    return path


class TestMain:
    """Tests for the command group."""

    def test_version(self, runner: CliRunner) -> None:
        """Test --version output."""
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "testrail-jira-sync" in result.output

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        """Test that all commands are registered."""
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("run", "status", "reset", "check-config"):
            assert command in result.output

    def test_invalid_config_aborts(self, runner: CliRunner, tmp_path: Path) -> None:
        """Test that a config failing validation aborts."""
        path = tmp_path / "bad.yaml"
        path.write_text("testrail:\n  base_url: not-a-url\n")

        result = runner.invoke(main, ["status", "--config", str(path)])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestRunCommand:
    """Tests for the run command."""

    def test_success_summary(self, runner: CliRunner, config_file: Path) -> None:
        """Test the summary printed after a successful invocation."""
        sync_result = SyncResult(
            start_index=2,
            next_index=3,
            project_count=5,
            projects_processed=1,
            milestones_processed=4,
            milestones_skipped=1,
            stopped_by_budget=True,
            averages={"X-1": PercentagePair(75, 75)},
            publish_report=PublishReport(updated=["X-1"]),
        )
        outcome = InvocationResult(
            status_code=200,
            body="Scheduled task completed successfully",
            result=sync_result,
        )

        with patch(
            "testrail_jira_sync.sync.orchestrator.run_scheduled",
            new=AsyncMock(return_value=outcome),
        ) as mock_run:
            result = runner.invoke(main, ["run", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Scheduled task completed successfully" in result.output
        assert "Issues updated: 1" in result.output
        assert "time budget" in result.output
        assert mock_run.await_args.kwargs == {"dry_run": False}

    def test_dry_run_flag(self, runner: CliRunner, config_file: Path) -> None:
        """Test that --dry-run is passed through."""
        outcome = InvocationResult(
            status_code=200,
            body="Scheduled task completed successfully",
            result=SyncResult(start_index=0, next_index=1, project_count=1, dry_run=True),
        )

        with patch(
            "testrail_jira_sync.sync.orchestrator.run_scheduled",
            new=AsyncMock(return_value=outcome),
        ) as mock_run:
            result = runner.invoke(main, ["run", "--config", str(config_file), "--dry-run"])

        assert result.exit_code == 0
        assert "Dry run" in result.output
        assert mock_run.await_args.kwargs == {"dry_run": True}

    def test_failure_exits_nonzero(self, runner: CliRunner, config_file: Path) -> None:
        """Test that a failed invocation exits with status 1."""
        outcome = InvocationResult(status_code=500, body="Error processing scheduled task")

        with patch(
            "testrail_jira_sync.sync.orchestrator.run_scheduled",
            new=AsyncMock(return_value=outcome),
        ):
            result = runner.invoke(main, ["run", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Error processing scheduled task" in result.output

    def test_missing_tokens_exit_nonzero(
        self, runner: CliRunner, config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a real invocation without credentials."""
        monkeypatch.delenv("CLI_TESTRAIL_TOKEN", raising=False)
        monkeypatch.delenv("CLI_JIRA_TOKEN", raising=False)

        result = runner.invoke(main, ["run", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "500" in result.output


class TestStatusCommand:
    """Tests for the status command."""

    def test_without_checkpoint(self, runner: CliRunner, config_file: Path) -> None:
        """Test status before the first run."""
        result = runner.invoke(main, ["status", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "No checkpoint" in result.output

    def test_with_checkpoint(
        self, runner: CliRunner, config_file: Path, checkpoint_path: Path
    ) -> None:
        """Test status shows the cursor and averages."""
        CheckpointStore(checkpoint_path).save(
            CheckpointState(
                last_index=3,
                jira_percentages={"X-1": [PercentagePair(100, 50), PercentagePair(50, 100)]},
            )
        )

        result = runner.invoke(main, ["status", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Cursor (lastIndex): 3" in result.output
        assert "X-1" in result.output
        assert "75%" in result.output

    def test_corrupted_checkpoint(
        self, runner: CliRunner, config_file: Path, checkpoint_path: Path
    ) -> None:
        """Test status with an unreadable checkpoint."""
        checkpoint_path.parent.mkdir(parents=True)
        checkpoint_path.write_text("not json")

        result = runner.invoke(main, ["status", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Corrupted checkpoint" in result.output


class TestResetCommand:
    """Tests for the reset command."""

    def test_reset_with_yes(
        self, runner: CliRunner, config_file: Path, checkpoint_path: Path
    ) -> None:
        """Test deleting the checkpoint without a prompt."""
        CheckpointStore(checkpoint_path).save(CheckpointState(last_index=2))

        result = runner.invoke(main, ["reset", "--config", str(config_file), "--yes"])

        assert result.exit_code == 0
        assert "Checkpoint deleted" in result.output
        assert not checkpoint_path.exists()

    def test_reset_declined(
        self, runner: CliRunner, config_file: Path, checkpoint_path: Path
    ) -> None:
        """Test that declining the prompt keeps the checkpoint."""
        CheckpointStore(checkpoint_path).save(CheckpointState(last_index=2))

        result = runner.invoke(main, ["reset", "--config", str(config_file)], input="n\n")

        assert result.exit_code == 1
        assert checkpoint_path.exists()

    def test_reset_while_run_holds_lock(
        self, runner: CliRunner, config_file: Path, checkpoint_path: Path
    ) -> None:
        """Test that reset reports a locked checkpoint instead of crashing."""
        CheckpointStore(checkpoint_path).save(CheckpointState(last_index=2))

        with CheckpointStore(checkpoint_path):
            result = runner.invoke(main, ["reset", "--config", str(config_file), "--yes"])

        assert result.exit_code == 1
        assert "locked" in result.output
        assert "Traceback" not in result.output
        assert not isinstance(result.exception, CheckpointLockedError)
        assert checkpoint_path.exists()

    def test_reset_without_checkpoint(self, runner: CliRunner, config_file: Path) -> None:
        """Test reset when there is nothing to delete."""
        result = runner.invoke(main, ["reset", "--config", str(config_file), "--yes"])

        assert result.exit_code == 0
        assert "No checkpoint" in result.output


class TestCheckConfigCommand:
    """Tests for the check-config command."""

    def test_valid(
        self, runner: CliRunner, config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a valid config with both tokens set."""
        monkeypatch.setenv("CLI_TESTRAIL_TOKEN", "tr")
        monkeypatch.setenv("CLI_JIRA_TOKEN", "jira")

        result = runner.invoke(main, ["check-config", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Configuration OK" in result.output

    def test_missing_token(
        self, runner: CliRunner, config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a missing token fails the check."""
        monkeypatch.setenv("CLI_TESTRAIL_TOKEN", "tr")
        monkeypatch.delenv("CLI_JIRA_TOKEN", raising=False)

        result = runner.invoke(main, ["check-config", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Missing credentials" in result.output
