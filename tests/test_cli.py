"""Tests for CLI entrypoint."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from selfpatch.cli import app
from selfpatch.reports import ReportQueue

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep credentials and .env files from the host out of CLI runs."""
    for name in ("OPENAI_API_KEY", "DISCORD_TOKEN", "DISCORD_CHANNEL_ID", "GITHUB_OUTPUT",
                 "SELFPATCH_MOCK_MODE", "SELFPATCH_AUTO_COMMIT", "SELFPATCH_WORKSPACE_DIR",
                 "SELFPATCH_REPORTS_FILE", "SELFPATCH_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("selfpatch.config.load_dotenv", lambda: None)


class TestCLI:
    """Tests for CLI commands."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "selfpatch version" in result.stdout

    def test_help(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "Self-modifying patch pipeline" in result.stdout

    def test_run_help(self) -> None:
        result = runner.invoke(app, ["run", "--help"])

        assert result.exit_code == 0
        assert "--root" in result.stdout
        assert "--mock" in result.stdout
        assert "--dry-run" in result.stdout
        assert "--seed" in result.stdout


class TestRunCommand:
    """Tests for the run command."""

    def test_mock_run(self, project: Path) -> None:
        result = runner.invoke(app, ["run", "--root", str(project), "--mock", "--seed", "1"])

        assert result.exit_code == 0, result.stdout
        assert "No files changed." in result.stdout
        assert (project / "workspace" / "a.txt").read_text() == "1\n2\n3"

    def test_dry_run(self, project: Path) -> None:
        result = runner.invoke(app, ["run", "--root", str(project), "--dry-run"])

        assert result.exit_code == 0, result.stdout
        assert "DRY RUN" in result.stdout
        assert "Directive:" in result.stdout

    def test_missing_api_key(self, project: Path) -> None:
        result = runner.invoke(app, ["run", "--root", str(project)])

        assert result.exit_code == 1
        assert "Configuration errors" in result.stdout
        assert "OPENAI_API_KEY" in result.stdout

    def test_missing_root(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["run", "--root", str(tmp_path / "nope"), "--mock"])

        assert result.exit_code == 1
        assert "does not exist" in result.stdout

    def test_bad_timeout_is_reported(self, project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SELFPATCH_TIMEOUT", "ten")

        result = runner.invoke(app, ["run", "--root", str(project), "--mock"])

        assert result.exit_code == 1
        assert "SELFPATCH_TIMEOUT must be an integer" in result.stdout

    def test_failed_run_exits_nonzero(self, project: Path) -> None:
        (project / "prompts" / "source_prompt.txt").write_text("no placeholders")

        result = runner.invoke(app, ["run", "--root", str(project), "--mock"])

        assert result.exit_code == 1
        assert "Run failed during assembling" in result.stdout


class TestReportCommands:
    """Tests for report, reports and clear-reports."""

    def test_report_queues_entry(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["report", "/notes crashes", "--user", "alice", "--root", str(tmp_path)]
        )

        assert result.exit_code == 0
        assert "submitted successfully" in result.stdout
        [stored] = ReportQueue(tmp_path / "user_error_reports.json").load()
        assert stored.description == "/notes crashes"
        assert stored.username == "alice"

    def test_report_rejects_blank(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["report", "   ", "--root", str(tmp_path)])

        assert result.exit_code == 1
        assert "required" in result.stdout

    def test_reports_empty(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["reports", "--root", str(tmp_path)])

        assert result.exit_code == 0
        assert "No error reports found." in result.stdout

    def test_reports_lists_and_filters(self, tmp_path: Path) -> None:
        queue = ReportQueue(tmp_path / "user_error_reports.json")
        first = queue.add("first bug")
        queue.add("second bug")
        queue.mark_processed([first.id])

        result = runner.invoke(app, ["reports", "--root", str(tmp_path)])
        assert result.exit_code == 0
        assert "PENDING (1)" in result.stdout
        assert "PROCESSED (1)" in result.stdout
        assert "Total reports: 2" in result.stdout

        filtered = runner.invoke(app, ["reports", "archived", "--root", str(tmp_path)])
        assert "No reports with status 'archived' found." in filtered.stdout

    def test_clear_reports(self, tmp_path: Path) -> None:
        queue = ReportQueue(tmp_path / "user_error_reports.json")
        first = queue.add("first bug")
        queue.add("second bug")
        queue.mark_processed([first.id])

        result = runner.invoke(app, ["clear-reports", "--root", str(tmp_path)])

        assert result.exit_code == 0
        assert "Removed 1 processed report(s)." in result.stdout
        assert len(queue.load()) == 1
