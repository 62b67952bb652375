"""Shared test fixtures for selfpatch tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from selfpatch.config import Config
from selfpatch.patches import JobType, ModifyJob
from selfpatch.proposer import ProposalResult

TEMPLATE = """Source tree:
{{ files }}

Task:
{{ task }}
"""


class RecordingNotifier:
    """Notifier that keeps every message for inspection."""

    def __init__(self, fail: bool = False):
        self.messages: list[str] = []
        self.suppressed: list[bool] = []
        self.fail = fail

    def notify(self, text: str, *, suppress_mentions: bool = False) -> None:
        if self.fail:
            raise RuntimeError("channel unavailable")
        self.messages.append(text)
        self.suppressed.append(suppress_mentions)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Create a project root with a two-file workspace, tasks and template."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    (workspace / "a.txt").write_text("1\n2\n3")
    (workspace / "b.txt").write_text("x")

    tasks = tmp_path / "prompts" / "tasks"
    tasks.mkdir(parents=True)
    (tasks / "one.txt").write_text("Add a command")
    (tasks / "two.txt").write_text("Fix a bug")

    (tmp_path / "prompts" / "source_prompt.txt").write_text(TEMPLATE)
    (tmp_path / "config").mkdir()
    return tmp_path


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


@pytest.fixture
def mock_config(project: Path) -> Config:
    """Create a mock configuration rooted at the test project."""
    return Config(
        root=project,
        config_dir=project / "config",
        workspace_dir=project / "workspace",
        tasks_dir=project / "prompts" / "tasks",
        template_path=project / "prompts" / "source_prompt.txt",
        reports_path=project / "user_error_reports.json",
        log_dir=project / "logs" / "runs",
        mock_mode=True,
    )


@pytest.fixture
def sample_proposal() -> ProposalResult:
    """Proposal that appends then deletes in a.txt."""
    return ProposalResult(
        modify_jobs=[
            ModifyJob(file="a.txt", type=JobType.APPEND, source="2", destination="NEW"),
            ModifyJob(file="a.txt", type=JobType.DELETE, source="1", destination=""),
        ],
        commit_message="feat: add NEW line",
        changelog="Added a NEW line.",
        raw_response='{"modifyJobs": []}',
    )
