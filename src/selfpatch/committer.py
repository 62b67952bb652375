"""Optional local git commit of the files a run rewrote."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    """Result of a git commit operation."""

    success: bool
    commit_hash: Optional[str]
    message: str
    error: Optional[str] = None


class CommitterError(Exception):
    """Exception raised when the workspace is not inside a git repository."""

    pass


class GitCommitter:
    """Commits rewritten workspace files using GitPython."""

    def __init__(self, workspace_path: Path):
        """Open the repository containing the workspace.

        Args:
            workspace_path: Workspace directory; the repository may be a parent.

        Raises:
            CommitterError: If no git repository contains the workspace.
        """
        self.workspace_path = Path(workspace_path).resolve()
        try:
            self.repo = git.Repo(self.workspace_path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as exc:
            raise CommitterError(f"Not inside a git repository: {self.workspace_path}") from exc

        self.repo_root = Path(self.repo.working_tree_dir).resolve()

    def commit(self, file_names: Iterable[str], message: str) -> CommitResult:
        """Stage the given workspace files and commit them.

        Args:
            file_names: File names relative to the workspace.
            message: Commit message.

        Returns:
            CommitResult with success status and commit hash.
        """
        paths = [
            (self.workspace_path / name).relative_to(self.repo_root).as_posix()
            for name in file_names
        ]
        if not paths:
            return CommitResult(success=True, commit_hash=None, message="No changes to commit")

        try:
            self.repo.index.add(paths)
            # An unborn HEAD has nothing to diff against
            if self.repo.head.is_valid() and not self.repo.index.diff("HEAD"):
                logger.info("No changes to commit")
                return CommitResult(success=True, commit_hash=None, message="No changes to commit")

            commit = self.repo.index.commit(message)
            commit_hash = commit.hexsha[:8]
            logger.info(f"Committed: {commit_hash} - {message[:50]}")
            return CommitResult(success=True, commit_hash=commit_hash, message=message)

        except (GitCommandError, OSError) as exc:
            logger.error(f"Commit failed: {exc}")
            return CommitResult(success=False, commit_hash=None, message=message, error=str(exc))
