"""Workspace loading and write-back.

The workspace is the tree of text files the pipeline is allowed to
rewrite. It is loaded completely before anything is proposed, and only
written back after every job has been applied in memory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from .errors import WorkspaceLoadError
from .patches import SourceFile

logger = logging.getLogger(__name__)


def _iter_files(root: Path, exclude: Iterable[str] = ()) -> list[Path]:
    """List regular files under root, sorted by relative path."""
    if not root.is_dir():
        raise WorkspaceLoadError(f"Directory does not exist or is not readable: {root}")

    excluded = set(exclude)
    try:
        candidates = [
            path for path in root.rglob("*")
            if path.is_file() and not excluded.intersection(path.relative_to(root).parts)
        ]
    except OSError as exc:
        raise WorkspaceLoadError(f"Failed to list {root}: {exc}") from exc
    return sorted(candidates, key=lambda p: p.relative_to(root).as_posix())


def _read_text(path: Path) -> str:
    # newline="" keeps \r\n intact so untouched lines round-trip unchanged
    try:
        with open(path, encoding="utf-8", newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise WorkspaceLoadError(f"Failed to read {path}: {exc}") from exc


def load_workspace(root: Path, exclude: Optional[Iterable[str]] = None) -> list[SourceFile]:
    """Load every file under the workspace root as UTF-8 text.

    Args:
        root: Workspace root directory.
        exclude: Path components to skip (e.g. ".git"). Defaults to (".git",).

    Returns:
        SourceFiles named by their POSIX path relative to root.

    Raises:
        WorkspaceLoadError: If the root or any single file cannot be read.
    """
    root = Path(root)
    exclude = (".git",) if exclude is None else exclude
    files = [
        SourceFile(file_name=path.relative_to(root).as_posix(), data=_read_text(path))
        for path in _iter_files(root, exclude)
    ]
    logger.info(f"Loaded {len(files)} workspace file(s) from {root}")
    return files


def load_task_prompts(root: Path) -> list[str]:
    """Load every task prompt file as raw text, sorted by file name.

    Raises:
        WorkspaceLoadError: If the directory is unreadable or holds no files.
    """
    root = Path(root)
    tasks = [_read_text(path) for path in _iter_files(root)]
    if not tasks:
        raise WorkspaceLoadError(f"No task prompts found in {root}")
    logger.info(f"Loaded {len(tasks)} task prompt(s) from {root}")
    return tasks


def load_template(path: Path) -> str:
    """Read the directive template.

    Raises:
        WorkspaceLoadError: If the template cannot be read.
    """
    return _read_text(Path(path))


def write_source_files(root: Path, files: Iterable[SourceFile]) -> list[str]:
    """Overwrite each file under root with its in-memory content.

    Returns:
        Names of the files written.
    """
    root = Path(root)
    written = []
    for source in files:
        file_path = root / source.file_name
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w", encoding="utf-8", newline="") as f:
            f.write(source.data)
        logger.info(f"Updated: {source.file_name}")
        written.append(source.file_name)
    return written
