"""Modify-job model and in-memory patch application.

A run receives an ordered list of modify-jobs from the change proposer.
Each job edits one workspace file by line number (append/delete) or by
literal substring (replace). Jobs are folded in order over a mapping of
file name to buffer, so later jobs see the output of earlier ones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .errors import PatchError

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    """Closed set of edit operations."""

    APPEND = "append"
    REPLACE = "replace"
    DELETE = "delete"


@dataclass
class SourceFile:
    """A workspace file held in memory for the duration of a run."""

    file_name: str
    data: str


@dataclass(frozen=True)
class ModifyJob:
    """One proposed edit against one file.

    For APPEND and DELETE, ``source`` is a 1-based line number. For
    REPLACE, ``source`` is the literal text to replace.
    """

    file: str
    type: JobType
    source: str
    destination: str = ""

    def describe(self) -> str:
        """Short human-readable label for logs."""
        return f"{self.type.value} {self.file}:{self.source[:40]!r}"


@dataclass
class JobFailure:
    """A job that was skipped."""

    index: int
    job: ModifyJob
    reason: str


@dataclass
class ApplyReport:
    """Outcome of applying a job list to a set of buffers."""

    applied: list[int] = field(default_factory=list)
    failed: list[JobFailure] = field(default_factory=list)
    unknown_files: list[JobFailure] = field(default_factory=list)
    touched: list[str] = field(default_factory=list)
    blocked: dict[str, str] = field(default_factory=dict)

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    @property
    def skipped_count(self) -> int:
        return len(self.failed) + len(self.unknown_files)

    @property
    def writable(self) -> list[str]:
        """Touched files that no guard has blocked, in first-touch order."""
        return [name for name in self.touched if name not in self.blocked]

    def summary(self) -> str:
        parts = [f"{self.applied_count} job(s) applied"]
        if self.failed:
            parts.append(f"{len(self.failed)} failed")
        if self.unknown_files:
            parts.append(f"{len(self.unknown_files)} targeted unknown files")
        if self.blocked:
            parts.append(f"{len(self.blocked)} file(s) blocked by guards")
        return ", ".join(parts)


def parse_line_number(value: str, job_type: JobType) -> int:
    """Parse a job's ``source`` as a 1-based line number.

    Raises:
        PatchError: If the value is not an integer.
    """
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        raise PatchError(
            f"{job_type.value} expects a line number, got {value!r}"
        ) from None


def split_lines(content: str) -> tuple[list[str], bool]:
    """Split content into lines and report whether it ends with a newline.

    A final ``\\n`` terminates the last line instead of opening an empty one.
    """
    if not content:
        return [], False
    if content.endswith("\n"):
        return content[:-1].split("\n"), True
    return content.split("\n"), False


def join_lines(lines: list[str], trailing_newline: bool) -> str:
    """Inverse of ``split_lines``."""
    if not lines:
        return ""
    return "\n".join(lines) + ("\n" if trailing_newline else "")


def append_line(content: str, line: int, text: str) -> str:
    """Insert ``text`` as a new line right after line ``line``.

    A line beyond the end appends ``text`` as the new last line.

    Raises:
        PatchError: If ``line`` is not positive.
    """
    if line < 1:
        raise PatchError(f"append expects a positive line number, got {line}")
    lines, trailing = split_lines(content)
    lines.insert(min(line, len(lines)), text)
    return join_lines(lines, trailing)


def delete_line(content: str, line: int) -> str:
    """Remove line ``line``; out-of-range lines leave content unchanged."""
    lines, trailing = split_lines(content)
    if line < 1 or line > len(lines):
        return content
    del lines[line - 1]
    return join_lines(lines, trailing)


def replace_text(content: str, source: str, destination: str) -> str:
    """Replace every literal occurrence of ``source``.

    Raises:
        PatchError: If ``source`` is empty.
    """
    if not source:
        raise PatchError("replace expects a non-empty source string")
    return content.replace(source, destination)


def apply_job(content: str, job: ModifyJob) -> str:
    """Return ``content`` with ``job`` applied.

    Raises:
        PatchError: If the job's inputs are malformed.
    """
    if job.type is JobType.APPEND:
        return append_line(content, parse_line_number(job.source, job.type), job.destination)
    if job.type is JobType.DELETE:
        return delete_line(content, parse_line_number(job.source, job.type))
    if job.type is JobType.REPLACE:
        return replace_text(content, job.source, job.destination)
    raise PatchError(f"Unknown job type: {job.type!r}")


def apply_jobs(buffers: dict[str, SourceFile], jobs: list[ModifyJob]) -> ApplyReport:
    """Fold ``jobs`` in order over ``buffers``, mutating them in place.

    Line numbers refer to each file's state at the time the job runs, not
    to the file as it was loaded. A failing job is recorded and skipped.

    Args:
        buffers: Mapping of file name to the in-memory file.
        jobs: Jobs in the order the proposer returned them.

    Returns:
        ApplyReport with applied indices, failures and touched files.
    """
    report = ApplyReport()
    for index, job in enumerate(jobs):
        target = buffers.get(job.file)
        if target is None:
            logger.warning(f"Job {index} targets unknown file {job.file!r}, skipping")
            report.unknown_files.append(JobFailure(index, job, "unknown file"))
            continue

        try:
            target.data = apply_job(target.data, job)
        except PatchError as exc:
            logger.warning(f"Job {index} ({job.describe()}) skipped: {exc}")
            report.failed.append(JobFailure(index, job, str(exc)))
            continue

        logger.debug(f"Job {index} applied: {job.describe()}")
        report.applied.append(index)
        if job.file not in report.touched:
            report.touched.append(job.file)

    logger.info(f"Patch application finished: {report.summary()}")
    return report
