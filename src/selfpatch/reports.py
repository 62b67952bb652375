"""Queue of user-submitted error reports.

Reports are stored as a JSON array. The next pipeline run turns pending
reports into its task and marks them processed once the run completes.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_PROCESSED = "processed"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ErrorReport:
    """A single error report."""

    id: str
    description: str
    username: str
    timestamp: str
    status: str = STATUS_PENDING
    fixed_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> ErrorReport:
        """Create ErrorReport from its stored form."""
        return cls(
            id=str(data.get("id", "")),
            description=str(data.get("description", "")),
            username=str(data.get("username", "user")),
            timestamp=str(data.get("timestamp", "")),
            status=str(data.get("status", STATUS_PENDING)),
            fixed_at=data.get("fixedAt"),
        )

    def to_dict(self) -> dict:
        """Convert to the stored form."""
        data = {
            "id": self.id,
            "description": self.description,
            "username": self.username,
            "timestamp": self.timestamp,
            "status": self.status,
        }
        if self.fixed_at:
            data["fixedAt"] = self.fixed_at
        return data

    @property
    def short_id(self) -> str:
        return self.id[:8]


class ReportQueue:
    """JSON-file backed queue of error reports."""

    def __init__(self, path: Path):
        """Initialize the queue.

        Args:
            path: Path to the JSON reports file. It need not exist yet.
        """
        self.path = Path(path)

    def load(self) -> list[ErrorReport]:
        """Load all reports. A missing or unreadable file yields an empty list."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Could not read error reports from {self.path}: {exc}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Error reports file {self.path} does not hold a list, ignoring it")
            return []
        return [ErrorReport.from_dict(item) for item in data if isinstance(item, dict)]

    def save(self, reports: Iterable[ErrorReport]) -> None:
        """Write all reports back to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps([r.to_dict() for r in reports], indent=2) + "\n",
            encoding="utf-8",
        )

    def add(self, description: str, username: str = "user") -> ErrorReport:
        """Append a new pending report.

        Raises:
            ValueError: If the description is blank.
        """
        if not description or not description.strip():
            raise ValueError("Error description is required")

        report = ErrorReport(
            id=str(uuid.uuid4()),
            description=description.strip(),
            username=(username or "user").strip() or "user",
            timestamp=_now_iso(),
        )
        reports = self.load()
        reports.append(report)
        self.save(reports)
        logger.info(f"Error report {report.short_id} queued by {report.username}")
        return report

    def list(self, status: Optional[str] = None) -> list[ErrorReport]:
        """Reports with the given status (all when None), oldest first."""
        reports = self.load()
        if status:
            reports = [r for r in reports if r.status == status]
        return sorted(reports, key=lambda r: r.timestamp)

    def pending(self) -> list[ErrorReport]:
        """Reports not yet processed, in submission order."""
        return [r for r in self.load() if r.status != STATUS_PROCESSED]

    def mark_processed(self, ids: Iterable[str]) -> int:
        """Mark the given reports processed.

        Returns:
            Number of reports updated.
        """
        wanted = set(ids)
        if not wanted:
            return 0
        reports = self.load()
        fixed_at = _now_iso()
        updated = 0
        for report in reports:
            if report.id in wanted and report.status != STATUS_PROCESSED:
                report.status = STATUS_PROCESSED
                report.fixed_at = fixed_at
                updated += 1
        if updated:
            self.save(reports)
        return updated

    def clear_processed(self) -> int:
        """Drop processed reports from the file.

        Returns:
            Number of reports removed.
        """
        reports = self.load()
        remaining = [r for r in reports if r.status != STATUS_PROCESSED]
        removed = len(reports) - len(remaining)
        if removed:
            self.save(remaining)
        return removed


def format_reports(reports: Iterable[ErrorReport]) -> str:
    """Format reports as the body of an error-fixing task."""
    return "\n---\n".join(
        f"Error #{r.id}: {r.description}\nReported by: {r.username}\nTimestamp: {r.timestamp}\n"
        for r in reports
    )
