"""Structured record of a pipeline run.

Each run writes one JSON file with its phase transitions, the proposer
call, per-job outcomes and errors, and can print a short summary.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

logger = logging.getLogger(__name__)


@dataclass
class RunStats:
    """Counters for one run."""

    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    files_loaded: int = 0
    tasks_loaded: int = 0
    directive_chars: int = 0
    response_chars: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    jobs_proposed: int = 0
    jobs_applied: int = 0
    jobs_skipped: int = 0
    files_written: int = 0
    reports_processed: int = 0

    @property
    def duration_seconds(self) -> float:
        """Get duration in seconds."""
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
            "files_loaded": self.files_loaded,
            "tasks_loaded": self.tasks_loaded,
            "directive_chars": self.directive_chars,
            "response_chars": self.response_chars,
            "tokens": {"input": self.input_tokens, "output": self.output_tokens},
            "jobs": {
                "proposed": self.jobs_proposed,
                "applied": self.jobs_applied,
                "skipped": self.jobs_skipped,
            },
            "files_written": self.files_written,
            "reports_processed": self.reports_processed,
        }


class RunLogger:
    """Collects run events and writes them to a JSON file."""

    def __init__(self, log_dir: Optional[Path] = None):
        """Initialize the run logger.

        Args:
            log_dir: Directory for run logs. Defaults to logs/runs.
        """
        self.log_dir = Path(log_dir) if log_dir else Path("logs/runs")
        self.stats = RunStats()
        self.log_file: Optional[Path] = None

        run_id = self.stats.start_time.strftime("%Y%m%d_%H%M%S")
        self.log_data: dict[str, Any] = {
            "run": {"id": run_id, "start_time": self.stats.start_time.isoformat()},
            "phases": [],
            "jobs": [],
            "errors": [],
        }

    def log_phase(self, state: str) -> None:
        """Record entry into a pipeline state."""
        self.log_data["phases"].append({
            "state": state,
            "timestamp": datetime.now().isoformat(),
        })
        logger.debug(f"Pipeline state: {state}")

    def log_job(self, index: int, description: str, status: str, reason: str = "") -> None:
        """Record the outcome of one modify-job."""
        entry = {"index": index, "job": description, "status": status}
        if reason:
            entry["reason"] = reason
        self.log_data["jobs"].append(entry)

    def log_error(self, error: str, context: Optional[dict] = None) -> None:
        """Log an error."""
        self.log_data["errors"].append({
            "timestamp": datetime.now().isoformat(),
            "error": error,
            "context": context or {},
        })
        logger.error(f"Run error: {error}")

    def finalize(self, state: str, commit_message: str = "") -> Optional[Path]:
        """Finalize the log and write it to disk.

        Returns:
            Path of the written log file, or None if writing failed.
        """
        self.stats.end_time = datetime.now()
        self.log_data["run"]["end_time"] = self.stats.end_time.isoformat()
        self.log_data["run"]["final_state"] = state
        self.log_data["run"]["commit_message"] = commit_message
        self.log_data["stats"] = self.stats.to_dict()

        log_file = self.log_dir / f"{self.log_data['run']['id']}.json"
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(log_file, "w", encoding="utf-8") as f:
                json.dump(self.log_data, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to write run log: {e}")
            return None

        self.log_file = log_file
        logger.info(f"Run log written to: {log_file}")
        return log_file

    def print_summary(self, console: Optional[Console] = None) -> None:
        """Print a summary table of the run."""
        console = console or Console()
        stats = self.stats

        table = Table(title="Run Summary", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value")
        table.add_row("Final state", str(self.log_data["run"].get("final_state", "unknown")))
        table.add_row("Duration", f"{stats.duration_seconds:.1f}s")
        table.add_row("Files loaded", str(stats.files_loaded))
        table.add_row("Response size", f"{stats.response_chars:,} characters")
        table.add_row("Tokens", f"{stats.input_tokens:,} in, {stats.output_tokens:,} out")
        table.add_row("Jobs", f"{stats.jobs_applied}/{stats.jobs_proposed} applied, {stats.jobs_skipped} skipped")
        table.add_row("Files written", str(stats.files_written))
        if stats.reports_processed:
            table.add_row("Reports processed", str(stats.reports_processed))
        if self.log_file:
            table.add_row("Log file", str(self.log_file))
        console.print(table)
