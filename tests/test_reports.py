"""Tests for the error report queue."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from selfpatch.reports import (
    STATUS_PENDING,
    STATUS_PROCESSED,
    ErrorReport,
    ReportQueue,
    format_reports,
)


@pytest.fixture
def queue(tmp_path: Path) -> ReportQueue:
    return ReportQueue(tmp_path / "user_error_reports.json")


class TestReportQueue:
    """Tests for ReportQueue."""

    def test_missing_file_is_empty(self, queue: ReportQueue) -> None:
        assert queue.load() == []
        assert queue.pending() == []

    def test_add_persists_pending_report(self, queue: ReportQueue) -> None:
        report = queue.add("  /notes crashes  ", "alice")

        stored = json.loads(queue.path.read_text())
        assert len(stored) == 1
        assert stored[0]["id"] == report.id
        assert stored[0]["description"] == "/notes crashes"
        assert stored[0]["username"] == "alice"
        assert stored[0]["status"] == STATUS_PENDING
        assert "fixedAt" not in stored[0]

    def test_add_defaults_username(self, queue: ReportQueue) -> None:
        assert queue.add("broken", "").username == "user"

    def test_add_rejects_blank_description(self, queue: ReportQueue) -> None:
        with pytest.raises(ValueError):
            queue.add("   ")
        assert not queue.path.exists()

    def test_ids_are_unique(self, queue: ReportQueue) -> None:
        first = queue.add("one")
        second = queue.add("two")
        assert first.id != second.id

    def test_mark_processed(self, queue: ReportQueue) -> None:
        first = queue.add("one")
        second = queue.add("two")

        assert queue.mark_processed([first.id]) == 1

        assert [r.id for r in queue.pending()] == [second.id]
        processed = queue.list(STATUS_PROCESSED)
        assert [r.id for r in processed] == [first.id]
        assert processed[0].fixed_at

    def test_mark_processed_is_idempotent(self, queue: ReportQueue) -> None:
        report = queue.add("one")
        queue.mark_processed([report.id])

        assert queue.mark_processed([report.id]) == 0
        assert queue.mark_processed([]) == 0

    def test_clear_processed(self, queue: ReportQueue) -> None:
        first = queue.add("one")
        queue.add("two")
        queue.mark_processed([first.id])

        assert queue.clear_processed() == 1
        assert [r.description for r in queue.load()] == ["two"]

    def test_invalid_json_is_ignored(self, queue: ReportQueue) -> None:
        queue.path.write_text("{not json")
        assert queue.load() == []

    def test_non_list_is_ignored(self, queue: ReportQueue) -> None:
        queue.path.write_text('{"id": "x"}')
        assert queue.load() == []

    def test_list_sorted_by_timestamp(self, queue: ReportQueue) -> None:
        queue.save([
            ErrorReport("b", "later", "u", "2025-01-02T00:00:00+00:00"),
            ErrorReport("a", "earlier", "u", "2025-01-01T00:00:00+00:00"),
        ])

        assert [r.id for r in queue.list()] == ["a", "b"]


class TestErrorReport:
    """Tests for ErrorReport serialization."""

    def test_reads_fixed_at_key(self) -> None:
        report = ErrorReport.from_dict({
            "id": "abc", "description": "d", "username": "u",
            "timestamp": "t", "status": "processed", "fixedAt": "later",
        })

        assert report.fixed_at == "later"
        assert report.to_dict()["fixedAt"] == "later"

    def test_short_id(self) -> None:
        assert ErrorReport("0123456789", "d", "u", "t").short_id == "01234567"


class TestFormatReports:
    """Tests for format_reports."""

    def test_blocks_joined_with_separator(self) -> None:
        reports = [
            ErrorReport("1", "first bug", "alice", "t1"),
            ErrorReport("2", "second bug", "bob", "t2"),
        ]

        text = format_reports(reports)

        assert text == (
            "Error #1: first bug\nReported by: alice\nTimestamp: t1\n"
            "\n---\n"
            "Error #2: second bug\nReported by: bob\nTimestamp: t2\n"
        )
