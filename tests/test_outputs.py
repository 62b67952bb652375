"""Tests for CI outputs."""

from __future__ import annotations

from pathlib import Path

from selfpatch.outputs import format_output, write_outputs


class TestFormatOutput:
    """Tests for format_output."""

    def test_multiline_form(self) -> None:
        text = format_output("CHANGELOG", "line one\nline two", delimiter="EOF")
        assert text == "CHANGELOG<<EOF\nline one\nline two\nEOF\n"

    def test_regenerates_colliding_delimiter(self) -> None:
        text = format_output("NAME", "a\nEOF\nb", delimiter="EOF")

        lines = text.splitlines()
        delimiter = lines[0].split("<<", 1)[1]
        assert delimiter != "EOF"
        assert lines[-1] == delimiter


class TestWriteOutputs:
    """Tests for write_outputs."""

    def test_no_path_skips(self) -> None:
        assert write_outputs(None, {"COMMIT_MESSAGE": "x"}) is False

    def test_appends_each_value(self, tmp_path: Path) -> None:
        path = tmp_path / "github_output"
        path.write_text("existing=1\n")

        assert write_outputs(path, {"COMMIT_MESSAGE": "feat: x", "CHANGELOG": "did x"})

        text = path.read_text()
        assert text.startswith("existing=1\n")
        assert "COMMIT_MESSAGE<<" in text
        assert "\nfeat: x\n" in text
        assert "CHANGELOG<<" in text
        assert "\ndid x\n" in text
