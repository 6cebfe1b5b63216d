"""Tests for PHPStan JSON report loading."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from conftest import write_report

from stanfix.issue import Issue
from stanfix.report import ReportParseError, load_report, parse_report, total_errors


class TestParseReport:
    """Tests for parse_report()."""

    def test_files_shape(self) -> None:
        """Test the ``files`` report shape."""
        text = json.dumps(
            {
                "files": {
                    "/nonexistent/src/A.php": {
                        "messages": [
                            {
                                "message": "Method A::a() has no return type specified.",
                                "line": 7,
                                "identifier": "missingType.return",
                            },
                            {"message": "Second", "line": 9},
                        ]
                    }
                }
            }
        )
        issues = parse_report(text)
        assert issues == [
            Issue(
                "/nonexistent/src/A.php",
                7,
                "Method A::a() has no return type specified.",
                identifier="missingType.return",
            ),
            Issue("/nonexistent/src/A.php", 9, "Second"),
        ]

    def test_messages_shape(self) -> None:
        """Test the flat ``messages`` report shape."""
        text = json.dumps(
            {
                "messages": [
                    {"file": "/nonexistent/B.php", "line": "3", "message": "Hello", "column": 4},
                    {"line": 5, "message": "No file"},
                ]
            }
        )
        assert parse_report(text) == [Issue("/nonexistent/B.php", 3, "Hello", column=4)]

    def test_malformed_entries_are_skipped(self) -> None:
        """Test that entries without a usable message or line are dropped."""
        text = json.dumps(
            {
                "files": {
                    "/nonexistent/A.php": {
                        "messages": [
                            {"message": 42, "line": 1},
                            {"message": "No line"},
                            {"message": "Bad line", "line": "twelve"},
                            {"message": "Bool line", "line": True},
                            "not an object",
                            {"message": "Kept", "line": 2},
                        ]
                    }
                }
            }
        )
        assert [issue.message for issue in parse_report(text)] == ["Kept"]

    def test_existing_paths_are_resolved(self, tmp_path: Path) -> None:
        """Test that paths of existing files are made absolute."""
        php_file = tmp_path / "A.php"
        php_file.write_text("<?php\n")
        text = json.dumps({"files": {str(php_file): {"messages": [{"message": "x", "line": 1}]}}})
        assert parse_report(text)[0].file_path == str(php_file.resolve())

    def test_invalid_json(self) -> None:
        """Test that invalid JSON raises ReportParseError."""
        with pytest.raises(ReportParseError, match="Invalid JSON"):
            parse_report("{not json", source="phpstan")

    def test_non_object_root(self) -> None:
        """Test that a JSON array is rejected."""
        with pytest.raises(ReportParseError, match="must be a JSON object"):
            parse_report("[]")

    def test_empty_report(self) -> None:
        """Test that a report without errors yields no issues."""
        assert parse_report(json.dumps({"totals": {"file_errors": 0}, "files": []})) == []


class TestLoadReport:
    """Tests for load_report(), total_errors() and skipped-message logging."""

    def test_load_report(self, tmp_path: Path) -> None:
        """Test loading a report file."""
        report = write_report(
            tmp_path / "phpstan.json",
            {"/nonexistent/A.php": [{"message": "m", "line": 3}]},
        )
        assert load_report(report) == [Issue("/nonexistent/A.php", 3, "m")]

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing report raises ReportParseError."""
        with pytest.raises(ReportParseError, match="not found") as exc_info:
            load_report(tmp_path / "missing.json")
        assert exc_info.value.source == str(tmp_path / "missing.json")

    def test_total_errors(self) -> None:
        """Test the error count with and without totals."""
        assert total_errors({"totals": {"file_errors": 3}}) == 3
        assert total_errors({"files": {"a": {"messages": [{}, {}]}, "b": {"messages": [{}]}}}) == 3
        assert total_errors({}) == 0

    def test_skipped_messages_are_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that messages dropped for lack of a line are counted in the log."""
        text = json.dumps(
            {
                "totals": {"errors": 0, "file_errors": 3},
                "files": {
                    "/nonexistent/A.php": {
                        "messages": [
                            {"message": "kept", "line": 3},
                            {"message": "no line", "line": None},
                            {"message": "bad line", "line": "n/a"},
                        ]
                    }
                },
            }
        )
        with caplog.at_level(logging.INFO, logger="stanfix.report"):
            issues = parse_report(text)
        assert [i.message for i in issues] == ["kept"]
        assert "Skipped 2 report message(s) without a usable file line" in caplog.text

    def test_complete_report_logs_nothing(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that no skip line is logged when every message was kept."""
        text = json.dumps(
            {
                "totals": {"file_errors": 1},
                "files": {"A.php": {"messages": [{"message": "m", "line": 1}]}},
            }
        )
        with caplog.at_level(logging.INFO, logger="stanfix.report"):
            parse_report(text)
        assert "Skipped" not in caplog.text
