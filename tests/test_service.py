"""Tests for batch fix orchestration."""

from __future__ import annotations

from pathlib import Path

import pytest

from stanfix import service as service_module
from stanfix.config import Configuration, Rule
from stanfix.fixers import create_default_registry
from stanfix.issue import Issue
from stanfix.service import FixService, write_source

TWO_FUNCTIONS_PHP = """<?php


function first()
{
}
function second()
{
}
"""

RETURN_MESSAGE = "Function {name}() has no return type specified."


def write_php(tmp_path: Path, name: str, content: str) -> str:
    path = tmp_path / name
    path.write_text(content)
    return str(path)


def make_service(configuration: Configuration | None = None) -> FixService:
    return FixService(create_default_registry(configuration), configuration)


class TestFixIssues:
    """Tests for FixService.fix_issues()."""

    def test_bottom_up_processing_keeps_lines_valid(self, tmp_path: Path) -> None:
        """Test that every fix lands although earlier inserts shift lines."""
        file_path = write_php(tmp_path, "functions.php", TWO_FUNCTIONS_PHP)
        issues = [
            Issue(file_path, 4, RETURN_MESSAGE.format(name="first")),
            Issue(file_path, 7, RETURN_MESSAGE.format(name="second")),
        ]
        results = make_service().fix_issues(issues, TWO_FUNCTIONS_PHP)

        assert [r.issue.line for r in results] == [7, 4]
        assert all(r.is_success for r in results)

        final = results[-1].content
        assert final.count("\n") == TWO_FUNCTIONS_PHP.count("\n") + 6
        assert "/**\n * @return void\n */\nfunction first()" in final
        assert "/**\n * @return void\n */\nfunction second()" in final

    def test_each_fix_sees_previous_content(self, user_service_php: str) -> None:
        """Test that two diagnostics on one line build on each other."""
        issues = [
            Issue("UserService.php", 7, "Method UserService::getName() has no return type specified."),
            Issue(
                "UserService.php",
                7,
                "Method UserService::getName() has parameter $user with no type specified.",
            ),
        ]
        results = make_service().fix_issues(issues, user_service_php)
        assert all(r.is_success for r in results)
        assert (
            "    /**\n"
            "     * @return mixed\n"
            "     * @param mixed $user\n"
            "     */\n"
            "    public function getName($user)"
        ) in results[-1].content

    def test_line_shifts_with_existing_blocks(self, tmp_path: Path) -> None:
        """Test several diagnostics where some extend blocks and some create them."""
        content = (
            "<?php\n"
            "\n"
            "/**\n"
            " * Sum things.\n"
            " */\n"
            "function sum($a, $b)\n"
            "{\n"
            "    return $a + $b;\n"
            "}\n"
            "\n"
            "function log_it($m)\n"
            "{\n"
            "    echo $m;\n"
            "}\n"
            "\n"
            "/**\n"
            " * @param int $x\n"
            " */\n"
            "function twice($x)\n"
            "{\n"
            "    return $x * 2;\n"
            "}\n"
        )
        file_path = write_php(tmp_path, "math.php", content)
        issues = [
            Issue(file_path, 6, RETURN_MESSAGE.format(name="sum")),
            Issue(file_path, 6, "Function sum() has parameter $a with no type specified."),
            Issue(file_path, 11, RETURN_MESSAGE.format(name="log_it")),
            Issue(file_path, 19, RETURN_MESSAGE.format(name="twice")),
        ]
        results = make_service().fix_issues(issues, content)

        assert [r.issue.line for r in results] == [19, 11, 6, 6]
        assert all(r.is_success for r in results)
        assert results[-1].content == (
            "<?php\n"
            "\n"
            "/**\n"
            " * Sum things.\n"
            " * @return mixed\n"
            " * @param mixed $a\n"
            " */\n"
            "function sum($a, $b)\n"
            "{\n"
            "    return $a + $b;\n"
            "}\n"
            "\n"
            "/**\n"
            " * @return void\n"
            " */\n"
            "function log_it($m)\n"
            "{\n"
            "    echo $m;\n"
            "}\n"
            "\n"
            "/**\n"
            " * @param int $x\n"
            " * @return mixed\n"
            " */\n"
            "function twice($x)\n"
            "{\n"
            "    return $x * 2;\n"
            "}\n"
        )

    def test_unclaimed_issue(self) -> None:
        """Test that an issue no fixer claims becomes a failure."""
        results = make_service().fix_issues([Issue("a.php", 1, "Unknown diagnostic")], "<?php\n")
        assert results[0].is_failure
        assert results[0].description == "No strategy could fix this issue"
        assert results[0].content == "<?php\n"


class TestPolicy:
    """Tests for the fix / ignore / report policy."""

    def test_ignore_default_with_exact_fix_rule(self, tmp_path: Path) -> None:
        """Test that only the explicitly fixed diagnostic is processed."""
        file_path = write_php(tmp_path, "functions.php", TWO_FUNCTIONS_PHP)
        fix_message = RETURN_MESSAGE.format(name="second")
        config = Configuration(rules={fix_message: Rule("fix")}, default=Rule("ignore"))
        issues = [
            Issue(file_path, 4, RETURN_MESSAGE.format(name="first")),
            Issue(file_path, 7, fix_message),
        ]

        report = make_service(config).fix_all(issues)[file_path]
        assert report.fixed_count == 1
        assert [i.line for i in report.ignored_issues] == [4]
        assert "function first()" in report.final_content
        assert "/**\n * @return void\n */\nfunction first()" not in report.final_content

    def test_reported_issues_are_not_fixed(self, tmp_path: Path) -> None:
        """Test that "report" diagnostics are listed but never dispatched."""
        file_path = write_php(tmp_path, "functions.php", TWO_FUNCTIONS_PHP)
        config = Configuration(rules={"/has no return type/": Rule("report")})
        issues = [Issue(file_path, 4, RETURN_MESSAGE.format(name="first"))]

        service = make_service(config)
        reports = service.fix_all(issues)
        report = reports[file_path]
        assert report.reported_issues == issues
        assert report.unfixed_issues == []
        assert not report.has_changes
        assert report.final_content == TWO_FUNCTIONS_PHP
        assert service.reported_issues(reports) == issues


class TestFixAll:
    """Tests for FixService.fix_all()."""

    def test_missing_file_excluded_from_progress(self, tmp_path: Path) -> None:
        """Test that missing files are skipped before counting."""
        existing = write_php(tmp_path, "functions.php", TWO_FUNCTIONS_PHP)
        missing = str(tmp_path / "Missing.php")
        issues = [
            Issue(missing, 3, RETURN_MESSAGE.format(name="gone")),
            Issue(existing, 4, RETURN_MESSAGE.format(name="first")),
        ]
        calls: list[tuple[int, int, str]] = []

        reports = make_service().fix_all(
            issues, lambda processed, total, path: calls.append((processed, total, path))
        )
        assert list(reports) == [existing]
        assert calls == [(1, 1, existing)]

    def test_latin1_file_is_processed(self, tmp_path: Path) -> None:
        """Test that a file that is not valid UTF-8 is fixed like any other."""
        path = tmp_path / "legacy.php"
        path.write_bytes(b"<?php\n// caf\xe9\nfunction first()\n{\n}\n")
        issues = [Issue(str(path), 3, RETURN_MESSAGE.format(name="first"))]
        service = make_service()

        reports = service.fix_all(issues)
        report = reports[str(path)]
        assert report.has_changes
        assert service.statistics(reports)["total_issues"] == 1

        write_source(path, report.final_content)
        assert path.read_bytes() == (
            b"<?php\n// caf\xe9\n/**\n * @return void\n */\nfunction first()\n{\n}\n"
        )

    def test_progress_counts_every_readable_file(self, tmp_path: Path) -> None:
        """Test that progress totals include files with undecodable bytes."""
        first = write_php(tmp_path, "a.php", TWO_FUNCTIONS_PHP)
        second = tmp_path / "b.php"
        second.write_bytes(b"<?php\n// caf\xe9\nfunction second()\n{\n}\n")
        issues = [
            Issue(first, 4, RETURN_MESSAGE.format(name="first")),
            Issue(str(second), 3, RETURN_MESSAGE.format(name="second")),
        ]
        calls: list[tuple[int, int, str]] = []

        make_service().fix_all(
            issues, lambda processed, total, path: calls.append((processed, total, path))
        )
        assert calls == [(1, 2, first), (2, 2, str(second))]

    def test_unreadable_file_excluded_from_progress(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a file failing to read is skipped before counting."""
        readable = write_php(tmp_path, "a.php", TWO_FUNCTIONS_PHP)
        locked = write_php(tmp_path, "locked.php", TWO_FUNCTIONS_PHP)

        def read(file_path: str) -> str:
            if file_path == locked:
                raise PermissionError(13, "Permission denied")
            return TWO_FUNCTIONS_PHP

        monkeypatch.setattr(service_module, "read_source", read)
        issues = [
            Issue(locked, 4, RETURN_MESSAGE.format(name="first")),
            Issue(readable, 4, RETURN_MESSAGE.format(name="first")),
        ]
        calls: list[tuple[int, int, str]] = []

        reports = make_service().fix_all(
            issues, lambda processed, total, path: calls.append((processed, total, path))
        )
        assert list(reports) == [readable]
        assert calls == [(1, 1, readable)]

    def test_files_are_not_written(self, tmp_path: Path) -> None:
        """Test that the service only computes new content."""
        file_path = write_php(tmp_path, "functions.php", TWO_FUNCTIONS_PHP)
        reports = make_service().fix_all([Issue(file_path, 4, RETURN_MESSAGE.format(name="first"))])
        assert reports[file_path].has_changes
        assert Path(file_path).read_text() == TWO_FUNCTIONS_PHP

    def test_excluded_paths_are_dropped(self, tmp_path: Path) -> None:
        """Test that exclude_paths removes files from processing."""
        kept = write_php(tmp_path, "kept.php", TWO_FUNCTIONS_PHP)
        legacy_dir = tmp_path / "legacy"
        legacy_dir.mkdir()
        dropped = write_php(legacy_dir, "old.php", TWO_FUNCTIONS_PHP)
        config = Configuration(exclude_paths=["legacy/"])
        service = FixService(create_default_registry(config), config, base_dir=tmp_path)

        issues = [
            Issue(kept, 4, RETURN_MESSAGE.format(name="first")),
            Issue(dropped, 4, RETURN_MESSAGE.format(name="first")),
        ]
        assert list(service.fix_all(issues)) == [kept]

    def test_statistics(self, tmp_path: Path) -> None:
        """Test the run summary counts each outcome once."""
        file_path = write_php(tmp_path, "functions.php", TWO_FUNCTIONS_PHP)
        config = Configuration(
            rules={
                RETURN_MESSAGE.format(name="second"): Rule("ignore"),
                "/Reported/": Rule("report"),
            }
        )
        issues = [
            Issue(file_path, 4, RETURN_MESSAGE.format(name="first")),
            Issue(file_path, 7, RETURN_MESSAGE.format(name="second")),
            Issue(file_path, 5, "Reported thing"),
            Issue(file_path, 6, "Unknown diagnostic"),
        ]
        service = make_service(config)
        reports = service.fix_all(issues)

        assert service.statistics(reports) == {
            "total_files": 1,
            "files_fixed": 1,
            "total_issues": 4,
            "issues_fixed": 1,
            "issues_failed": 1,
            "issues_ignored": 1,
            "issues_reported": 1,
        }
        assert [i.message for i in service.unfixed_issues(reports)] == ["Unknown diagnostic"]
        assert len(service.ignored_issues(reports)) == 1

    def test_group_issues_by_file(self) -> None:
        """Test grouping keeps the order within each file."""
        issues = [Issue("a.php", 9, "x"), Issue("b.php", 1, "y"), Issue("a.php", 2, "z")]
        grouped = make_service().group_issues_by_file(issues)
        assert list(grouped) == ["a.php", "b.php"]
        assert [i.line for i in grouped["a.php"]] == [9, 2]
