"""Batch fix orchestration for stanfix.

Groups diagnostics by file, applies the configured policy to each, and feeds
the "fix" diagnostics through the registry one at a time. Within a file the
diagnostics are processed from the bottom up, so an edit can only shift lines
below any line still waiting to be processed; each fixer receives the content
produced by the previous successful fix.

The service reads files but never writes them. Writing (or diffing) the
final content is left to the caller, through write_source().
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from stanfix.config import Configuration
from stanfix.fixers.base import FixResult
from stanfix.fixers.registry import FixerRegistry
from stanfix.issue import Issue

logger = logging.getLogger(__name__)

# progress(processed_files, total_files, file_path)
ProgressCallback = Callable[[int, int, str], None]


def read_source(file_path: str | Path) -> str:
    """Read a PHP file without translating newlines.

    Bytes that are not valid UTF-8 are carried as surrogate escapes, so a
    Latin-1 file survives a read and write_source() unchanged.
    """
    with open(file_path, encoding="utf-8", errors="surrogateescape", newline="") as f:
        return f.read()


def write_source(file_path: str | Path, content: str) -> None:
    """Write content read with read_source() back byte for byte."""
    with open(file_path, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
        f.write(content)


@dataclass
class FileFixReport:
    """Outcome of processing every diagnostic of one file.

    Attributes:
        file_path: The file the diagnostics belong to.
        issues: Diagnostics in their original order.
        results: One FixResult per diagnostic, in processing order
            (descending line).
        original_content: File content before any fix.
        final_content: Content after the last successful fix, or the original
            content when nothing succeeded.
        unfixed_issues: Diagnostics whose fix failed.
        reported_issues: Diagnostics the policy marked "report".
        ignored_issues: Diagnostics the policy marked "ignore".
    """

    file_path: str
    issues: list[Issue]
    results: list[FixResult]
    original_content: str
    final_content: str
    unfixed_issues: list[Issue] = field(default_factory=list)
    reported_issues: list[Issue] = field(default_factory=list)
    ignored_issues: list[Issue] = field(default_factory=list)

    @property
    def fixed_count(self) -> int:
        return sum(1 for result in self.results if result.is_success)

    @property
    def has_changes(self) -> bool:
        return self.fixed_count > 0


class FixService:
    """Apply fixes for a batch of diagnostics.

    Attributes:
        registry: Fixer registry used for dispatch.
        configuration: Policy and path configuration; defaults apply when
            omitted (every diagnostic is fixed, every path allowed).
        base_dir: Project directory used for relative path patterns.
    """

    def __init__(
        self,
        registry: FixerRegistry,
        configuration: Configuration | None = None,
        base_dir: Path | None = None,
    ) -> None:
        self.registry = registry
        self.configuration = configuration or Configuration()
        self.base_dir = base_dir

    def group_issues_by_file(self, issues: Iterable[Issue]) -> dict[str, list[Issue]]:
        """Group diagnostics by file path, keeping their relative order.

        Files rejected by include_paths/exclude_paths are dropped.
        """
        grouped: dict[str, list[Issue]] = {}
        for issue in issues:
            if not self.configuration.is_path_allowed(issue.file_path, self.base_dir):
                continue
            grouped.setdefault(issue.file_path, []).append(issue)
        return grouped

    def fix_issue(self, issue: Issue, content: str) -> FixResult | None:
        """Apply the policy to one diagnostic and dispatch it if it is "fix".

        Args:
            issue: The diagnostic.
            content: Current file content.

        Returns:
            An ignored/reported result, the dispatched fixer's result, or
            None if no fixer claims the diagnostic.
        """
        rule = self.configuration.rule_for(issue.message)
        if rule.is_ignore:
            return FixResult.ignored(issue, content)
        if rule.is_report:
            return FixResult.reported(issue, content)
        return self.registry.dispatch(issue, content)

    def fix_issues(self, issues: Iterable[Issue], content: str) -> list[FixResult]:
        """Fix every diagnostic of one file.

        Diagnostics are processed by descending line (stable for equal lines)
        and each one sees the content produced by the previous success.

        Args:
            issues: Diagnostics of a single file.
            content: Original file content.

        Returns:
            One FixResult per diagnostic, in processing order.
        """
        results: list[FixResult] = []
        current = content

        for issue in sorted(issues, key=lambda item: item.line, reverse=True):
            result = self.fix_issue(issue, current)
            if result is None:
                result = FixResult.failure(issue, current, "No strategy could fix this issue")
            elif result.is_success:
                current = result.content
            results.append(result)

        return results

    def fix_all(
        self,
        issues: Iterable[Issue],
        progress: ProgressCallback | None = None,
    ) -> dict[str, FileFixReport]:
        """Fix every diagnostic of every file.

        Every file is read before the first progress call, so files that do
        not exist or cannot be read never count towards the total.

        Args:
            issues: All diagnostics.
            progress: Called once per processed file with
                ``(processed, total, file_path)``.

        Returns:
            Mapping of file path to its FileFixReport.
        """
        grouped = self.group_issues_by_file(issues)
        sources: dict[str, str] = {}
        for file_path in grouped:
            if not Path(file_path).is_file():
                logger.debug("Skipping missing file %s", file_path)
                continue
            try:
                sources[file_path] = read_source(file_path)
            except OSError as e:
                logger.warning("Skipping unreadable file %s: %s", file_path, e)

        total = len(sources)
        reports: dict[str, FileFixReport] = {}

        for processed, (file_path, original) in enumerate(sources.items(), start=1):
            file_issues = grouped[file_path]
            results = self.fix_issues(file_issues, original)
            reports[file_path] = self._build_report(file_path, file_issues, results, original)

            if progress is not None:
                progress(processed, total, file_path)

        return reports

    @staticmethod
    def _build_report(
        file_path: str,
        issues: list[Issue],
        results: list[FixResult],
        original: str,
    ) -> FileFixReport:
        report = FileFixReport(
            file_path=file_path,
            issues=issues,
            results=results,
            original_content=original,
            final_content=original,
        )
        for result in results:
            if result.is_success:
                report.final_content = result.content
            elif result.is_ignored:
                report.ignored_issues.append(result.issue)
            elif result.is_reported:
                report.reported_issues.append(result.issue)
            else:
                report.unfixed_issues.append(result.issue)
        return report

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------

    @staticmethod
    def statistics(reports: Mapping[str, FileFixReport]) -> dict[str, int]:
        """Summarize a run.

        ``issues_failed`` counts diagnostics that were neither fixed, ignored
        nor reported.
        """
        stats = {
            "total_files": len(reports),
            "files_fixed": 0,
            "total_issues": 0,
            "issues_fixed": 0,
            "issues_failed": 0,
            "issues_ignored": 0,
            "issues_reported": 0,
        }
        for report in reports.values():
            if report.has_changes:
                stats["files_fixed"] += 1
            total = len(report.issues)
            ignored = len(report.ignored_issues)
            reported = len(report.reported_issues)
            stats["total_issues"] += total
            stats["issues_fixed"] += report.fixed_count
            stats["issues_ignored"] += ignored
            stats["issues_reported"] += reported
            stats["issues_failed"] += total - report.fixed_count - ignored - reported
        return stats

    @staticmethod
    def unfixed_issues(reports: Mapping[str, FileFixReport]) -> list[Issue]:
        return [issue for report in reports.values() for issue in report.unfixed_issues]

    @staticmethod
    def reported_issues(reports: Mapping[str, FileFixReport]) -> list[Issue]:
        return [issue for report in reports.values() for issue in report.reported_issues]

    @staticmethod
    def ignored_issues(reports: Mapping[str, FileFixReport]) -> list[Issue]:
        return [issue for report in reports.values() for issue in report.ignored_issues]
