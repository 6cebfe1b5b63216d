"""Base classes for stanfix fixers.

Provides the FixResult value returned by every fix attempt and the BaseFixer
contract that built-in and custom fixers implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from stanfix.analysis.docblock import AnnotationEntry, DocblockEditor
from stanfix.analysis.php_source import PhpFileAnalyzer, SourceTree
from stanfix.issue import Issue

Outcome = Literal["success", "failure", "ignored", "reported"]

Annotations = dict[str, list[AnnotationEntry]]


@dataclass(frozen=True)
class FixResult:
    """Result of one fix attempt for one Issue.

    Attributes:
        issue: The Issue this result belongs to.
        outcome: One of "success", "failure", "ignored", "reported".
        content: File content after the attempt. Equal to the input content
            for every outcome except success.
        description: Human-readable summary of what happened.
        changes: Individual change notes (success only).
    """

    issue: Issue
    outcome: Outcome
    content: str
    description: str | None = None
    changes: tuple[str, ...] = ()

    @classmethod
    def success(
        cls,
        issue: Issue,
        content: str,
        description: str | None = None,
        changes: tuple[str, ...] | list[str] = (),
    ) -> FixResult:
        return cls(issue, "success", content, description, tuple(changes))

    @classmethod
    def failure(cls, issue: Issue, content: str, reason: str | None = None) -> FixResult:
        return cls(
            issue,
            "failure",
            content,
            reason or "Could not determine how to fix this issue",
        )

    @classmethod
    def ignored(cls, issue: Issue, content: str) -> FixResult:
        return cls(issue, "ignored", content, "Ignored by configuration")

    @classmethod
    def reported(cls, issue: Issue, content: str) -> FixResult:
        return cls(issue, "reported", content, "Reported only (not fixed) by configuration")

    @property
    def is_success(self) -> bool:
        return self.outcome == "success"

    @property
    def is_failure(self) -> bool:
        return self.outcome == "failure"

    @property
    def is_ignored(self) -> bool:
        return self.outcome == "ignored"

    @property
    def is_reported(self) -> bool:
        return self.outcome == "reported"

    def change_description(self) -> str:
        """Describe the result in one line."""
        if self.description is not None:
            return self.description

        if self.is_success:
            base = f"Fixed issue at line {self.issue.line}"
        else:
            base = f"Could not fix issue at line {self.issue.line}"
        if self.changes:
            return f"{base} ({', '.join(self.changes)})"
        return base


class BaseFixer(ABC):
    """Abstract base class for all fixers.

    A fixer claims Issues through can_fix() and edits file content in fix().
    fix() must not raise for expected conditions (unparsable source, missing
    declaration, annotation already present); those are failure results.
    Fixers never touch the filesystem.

    Attributes:
        analyzer: PHP declaration analyzer.
        editor: Docblock editor.
    """

    # Unique fixer name (must be set by subclasses)
    name: str = ""
    description: str = ""
    # Higher runs first
    priority: int = 0

    def __init__(
        self,
        analyzer: PhpFileAnalyzer | None = None,
        editor: DocblockEditor | None = None,
    ) -> None:
        """Initialize fixer.

        Args:
            analyzer: PHP declaration analyzer; a new one is created if omitted.
            editor: Docblock editor; a new one is created if omitted.
        """
        self.analyzer = analyzer or PhpFileAnalyzer()
        self.editor = editor or DocblockEditor()

    @abstractmethod
    def can_fix(self, issue: Issue) -> bool:
        """Check if this fixer handles the given issue.

        Must be a pure function of the issue.

        Args:
            issue: The issue to check.

        Returns:
            True if this fixer claims the issue.
        """

    @abstractmethod
    def fix(self, issue: Issue, content: str) -> FixResult:
        """Attempt to fix an issue in the given file content.

        Args:
            issue: The issue to fix.
            content: Current file content, including edits made for earlier
                issues in the same file.

        Returns:
            FixResult carrying the new content on success, or the unchanged
            content and a reason on failure.
        """

    def _parse_source(self, content: str) -> SourceTree | None:
        return self.analyzer.parse(content)

    def _annotate(
        self,
        issue: Issue,
        content: str,
        anchor_line: int,
        tag: str,
        value: str,
        *,
        exists: Callable[[Annotations], bool],
        exists_reason: str,
        description: str,
    ) -> FixResult:
        """Add ``@tag value`` to the docblock above a declaration.

        Extends the existing docblock when one ends right above the
        declaration, otherwise inserts a new block indented like the
        declaration. Line endings of the content are preserved.

        Args:
            issue: Issue being fixed.
            content: Current file content.
            anchor_line: 1-based line of the declaration.
            tag: Tag to add, without ``@``.
            value: Tag value (may be empty).
            exists: Predicate over the parsed existing block; when it returns
                True nothing is added.
            exists_reason: Failure reason used when ``exists`` is True.
            description: Success description.

        Returns:
            FixResult for the edit.
        """
        newline = "\r\n" if "\r\n" in content else "\n"
        lines = content.split(newline)
        anchor_index = anchor_line - 1
        if anchor_index < 0 or anchor_index >= len(lines):
            return FixResult.failure(issue, content, f"Line {anchor_line} is outside the file")

        docblock = self.editor.extract(lines, anchor_index)
        if docblock is not None:
            if exists(self.editor.parse(docblock.text)):
                return FixResult.failure(issue, content, exists_reason)
            updated = self.editor.add_annotation(docblock.text, tag, value)
            lines[docblock.start_line : docblock.end_line + 1] = updated.split("\n")
        else:
            anchor = lines[anchor_index]
            indent = anchor[: len(anchor) - len(anchor.lstrip())]
            block = self.editor.add_annotation("", tag, value)
            lines[anchor_index:anchor_index] = [indent + line for line in block.split("\n")]

        annotation = f"@{tag} {value}" if value else f"@{tag}"
        return FixResult.success(
            issue,
            newline.join(lines),
            description,
            [f"Added {annotation} at line {anchor_line}"],
        )
