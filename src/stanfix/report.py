"""PHPStan JSON report loading.

Understands both shapes PHPStan's ``--error-format=json`` output takes:

- ``{"files": {"<path>": {"messages": [{...}, ...]}}}``
- ``{"messages": [{"file": "<path>", ...}, ...]}``

Malformed entries (non-string message, non-numeric line) are skipped and
counted in an info log line.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from stanfix.issue import Issue

logger = logging.getLogger(__name__)


class ReportParseError(ValueError):
    """Raised when a PHPStan report cannot be read or decoded."""

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(message)


def load_report(path: Path) -> list[Issue]:
    """Load Issues from a PHPStan JSON report file.

    Args:
        path: Path to the JSON report.

    Returns:
        Issues in report order.

    Raises:
        ReportParseError: If the file is missing, unreadable or not JSON.
    """
    if not path.is_file():
        raise ReportParseError(f"PHPStan JSON file not found: {path}", source=str(path))
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ReportParseError(
            f"Could not read PHPStan JSON file: {path}: {e}", source=str(path)
        ) from e
    return parse_report(text, source=str(path))


def parse_report(text: str, source: str | None = None) -> list[Issue]:
    """Parse PHPStan JSON output into Issues.

    Args:
        text: Raw JSON text.
        source: Where the text came from, for error messages.

    Returns:
        Issues in report order.

    Raises:
        ReportParseError: If the text is not valid JSON.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ReportParseError(f"Invalid JSON in PHPStan output: {e}", source=source) from e

    if not isinstance(data, dict):
        raise ReportParseError("PHPStan output must be a JSON object", source=source)

    issues: list[Issue] = []
    files = data.get("files")
    messages = data.get("messages")

    if isinstance(files, dict):
        for file_path, file_data in files.items():
            if not isinstance(file_data, dict):
                continue
            entries = file_data.get("messages") or []
            if not isinstance(entries, list):
                continue
            for entry in entries:
                issue = _issue_from_message(file_path, entry)
                if issue is not None:
                    issues.append(issue)
    elif isinstance(messages, list):
        for entry in messages:
            if not isinstance(entry, dict):
                continue
            file_path = entry.get("file")
            if not isinstance(file_path, str):
                continue
            issue = _issue_from_message(file_path, entry)
            if issue is not None:
                issues.append(issue)

    logger.debug("Parsed %d issue(s) from %s", len(issues), source or "PHPStan output")
    skipped = total_errors(data) - len(issues)
    if skipped > 0:
        logger.info("Skipped %d report message(s) without a usable file line", skipped)
    return issues


def total_errors(data: dict[str, Any]) -> int:
    """Return the report's file error count.

    Uses ``totals.file_errors`` when present, otherwise counts messages.
    """
    totals = data.get("totals")
    if isinstance(totals, dict) and isinstance(totals.get("file_errors"), int):
        return int(totals["file_errors"])

    count = 0
    files = data.get("files")
    if isinstance(files, dict):
        for file_data in files.values():
            if isinstance(file_data, dict) and isinstance(file_data.get("messages"), list):
                count += len(file_data["messages"])
    return count


def _issue_from_message(file_path: str, entry: Any) -> Issue | None:
    if not isinstance(entry, dict):
        return None

    message = entry.get("message")
    if not isinstance(message, str):
        return None

    line = _as_int(entry.get("line"))
    if line is None:
        return None

    identifier = entry.get("identifier")
    return Issue(
        file_path=_normalize_path(file_path),
        line=line,
        message=message,
        identifier=identifier if isinstance(identifier, str) else None,
        column=_as_int(entry.get("column")),
    )


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


def _normalize_path(file_path: str) -> str:
    """Resolve paths that exist on disk; keep others verbatim."""
    path = Path(file_path)
    if not path.exists():
        return file_path
    return str(path.resolve())
