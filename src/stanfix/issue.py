"""Diagnostic records for stanfix.

An Issue is one PHPStan diagnostic: a file, a 1-based line and the message
text. The helpers in this module pull names and types out of the loosely
structured message text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class Issue:
    """A single PHPStan diagnostic.

    Issues are immutable and never deduplicated: two diagnostics on the same
    line are two Issues.

    Attributes:
        file_path: Path of the file the diagnostic belongs to.
        line: 1-based line number reported by PHPStan.
        message: Diagnostic message text.
        identifier: PHPStan error identifier (e.g. "missingType.return").
        column: Column reported by PHPStan, if any.
    """

    file_path: str
    line: int
    message: str
    identifier: str | None = None
    column: int | None = None

    def matches_pattern(self, pattern: str | re.Pattern[str]) -> bool:
        """Search the message for a pattern.

        Args:
            pattern: Compiled pattern, or a pattern string which is compiled
                case-insensitively.

        Returns:
            True if the pattern is found anywhere in the message.
        """
        if isinstance(pattern, str):
            return re.search(pattern, self.message, re.IGNORECASE) is not None
        return pattern.search(self.message) is not None

    def extract_property_name(self) -> str | None:
        """Return the property name mentioned in the message, without ``$``."""
        match = re.search(r"property\s+(?:[\\\w]+::)?\$(\w+)", self.message, re.IGNORECASE)
        if match:
            return match.group(1)
        match = re.search(r"\$(\w+)", self.message)
        return match.group(1) if match else None

    def extract_method_name(self) -> str | None:
        """Return the method or function name mentioned in the message."""
        match = re.search(
            r"method\s+(?:[\\\w]+::)?(\w+)\s*\(", self.message, re.IGNORECASE
        ) or re.search(r"method\s+(?:[\\\w]+::)?(\w+)", self.message, re.IGNORECASE)
        if match:
            return match.group(1)
        match = re.search(r"function\s+(\w+)", self.message, re.IGNORECASE)
        return match.group(1) if match else None

    def is_undefined_property(self) -> bool:
        return self.matches_pattern(r"Access to (an )?undefined property")

    def is_undefined_method(self) -> bool:
        return self.matches_pattern(r"Call to (an )?undefined method")

    def is_missing_return_type(self) -> bool:
        return self.matches_pattern(r"(has no return type|Return type is missing)")

    def is_missing_parameter_type(self) -> bool:
        return self.matches_pattern(
            r"(Parameter.*has no type specified|has parameter \$\w+ with no type specified)"
        )


# -----------------------------------------------------------------------------
# Message parsing helpers
# -----------------------------------------------------------------------------


def parse_parameter_name(message: str) -> str | None:
    """Extract a parameter name (without ``$``) from a diagnostic message.

    Tries, in order: ``Parameter #N $name``, ``Parameter $name``,
    ``parameter 'name'`` and finally any ``$variable`` in the message.
    """
    patterns = (
        re.compile(r"Parameter\s+#\d+\s+\$(\w+)", re.IGNORECASE),
        re.compile(r"Parameter\s+\$(\w+)", re.IGNORECASE),
        re.compile(r"parameter\s+['\"](\w+)['\"]", re.IGNORECASE),
        re.compile(r"\$(\w+)"),
    )
    for pattern in patterns:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


def parse_parameter_index(message: str) -> int | None:
    """Extract the 0-based parameter position from ``Parameter #N``."""
    match = re.search(r"Parameter\s+#(\d+)", message, re.IGNORECASE)
    if match is None:
        return None
    index = int(match.group(1))
    return index - 1 if index > 0 else None


def parse_exception_type(message: str) -> str | None:
    """Extract an exception class from ``throws X`` or ``throwing 'X'``.

    PHPStan's ``throws checked exception X`` phrasing is understood too.
    """
    match = re.search(
        r"(?<!@)throws\s+(?:checked\s+)?(?:exception\s+)?([\\\w]+)", message, re.IGNORECASE
    )
    if match:
        return match.group(1)
    match = re.search(r"throwing\s+['\"]?([\\\w]+)['\"]?", message, re.IGNORECASE)
    return match.group(1) if match else None
