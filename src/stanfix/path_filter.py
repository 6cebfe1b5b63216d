"""Path and message pattern matching for stanfix.

Patterns come in three shapes:

- ``/regex/flags``: a regular expression, searched anywhere in the subject
- a string containing ``*`` (or ``?`` for paths): a wildcard matched against
  the whole subject
- anything else: an exact string

Paths additionally accept directory patterns ending in ``/``, which match
every path below that directory.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

# Delimited regex: /body/flags
_DELIMITED_PATTERN = re.compile(r"^/(.+)/([imsxADSUXu]*)$", re.DOTALL)

# PCRE modifiers with a Python equivalent; the rest are accepted and ignored
_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}


def is_regex_pattern(pattern: str) -> bool:
    """Check whether a pattern uses the ``/regex/flags`` form."""
    return _DELIMITED_PATTERN.match(pattern) is not None


def compile_regex_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a ``/regex/flags`` pattern.

    Args:
        pattern: Delimited pattern such as ``/undefined method/i``.

    Returns:
        Compiled regular expression.

    Raises:
        ValueError: If the pattern is not delimited.
        re.error: If the body is not a valid regular expression.
    """
    match = _DELIMITED_PATTERN.match(pattern)
    if match is None:
        raise ValueError(f"Not a delimited regex pattern: {pattern}")
    flags = 0
    for modifier in match.group(2):
        flags |= _FLAG_MAP.get(modifier, 0)
    return re.compile(match.group(1), flags)


def compile_wildcard(pattern: str, single_char: bool = False) -> re.Pattern[str]:
    """Compile a wildcard into an anchored regex.

    ``*`` (and ``**``) match any run of characters. With ``single_char``,
    ``?`` matches exactly one character.
    """
    escaped = re.escape(pattern)
    escaped = escaped.replace(r"\*\*", ".*").replace(r"\*", ".*")
    if single_char:
        escaped = escaped.replace(r"\?", ".")
    return re.compile(f"^{escaped}$")


def _normalize(path: str) -> str:
    return path.replace("\\", "/").rstrip("/")


def matches(path: str, pattern: str) -> bool:
    """Check whether a path matches one pattern.

    Args:
        path: File path (either separator style).
        pattern: Regex, exact, directory or glob pattern.

    Returns:
        True if the path matches.
    """
    if is_regex_pattern(pattern):
        try:
            return compile_regex_pattern(pattern).search(path) is not None
        except re.error:
            return False

    normalized_path = _normalize(path)
    normalized_pattern = _normalize(pattern)

    if normalized_path == normalized_pattern:
        return True

    if pattern.endswith("/"):
        return (normalized_path + "/").startswith(normalized_pattern + "/")

    if "*" in normalized_pattern or "?" in normalized_pattern:
        return compile_wildcard(normalized_pattern, single_char=True).match(normalized_path) is not None

    return False


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """Check whether a path matches at least one pattern."""
    return any(matches(path, pattern) for pattern in patterns)
