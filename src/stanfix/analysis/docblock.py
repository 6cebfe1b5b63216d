"""PHPDoc block editing for stanfix.

Provides tools for locating the docblock that sits directly above a
declaration, parsing its ``@tag`` lines into structured entries, and inserting
new tags while leaving every other line of the block untouched.

"""

from __future__ import annotations

import enum
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass

# Tag families
PARAM_TAGS = frozenset(
    {"param", "phpstan-param", "property", "property-read", "property-write"}
)
RETURN_TAGS = frozenset({"return", "phpstan-return", "throws"})
CLASS_NAME_TAGS = frozenset(
    {"mixin", "phpstan-require-extends", "phpstan-require-implements", "phpstan-sealed"}
)
FLAG_TAGS = frozenset({"phpstan-pure", "phpstan-impure"})
CALLABLE_TAGS = frozenset(
    {"param-immediately-invoked-callable", "param-later-invoked-callable"}
)

# Order used when a block is rebuilt from scratch
TAG_ORDER: tuple[str, ...] = (
    "param",
    "phpstan-param",
    "param-immediately-invoked-callable",
    "param-later-invoked-callable",
    "return",
    "phpstan-return",
    "phpstan-impure",
    "phpstan-pure",
    "phpstan-require-extends",
    "phpstan-require-implements",
    "phpstan-sealed",
    "throws",
    "var",
    "property",
    "property-read",
    "property-write",
    "method",
    "mixin",
)
KNOWN_TAGS = frozenset(TAG_ORDER)


@dataclass(frozen=True)
class AnnotationEntry:
    """A single parsed ``@tag`` line.

    Which fields are populated depends on the tag family. Values that do not
    fit the family's shape are kept verbatim in ``raw``.

    Attributes:
        type: Declared type (``@param``, ``@var``, ``@return``, ``@throws``) or
            return type for ``@method``.
        name: Variable name including ``$``, method name, or class name.
        description: Free text following the structured part.
        raw: Unparsed value, set when the structured parse did not apply.
        static: Whether a ``@method`` entry is declared static.
        parameters: Raw parameter list of a ``@method`` entry.
    """

    type: str | None = None
    name: str | None = None
    description: str | None = None
    raw: str | None = None
    static: bool = False
    parameters: str | None = None


@dataclass(frozen=True)
class Docblock:
    """A docblock located in a file.

    Attributes:
        text: Block text including the opening and closing markers.
        start_line: 0-based index of the line holding ``/**``.
        end_line: 0-based index of the line holding ``*/``.
    """

    text: str
    start_line: int
    end_line: int


class _ScanState(enum.Enum):
    SEEKING_CLOSE = "seeking_close"
    SEEKING_OPEN = "seeking_open"
    DONE = "done"


class DocblockEditor:
    """Parse and edit PHPDoc blocks.

    The editor is stateless. Malformed input never raises: lookups return
    ``None`` and edits return the text unchanged, so callers can treat
    "cannot parse" as an ordinary "cannot fix" outcome.
    """

    # Regex patterns
    _OPEN_PATTERN = re.compile(r"^\s*/\*\*\s*")
    _CLOSE_PATTERN = re.compile(r"\s*\*/\s*$")
    _STAR_PATTERN = re.compile(r"^\*\s*")
    _TAG_PATTERN = re.compile(r"^@(\w+(?:-\w+)*)(?:\s+(.+))?$")

    _NAME_PATTERN = re.compile(r"^(\$\w+)(?:\s+(.+))?$")
    _SIGNATURE_PATTERN = re.compile(r"^(\w+)\s*\(([^)]*)\)(?:\s+(.+))?$")
    _CLASS_NAME_PATTERN = re.compile(r"^([\\\w]+)(?:\s+(.+))?$")
    _CLASS_LIST_PATTERN = re.compile(r"^([\\\w|]+)(?:\s+(.+))?$")
    _VARIABLE_PATTERN = re.compile(r"^(\$\w+)(?:\s+(.+))?$")

    # -------------------------------------------------------------------------
    # Locating
    # -------------------------------------------------------------------------

    def extract(self, lines: Sequence[str], anchor_index: int) -> Docblock | None:
        """Find the docblock ending on the line directly above a declaration.

        Scans backwards from ``anchor_index - 1``. The closing marker must sit
        on exactly that line; between the markers only ``*``-prefixed or blank
        lines are accepted.

        Args:
            lines: All lines of the file.
            anchor_index: 0-based index of the declaration line.

        Returns:
            The located Docblock, or None if no block ends right above the
            anchor.
        """
        if anchor_index < 1 or anchor_index >= len(lines):
            return None

        state = _ScanState.SEEKING_CLOSE
        start: int | None = None
        end: int | None = None
        index = anchor_index - 1

        while state is not _ScanState.DONE and index >= 0:
            line = lines[index].strip()

            if state is _ScanState.SEEKING_CLOSE:
                if not line.endswith("*/"):
                    return None
                end = index
                if line.startswith("/**"):
                    start = index
                    state = _ScanState.DONE
                else:
                    state = _ScanState.SEEKING_OPEN
            elif line.startswith("/**"):
                start = index
                state = _ScanState.DONE
            elif line and not line.startswith("*"):
                return None

            index -= 1

        if start is None or end is None:
            return None

        return Docblock(
            text="\n".join(lines[start : end + 1]),
            start_line=start,
            end_line=end,
        )

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def parse(self, text: str) -> dict[str, list[AnnotationEntry]]:
        """Parse a docblock into entries grouped by tag.

        Every known tag is present in the result (possibly with an empty list),
        in TAG_ORDER. Unknown tags are appended in order of appearance with
        their values kept as ``raw``.

        Args:
            text: Docblock text, with or without markers.

        Returns:
            Mapping of tag name to the ordered list of its entries.
        """
        annotations: dict[str, list[AnnotationEntry]] = {tag: [] for tag in TAG_ORDER}

        for line in self._content_lines(text):
            match = self._TAG_PATTERN.match(line)
            if match is None:
                continue
            tag = match.group(1)
            value = match.group(2) or ""
            annotations.setdefault(tag, []).append(self._parse_value(tag, value))

        return annotations

    def _content_lines(self, text: str) -> Iterator[str]:
        """Yield block lines with markers and leading ``*`` removed."""
        content = self._OPEN_PATTERN.sub("", text, count=1)
        content = self._CLOSE_PATTERN.sub("", content, count=1)
        for raw_line in content.split("\n"):
            yield self._STAR_PATTERN.sub("", raw_line.strip(), count=1)

    def _parse_value(self, tag: str, value: str) -> AnnotationEntry:
        """Parse a tag value according to the tag's family."""
        if tag in PARAM_TAGS or tag == "var":
            split = split_type(value)
            if split is not None:
                type_name, rest = split
                match = self._NAME_PATTERN.match(rest)
                if match:
                    return AnnotationEntry(type=type_name, name=match[1], description=match[2])
                if tag == "var":
                    return AnnotationEntry(type=type_name, description=rest or None)
        elif tag in RETURN_TAGS:
            split = split_type(value)
            if split is not None:
                return AnnotationEntry(type=split[0], description=split[1] or None)
        elif tag == "method":
            entry = self._parse_method(value)
            if entry is not None:
                return entry
        elif tag in CLASS_NAME_TAGS:
            pattern = (
                self._CLASS_LIST_PATTERN
                if tag == "phpstan-sealed"
                else self._CLASS_NAME_PATTERN
            )
            match = pattern.match(value)
            if match:
                return AnnotationEntry(name=match[1], description=match[2])
        elif tag in FLAG_TAGS:
            return AnnotationEntry()
        elif tag in CALLABLE_TAGS:
            match = self._VARIABLE_PATTERN.match(value)
            if match:
                return AnnotationEntry(name=match[1], description=match[2])

        return AnnotationEntry(raw=value)

    def _parse_method(self, value: str) -> AnnotationEntry | None:
        """Parse ``[static] ReturnType name(params) [description]``.

        A leading ``static`` is a modifier only when a return type follows
        it; ``@method static create()`` returns ``static``.
        """
        candidates = [(False, value)]
        if value.startswith("static "):
            candidates.insert(0, (True, value[len("static ") :].lstrip()))

        for is_static, body in candidates:
            split = split_type(body)
            if split is None:
                continue
            match = self._SIGNATURE_PATTERN.match(split[1])
            if match:
                return AnnotationEntry(
                    static=is_static,
                    type=split[0],
                    name=match[1],
                    parameters=match[2],
                    description=match[3],
                )
        return None

    def extract_description(self, text: str) -> str | None:
        """Return the free text preceding the first tag, joined on one line."""
        description_lines: list[str] = []
        for line in self._content_lines(text):
            if line.startswith("@"):
                break
            if line:
                description_lines.append(line)
        return " ".join(description_lines) if description_lines else None

    def has_annotation(self, text: str, tag: str, name: str | None = None) -> bool:
        """Check whether a docblock already carries a tag.

        Args:
            text: Docblock text.
            tag: Tag name without ``@`` (e.g. "param").
            name: If given, only entries whose ``name`` equals it count.

        Returns:
            True if a matching entry exists.
        """
        entries = self.parse(text).get(tag, [])
        if name is None:
            return bool(entries)
        return any(entry.name == name for entry in entries)

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def add_annotation(self, text: str, tag: str, value: str) -> str:
        """Add one ``@tag value`` line to a docblock.

        When ``text`` holds no block, a minimal three-line block is returned.
        Otherwise the new line is inserted right before the closing marker,
        using the marker's indentation; all other lines stay verbatim. This
        never checks for duplicates: call has_annotation() first.

        Args:
            text: Existing docblock text (may be empty).
            tag: Tag name without ``@``.
            value: Tag value; may be empty for flag tags.

        Returns:
            The updated docblock text, or ``text`` unchanged when the block is
            unterminated.
        """
        value = value.strip()
        annotation = f"@{tag} {value}" if value else f"@{tag}"

        if "/**" not in text:
            return f"/**\n * {annotation}\n */"

        lines = text.split("\n")
        close_index: int | None = None
        for i in range(len(lines) - 1, -1, -1):
            if "*/" in lines[i]:
                close_index = i
                break
        if close_index is None:
            return text

        closing = lines[close_index]
        indent = closing[: len(closing) - len(closing.lstrip())]

        if closing.strip() == "*/":
            lines.insert(close_index, f"{indent}* {annotation}")
            return "\n".join(lines)

        # Closing marker shares its line with content: split it off
        body = closing.rpartition("*/")[0].rstrip()
        replacement: list[str] = []
        if body.lstrip().startswith("/**"):
            opener_rest = body.lstrip()[3:].strip()
            replacement.append(f"{indent}/**")
            if opener_rest:
                replacement.append(f"{indent} * {opener_rest}")
            star_indent = indent + " "
        else:
            if body.strip():
                replacement.append(body)
            star_indent = indent
        replacement.append(f"{star_indent}* {annotation}")
        replacement.append(f"{star_indent}*/")

        lines[close_index : close_index + 1] = replacement
        return "\n".join(lines)

    def create_docblock(
        self,
        annotations: Mapping[str, Sequence[str]],
        description: str | None = None,
    ) -> str:
        """Build a docblock from tag values.

        Known tags are emitted in TAG_ORDER, unknown tags afterwards in mapping
        order.

        Args:
            annotations: Mapping of tag name to the values to emit.
            description: Optional summary line placed before the tags.

        Returns:
            The docblock text.
        """
        lines = ["/**"]
        if description is not None:
            lines.append(f" * {description}")
            lines.append(" *")

        order = list(TAG_ORDER) + [tag for tag in annotations if tag not in KNOWN_TAGS]
        for tag in order:
            for value in annotations.get(tag, ()):
                lines.append(f" * @{tag} {value}" if value else f" * @{tag}")

        lines.append(" */")
        return "\n".join(lines)

    def format(self, text: str) -> str:
        """Rebuild a docblock in canonical form.

        Args:
            text: Docblock text.

        Returns:
            Equivalent docblock in TAG_ORDER with normalised spacing.
        """
        values: dict[str, list[str]] = {}
        for tag, entries in self.parse(text).items():
            for entry in entries:
                rendered = entry.raw if entry.raw is not None else self._render(tag, entry)
                values.setdefault(tag, []).append(rendered)
        return self.create_docblock(values, self.extract_description(text))

    def _render(self, tag: str, entry: AnnotationEntry) -> str:
        """Render a structured entry back to its tag value."""
        if tag in PARAM_TAGS:
            return _join(entry.type or "mixed", entry.name, entry.description)
        if tag == "var":
            return _join(entry.type or "mixed", entry.name, entry.description)
        if tag in RETURN_TAGS:
            return _join(entry.type or "mixed", entry.description)
        if tag == "method":
            signature = f"{entry.name or ''}({entry.parameters or ''})"
            return _join(
                "static" if entry.static else None,
                entry.type or "void",
                signature,
                entry.description,
            )
        if tag in CLASS_NAME_TAGS or tag in CALLABLE_TAGS:
            return _join(entry.name, entry.description)
        return ""


def split_type(value: str) -> tuple[str, str] | None:
    """Split a leading PHPDoc type off a tag value.

    Whitespace ends the type only outside ``<>``, ``{}``, ``()`` and ``[]``,
    so ``array<string, int> $map`` yields ``("array<string, int>", "$map")``.
    A callable return type after ``:`` belongs to the type.

    Returns:
        ``(type, rest)`` with ``rest`` stripped, or None when the value does
        not start with a type or leaves a bracket open.
    """
    value = value.strip()
    depth = 0
    end = len(value)
    for index, char in enumerate(value):
        if char in "<{([":
            depth += 1
        elif char in ">})]" and depth > 0:
            depth -= 1
        elif char.isspace() and depth == 0:
            if value[:index].rstrip().endswith(":"):
                continue
            end = index
            break

    if depth > 0:
        return None
    type_name = value[:end]
    if not type_name or type_name.startswith("$"):
        return None
    return type_name, value[end:].strip()


def _join(*parts: str | None) -> str:
    return " ".join(part for part in parts if part)
