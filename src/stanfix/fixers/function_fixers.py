"""Fixers that annotate functions, methods and the code inside them."""

from __future__ import annotations

import re

from stanfix.analysis.docblock import AnnotationEntry
from stanfix.analysis.locator import (
    BODY_TOLERANCE,
    SIGNATURE_TOLERANCE,
    locate,
    locate_class,
    locate_property,
)
from stanfix.analysis.php_source import FunctionNode, SourceTree
from stanfix.fixers.base import BaseFixer, FixResult
from stanfix.issue import (
    Issue,
    parse_exception_type,
    parse_parameter_index,
    parse_parameter_name,
)


class MissingReturnDocblockFixer(BaseFixer):
    """Add ``@return`` when PHPStan reports a missing return type.

    The type is taken from the native return type when declared, ``void`` for
    bodies that never return a value, and ``mixed`` otherwise.
    """

    name = "MissingReturnDocblockFixer"
    description = "Adds @return annotation when PHPStan reports missing return type"
    priority = 100

    def can_fix(self, issue: Issue) -> bool:
        return issue.is_missing_return_type()

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        located = locate(tree, issue.line, SIGNATURE_TOLERANCE)
        if located is None:
            return FixResult.failure(
                issue, content, "Could not find function/method at specified line"
            )

        return_type = self._return_type(located.declaration)
        return self._annotate(
            issue,
            content,
            located.declaration_line,
            "return",
            return_type,
            exists=lambda annotations: bool(annotations.get("return")),
            exists_reason="@return annotation already exists",
            description=f"Added @return {return_type} annotation",
        )

    @staticmethod
    def _return_type(declaration: FunctionNode) -> str:
        if declaration.return_type:
            return declaration.return_type
        if declaration.has_body and not declaration.returns_value:
            return "void"
        return "mixed"


class MissingParamDocblockFixer(BaseFixer):
    """Add ``@param`` when PHPStan reports a parameter without a type."""

    name = "MissingParamDocblockFixer"
    description = "Adds @param annotations when PHPStan reports missing parameter types"
    priority = 90

    def can_fix(self, issue: Issue) -> bool:
        return issue.is_missing_parameter_type()

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        param_name = parse_parameter_name(issue.message)
        if param_name is None:
            return FixResult.failure(issue, content, "Could not extract parameter information")
        position = parse_parameter_index(issue.message) or 0

        located = locate(tree, issue.line, BODY_TOLERANCE)
        if located is None:
            return FixResult.failure(
                issue, content, "Could not find function/method near specified line"
            )

        variable = f"${param_name}"
        param_type = self._param_type(located.declaration, param_name, position)
        return self._annotate(
            issue,
            content,
            located.declaration_line,
            "param",
            f"{param_type} {variable}",
            exists=lambda annotations: any(
                entry.name == variable for entry in annotations.get("param", [])
            ),
            exists_reason=f"@param annotation already exists for {variable}",
            description=f"Added @param annotation for {variable}",
        )

    @staticmethod
    def _param_type(declaration: FunctionNode, name: str, position: int) -> str:
        param = declaration.find_param(name)
        if param is None and position < len(declaration.params):
            param = declaration.params[position]
        if param is not None and param.type:
            return param.type
        return "mixed"


class MissingThrowsDocblockFixer(BaseFixer):
    """Add ``@throws`` for exceptions PHPStan says are undocumented."""

    name = "MissingThrowsDocblockFixer"
    description = "Adds @throws annotation when exceptions are thrown"

    _PATTERNS = (
        re.compile(r"@throws.*annotation is missing", re.IGNORECASE),
        re.compile(r"throws (?:checked )?exception.*but.*@throws", re.IGNORECASE),
    )

    def can_fix(self, issue: Issue) -> bool:
        return any(issue.matches_pattern(pattern) for pattern in self._PATTERNS)

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        exception_type = parse_exception_type(issue.message) or "\\Exception"

        located = locate(tree, issue.line, BODY_TOLERANCE)
        if located is None:
            return FixResult.failure(
                issue, content, "Could not find function/method near specified line"
            )

        return self._annotate(
            issue,
            content,
            located.declaration_line,
            "throws",
            exception_type,
            exists=lambda annotations: any(
                entry.type == exception_type for entry in annotations.get("throws", [])
            ),
            exists_reason=f"@throws annotation already exists for {exception_type}",
            description=f"Added @throws annotation for {exception_type}",
        )


class ImpureFunctionFixer(BaseFixer):
    """Mark functions as ``@phpstan-impure`` or ``@phpstan-pure``."""

    name = "ImpureFunctionFixer"
    description = (
        "Marks functions/methods as @phpstan-impure or @phpstan-pure based on "
        "purity diagnostics"
    )

    _IMPURE_PATTERN = re.compile(
        r"impure|side effect|different values|non-deterministic", re.IGNORECASE
    )
    _PURE_PATTERN = re.compile(r"\bpure\b", re.IGNORECASE)

    def can_fix(self, issue: Issue) -> bool:
        return issue.matches_pattern(self._IMPURE_PATTERN) or issue.matches_pattern(
            self._PURE_PATTERN
        )

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        located = locate(tree, issue.line, BODY_TOLERANCE)
        if located is None:
            return FixResult.failure(issue, content, "Could not find function/method near line")

        tag = self._annotation_tag(issue.message)
        return self._annotate(
            issue,
            content,
            located.declaration_line,
            tag,
            "",
            exists=lambda annotations: bool(annotations.get(tag)),
            exists_reason=f"@{tag} annotation already exists",
            description=f"Added @{tag} annotation",
        )

    def _annotation_tag(self, message: str) -> str:
        if self._IMPURE_PATTERN.search(message):
            return "phpstan-impure"
        if self._PURE_PATTERN.search(message):
            return "phpstan-pure"
        return "phpstan-impure"


class CallableTypeFixer(BaseFixer):
    """Document when a callable parameter is invoked.

    Free functions are assumed to call their callable before returning
    (``@param-immediately-invoked-callable``); methods are assumed to store
    it for later (``@param-later-invoked-callable``).
    """

    name = "CallableTypeFixer"
    description = (
        "Adds callable invocation timing annotations "
        "(@param-immediately-invoked-callable, @param-later-invoked-callable)"
    )

    _PATTERNS = (
        re.compile(r"callable.*invoked", re.IGNORECASE),
        re.compile(r"Parameter.*expects callable", re.IGNORECASE),
    )

    def can_fix(self, issue: Issue) -> bool:
        return any(issue.matches_pattern(pattern) for pattern in self._PATTERNS)

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        param_name = parse_parameter_name(issue.message)
        if param_name is None:
            return FixResult.failure(
                issue, content, "Could not extract callable parameter information"
            )

        located = locate(tree, issue.line, BODY_TOLERANCE)
        if located is None:
            return FixResult.failure(
                issue, content, "Could not find function/method near specified line"
            )

        if located.is_method:
            tag, timing = "param-later-invoked-callable", "later invoked"
        else:
            tag, timing = "param-immediately-invoked-callable", "immediately invoked"
        variable = f"${param_name}"
        return self._annotate(
            issue,
            content,
            located.declaration_line,
            tag,
            variable,
            exists=lambda annotations: any(
                entry.name == variable for entry in annotations.get(tag, [])
            ),
            exists_reason=f"@{tag} annotation already exists for {variable}",
            description=f"Added @{tag} annotation for {variable} ({timing})",
        )


class IterableValueTypeFixer(BaseFixer):
    """Give ``array`` and ``iterable`` types an explicit ``<mixed>`` value type.

    Parameters, return types and properties are handled. A bare ``array`` or
    ``iterable`` already written in the docblock is rewritten in place;
    otherwise a new tag is added.
    """

    name = "IterableValueTypeFixer"
    description = "Adds iterable value types when PHPStan reports missing iterable value type"

    _PATTERN = re.compile(
        r"iterable value type|no value type specified in iterable type", re.IGNORECASE
    )
    _ITERABLE_TYPE_PATTERN = re.compile(r"in iterable type\s+([\\\w]+)", re.IGNORECASE)
    _BARE_TYPES = ("array", "iterable")

    def can_fix(self, issue: Issue) -> bool:
        return issue.matches_pattern(self._PATTERN)

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        if issue.message.lstrip().lower().startswith("property"):
            return self._fix_property(issue, content, tree)

        located = locate(tree, issue.line, BODY_TOLERANCE)
        if located is None:
            return FixResult.failure(
                issue, content, "Could not find function/method near specified line"
            )
        declaration = located.declaration

        if issue.matches_pattern(r"return type"):
            value_type = self._value_type(issue.message, declaration.return_type)
            return self._add_value_type(
                issue, content, located.declaration_line, "return", None, value_type
            )

        param_name = parse_parameter_name(issue.message)
        param = declaration.find_param(param_name) if param_name else None
        if param_name is None and declaration.params:
            param = declaration.params[0]
            param_name = param.name
        if param_name is None:
            return FixResult.failure(issue, content, "Could not determine parameter name")

        value_type = self._value_type(issue.message, param.type if param else None)
        return self._add_value_type(
            issue, content, located.declaration_line, "param", f"${param_name}", value_type
        )

    def _fix_property(self, issue: Issue, content: str, tree: SourceTree) -> FixResult:
        property_name = issue.extract_property_name()
        if property_name is None:
            return FixResult.failure(issue, content, "Could not extract property name")

        class_node = locate_class(tree, issue.line)
        declared = locate_property(class_node, property_name) if class_node else None
        if declared is None:
            return FixResult.failure(issue, content, "Could not find property declaration")

        value_type = self._value_type(issue.message, declared.type)
        return self._add_value_type(
            issue, content, declared.start_line, "var", f"${property_name}", value_type
        )

    def _value_type(self, message: str, native: str | None) -> str:
        match = self._ITERABLE_TYPE_PATTERN.search(message)
        base = match.group(1) if match else "iterable"
        nullable = False
        if native:
            nullable = native.startswith("?")
            if native.lstrip("?").lower() in self._BARE_TYPES:
                base = native.lstrip("?")
        return f"{base}<mixed>|null" if nullable else f"{base}<mixed>"

    def _add_value_type(
        self,
        issue: Issue,
        content: str,
        anchor_line: int,
        tag: str,
        variable: str | None,
        value_type: str,
    ) -> FixResult:
        subject = variable or f"@{tag}"

        def matches(entry: AnnotationEntry) -> bool:
            if variable is None:
                return True
            return entry.name == variable or (tag == "var" and entry.name is None)

        newline = "\r\n" if "\r\n" in content else "\n"
        lines = content.split(newline)
        docblock = self.editor.extract(lines, anchor_line - 1)
        if docblock is not None:
            entries = [e for e in self.editor.parse(docblock.text).get(tag, []) if matches(e)]
            if any(entry.type and "<" in entry.type for entry in entries):
                return FixResult.failure(issue, content, "Iterable value type already exists")

            updated, count = self._bare_pattern(tag, variable).subn(
                r"\g<1>\g<2><mixed>", docblock.text, count=1
            )
            if count:
                lines[docblock.start_line : docblock.end_line + 1] = updated.split("\n")
                return FixResult.success(
                    issue,
                    newline.join(lines),
                    f"Added iterable value type for {subject}",
                    [f"Added <mixed> value type to @{tag} at line {anchor_line}"],
                )

        value = f"{value_type} {variable}" if variable else value_type
        return self._annotate(
            issue,
            content,
            anchor_line,
            tag,
            value,
            exists=lambda annotations: any(matches(e) for e in annotations.get(tag, [])),
            exists_reason=f"@{tag} annotation already exists for {subject}",
            description=f"Added iterable value type for {subject}",
        )

    def _bare_pattern(self, tag: str, variable: str | None) -> re.Pattern[str]:
        types = "|".join(self._BARE_TYPES)
        if variable is None:
            end = r"(?=\s|\*/|$)"
        elif tag == "var":
            end = rf"(?=\s+{re.escape(variable)}\b|\s*\*/|\s*$)"
        else:
            end = rf"(?=\s+{re.escape(variable)}\b)"
        return re.compile(rf"(@{tag}\s+)({types}){end}", re.MULTILINE)


class UndefinedVariableFixer(BaseFixer):
    """Declare undefined variables with an inline ``/** @var mixed $name */``.

    The annotation goes on the line above the diagnostic, replacing it when
    that line is blank.
    """

    name = "UndefinedVariableFixer"
    description = "Adds inline @var annotation for undefined variables"

    _PATTERNS = (
        re.compile(r"Undefined variable", re.IGNORECASE),
        re.compile(r"Variable.*is undefined", re.IGNORECASE),
    )
    _NAME_PATTERNS = (
        re.compile(r"variable:\s*\$(\w+)", re.IGNORECASE),
        re.compile(r"Variable\s+\$(\w+)", re.IGNORECASE),
    )

    def can_fix(self, issue: Issue) -> bool:
        return any(issue.matches_pattern(pattern) for pattern in self._PATTERNS)

    def fix(self, issue: Issue, content: str) -> FixResult:
        variable_name = self._variable_name(issue.message)
        if variable_name is None:
            return FixResult.failure(issue, content, "Could not extract variable name")

        newline = "\r\n" if "\r\n" in content else "\n"
        lines = content.split(newline)
        index = issue.line - 1
        if index < 0 or index >= len(lines):
            return FixResult.failure(issue, content, "Invalid line number")

        variable = f"${variable_name}"
        previous = lines[index - 1] if index > 0 else None
        existing = re.compile(rf"@var\s+\S+\s+{re.escape(variable)}\b")
        if previous is not None and existing.search(previous):
            return FixResult.failure(
                issue, content, f"Inline @var annotation already exists for {variable}"
            )

        target = lines[index]
        indent = target[: len(target) - len(target.lstrip())]
        annotation = f"/** @var mixed {variable} */"
        if previous is not None and not previous.strip():
            lines[index - 1] = indent + annotation
        else:
            lines.insert(index, indent + annotation)

        return FixResult.success(
            issue,
            newline.join(lines),
            f"Added inline @var annotation for {variable}",
            [f"Added {annotation} at line {issue.line}"],
        )

    def _variable_name(self, message: str) -> str | None:
        for pattern in self._NAME_PATTERNS:
            match = pattern.search(message)
            if match:
                return match.group(1)
        return None
