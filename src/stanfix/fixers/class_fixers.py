"""Fixers that annotate classes, interfaces and traits.

These fixers add class-level tags (``@property``, ``@method``, ``@mixin``,
``@phpstan-require-extends`` and friends) to the docblock of the class-like
enclosing the diagnostic line. A declared property gets ``@var`` or
``@readonly`` on the
property itself instead.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from stanfix.analysis.locator import locate_class, locate_property
from stanfix.analysis.php_source import ClassNode, FunctionNode, PropertyNode
from stanfix.fixers.base import Annotations, BaseFixer, FixResult
from stanfix.issue import Issue

PROPERTY_TAGS = ("property", "property-read", "property-write")


class MissingPropertyDocblockFixer(BaseFixer):
    """Document properties PHPStan reports as undefined.

    Magic properties get ``@property mixed $name`` on the class; properties
    that are declared but untyped get ``@var mixed $name`` on the declaration.
    The Eloquent ``pivot`` property is left alone.
    """

    name = "MissingPropertyDocblockFixer"
    description = "Adds @property or @var annotations for undefined properties"

    def can_fix(self, issue: Issue) -> bool:
        if not issue.is_undefined_property():
            return False
        return issue.extract_property_name() != "pivot"

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        property_name = issue.extract_property_name()
        if property_name is None:
            return FixResult.failure(issue, content, "Could not extract property name")

        class_node = locate_class(tree, issue.line)
        if class_node is None:
            return FixResult.failure(
                issue, content, "Could not find class containing the property"
            )

        variable = f"${property_name}"
        declared = locate_property(class_node, property_name)
        if declared is not None:
            return self._annotate(
                issue,
                content,
                declared.start_line,
                "var",
                f"{declared.type or 'mixed'} {variable}",
                exists=lambda annotations: any(
                    entry.name == variable for entry in annotations.get("var", [])
                ),
                exists_reason=f"@var annotation already exists for {variable}",
                description=f"Added @var annotation for {variable}",
            )

        return self._annotate(
            issue,
            content,
            class_node.start_line,
            "property",
            f"mixed {variable}",
            exists=lambda annotations: any(
                entry.name == variable
                for tag in PROPERTY_TAGS
                for entry in annotations.get(tag, [])
            ),
            exists_reason=f"@property annotation already exists for {variable}",
            description=f"Added @property annotation for {variable}",
        )


class UndefinedMethodFixer(BaseFixer):
    """Declare magic methods PHPStan reports as undefined."""

    name = "UndefinedMethodFixer"
    description = "Adds @method annotations for undefined methods"

    def can_fix(self, issue: Issue) -> bool:
        return issue.is_undefined_method()

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        method_name = issue.extract_method_name()
        if method_name is None:
            return FixResult.failure(issue, content, "Could not extract method name")

        class_node = locate_class(tree, issue.line)
        if class_node is None:
            return FixResult.failure(
                issue, content, "Could not find class containing the method call"
            )

        return self._annotate(
            issue,
            content,
            class_node.start_line,
            "method",
            f"mixed {method_name}()",
            exists=lambda annotations: any(
                entry.name == method_name for entry in annotations.get("method", [])
            ),
            exists_reason=f"@method annotation already exists for {method_name}()",
            description=f"Added @method annotation for {method_name}()",
        )


class _ClassTagFixer(BaseFixer):
    """Add a class-name tag extracted from the diagnostic message."""

    tag: str = ""
    pattern: re.Pattern[str]

    def can_fix(self, issue: Issue) -> bool:
        return issue.matches_pattern(self.pattern)

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        match = self.pattern.search(issue.message)
        if match is None:
            return FixResult.failure(issue, content, "Could not extract class name")
        class_name = match.group(1)

        class_node = locate_class(tree, issue.line)
        if class_node is None:
            return FixResult.failure(issue, content, "Could not locate class for annotation")

        return self._annotate(
            issue,
            content,
            class_node.start_line,
            self.tag,
            class_name,
            exists=self._exists(class_name),
            exists_reason=f"@{self.tag} already exists for {class_name}",
            description=f"Added @{self.tag} {class_name}",
        )

    def _exists(self, class_name: str) -> Callable[[Annotations], bool]:
        return lambda annotations: any(
            entry.name == class_name for entry in annotations.get(self.tag, [])
        )


class RequireExtendsFixer(_ClassTagFixer):
    name = "RequireExtendsFixer"
    description = (
        "Adds @phpstan-require-extends to interfaces/traits requiring a specific base class"
    )
    tag = "phpstan-require-extends"
    pattern = re.compile(r"require(?:s)?\s+(?:extends|extend)\s+([\\\w]+)", re.IGNORECASE)


class RequireImplementsFixer(_ClassTagFixer):
    name = "RequireImplementsFixer"
    description = (
        "Adds @phpstan-require-implements to traits requiring a specific interface"
    )
    tag = "phpstan-require-implements"
    pattern = re.compile(
        r"require(?:s)?\s+(?:implements|implement)\s+([\\\w]+)", re.IGNORECASE
    )


class SealedClassFixer(_ClassTagFixer):
    """A class may carry a single ``@phpstan-sealed`` tag."""

    name = "SealedClassFixer"
    description = "Adds @phpstan-sealed annotation when extending sealed classes"
    tag = "phpstan-sealed"
    pattern = re.compile(r"sealed class\s+([\\\w]+)", re.IGNORECASE)

    def _exists(self, class_name: str) -> Callable[[Annotations], bool]:
        return lambda annotations: bool(annotations.get(self.tag))


class ReadonlyPropertyFixer(BaseFixer):
    """Mark properties PHPStan says must not be reassigned as ``@readonly``."""

    name = "ReadonlyPropertyFixer"
    description = (
        "Adds @readonly annotation for properties that should not be reassigned (PHP < 8.1)"
    )

    _PATTERN = re.compile(r"read-?only property", re.IGNORECASE)

    def can_fix(self, issue: Issue) -> bool:
        if issue.matches_pattern(self._PATTERN):
            return True
        message = issue.message.lower()
        return "assigned outside of" in message and "property" in message

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        property_name = issue.extract_property_name()
        if property_name is None:
            return FixResult.failure(issue, content, "Could not extract property name")

        # The first declaration with that name, in file order
        declared = next(
            (
                prop
                for class_node in tree.classes
                for prop in class_node.properties
                if prop.name == property_name
            ),
            None,
        )
        if declared is None:
            return FixResult.failure(issue, content, "Could not find property declaration")

        return self._annotate(
            issue,
            content,
            declared.start_line,
            "readonly",
            "",
            exists=lambda annotations: bool(annotations.get("readonly")),
            exists_reason=f"@readonly already exists for ${property_name}",
            description=f"Added @readonly to ${property_name}",
        )


class MixinFixer(BaseFixer):
    """Add ``@mixin`` to classes that forward unknown members via magic methods.

    The forwarded-to class is taken, in order, from the property the magic
    methods dereference, from a property with a delegate-like name, or from
    a delegate-like ``@property`` tag on the class.
    """

    name = "MixinFixer"
    description = "Adds @mixin annotation for classes using magic methods (__call, __get, __set)"

    MAGIC_METHODS = ("__call", "__get", "__set", "__callStatic")
    _DELEGATE_NAME = re.compile(
        r"^\$?(delegate|delegator|target|handler|wrapped|inner|backing)$", re.IGNORECASE
    )

    def can_fix(self, issue: Issue) -> bool:
        return issue.is_undefined_method() or issue.is_undefined_property()

    def fix(self, issue: Issue, content: str) -> FixResult:
        tree = self._parse_source(content)
        if tree is None:
            return FixResult.failure(issue, content, "Could not parse file")

        class_node = locate_class(tree, issue.line)
        if class_node is None:
            return FixResult.failure(issue, content, "Could not find target class")

        magic = [m for m in (class_node.find_method(n) for n in self.MAGIC_METHODS) if m]
        if not magic:
            return FixResult.failure(
                issue, content, "Class does not have magic methods (__call, __get, __set)"
            )

        lines = content.replace("\r\n", "\n").split("\n")
        mixin = self._mixin_class(class_node, magic, lines)
        if mixin is None:
            return FixResult.failure(issue, content, "Could not determine mixin class name")

        return self._annotate(
            issue,
            content,
            class_node.start_line,
            "mixin",
            mixin,
            exists=lambda annotations: any(
                entry.name is not None and entry.name.lstrip("\\") == mixin
                for entry in annotations.get("mixin", [])
            ),
            exists_reason="@mixin already exists",
            description=f"Added @mixin {mixin}",
        )

    def _mixin_class(
        self, class_node: ClassNode, magic: list[FunctionNode], lines: list[str]
    ) -> str | None:
        for method in magic:
            delegate = method.main_delegate()
            declared = locate_property(class_node, delegate) if delegate else None
            if declared is not None:
                found = self._property_type(declared, lines)
                if found:
                    return found

        for declared in class_node.properties:
            if self._DELEGATE_NAME.match(declared.name):
                found = self._property_type(declared, lines)
                if found:
                    return found

        docblock = self.editor.extract(lines, class_node.start_line - 1)
        if docblock is not None:
            annotations = self.editor.parse(docblock.text)
            for tag in ("property", "property-read"):
                for entry in annotations.get(tag, []):
                    if entry.name and entry.type and self._DELEGATE_NAME.match(entry.name):
                        return entry.type.lstrip("\\")
        return None

    def _property_type(self, declared: PropertyNode, lines: list[str]) -> str | None:
        if declared.type:
            return declared.type.lstrip("?").lstrip("\\")
        docblock = self.editor.extract(lines, declared.start_line - 1)
        if docblock is None:
            return None
        entries = self.editor.parse(docblock.text).get("var", [])
        if entries and entries[0].type:
            return entries[0].type.lstrip("\\")
        return None
