"""PHP declaration analysis for stanfix.

Parses PHP source with tree-sitter and reduces the syntax tree to the
declarations fixers work with: free functions, class-likes with their methods
and properties, and the namespace. Source with syntax errors is rejected as a
whole, since line numbers of a partially recovered tree cannot be trusted.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field

import tree_sitter_php
from tree_sitter import Language, Node, Parser

logger = logging.getLogger(__name__)

PHP_LANGUAGE = Language(tree_sitter_php.language_php())

# tree-sitter node type -> ClassNode.kind
CLASS_KINDS = {
    "class_declaration": "class",
    "interface_declaration": "interface",
    "trait_declaration": "trait",
    "enum_declaration": "enum",
}

PARAMETER_NODES = frozenset(
    {"simple_parameter", "variadic_parameter", "property_promotion_parameter"}
)

# Members of anonymous classes are never reported
ANONYMOUS_CLASS_NODES = frozenset({"anonymous_class", "object_creation_expression"})

MEMBER_ACCESS_NODES = frozenset(
    {
        "member_access_expression",
        "member_call_expression",
        "nullsafe_member_access_expression",
        "nullsafe_member_call_expression",
    }
)


@dataclass
class Parameter:
    """A function or method parameter.

    Attributes:
        name: Parameter name without the leading ``$``.
        type: Declared type as written, or None when untyped.
        position: 0-based position in the signature.
    """

    name: str
    type: str | None
    position: int


@dataclass
class FunctionNode:
    """A function or method declaration.

    Attributes:
        name: Function name.
        start_line: 1-based line of the declaration (modifiers and attributes
            included).
        end_line: 1-based line of the closing brace, or of the ``;`` for
            abstract and interface methods.
        params: Declared parameters in order.
        return_type: Native return type, or None when undeclared.
        has_body: Whether the declaration has a ``{ ... }`` body.
        returns_value: Whether the body contains a ``return`` with a value.
        delegates: Properties the body dereferences further, as in
            ``$this->inner->call()`` or ``static::$inner->call()``, in order
            of appearance.
    """

    name: str
    start_line: int
    end_line: int
    params: list[Parameter] = field(default_factory=list)
    return_type: str | None = None
    has_body: bool = True
    returns_value: bool = False
    delegates: list[str] = field(default_factory=list)

    def find_param(self, name: str) -> Parameter | None:
        """Find a parameter by name (with or without ``$``)."""
        name = name.lstrip("$")
        for param in self.params:
            if param.name == name:
                return param
        return None

    def main_delegate(self) -> str | None:
        """Return the most frequently dereferenced property, if any."""
        if not self.delegates:
            return None
        return Counter(self.delegates).most_common(1)[0][0]


@dataclass
class PropertyNode:
    """A declared class property.

    Attributes:
        name: Property name without the leading ``$``.
        type: Native type, or None when untyped.
        start_line: 1-based line of the declaration.
    """

    name: str
    type: str | None
    start_line: int


@dataclass
class ClassNode:
    """A class, interface, trait or enum declaration.

    Attributes:
        name: Short class name.
        kind: One of "class", "interface", "trait", "enum".
        start_line: 1-based line of the declaration (modifiers and attributes
            included).
        end_line: 1-based line of the closing brace.
        methods: Methods in file order.
        properties: Declared properties in file order.
    """

    name: str
    kind: str
    start_line: int
    end_line: int
    methods: list[FunctionNode] = field(default_factory=list)
    properties: list[PropertyNode] = field(default_factory=list)

    def find_method(self, name: str) -> FunctionNode | None:
        """Find a method by name, case-insensitively as PHP does."""
        for method in self.methods:
            if method.name.lower() == name.lower():
                return method
        return None


@dataclass
class SourceTree:
    """Declarations found in one PHP file."""

    namespace: str | None = None
    functions: list[FunctionNode] = field(default_factory=list)
    classes: list[ClassNode] = field(default_factory=list)


class PhpFileAnalyzer:
    """Parse PHP source into a declaration tree.

    One instance owns one tree-sitter parser and can be shared by every
    fixer of a run.
    """

    def __init__(self) -> None:
        self._parser = Parser(PHP_LANGUAGE)

    def parse(self, content: str) -> SourceTree | None:
        """Parse PHP source into a declaration tree.

        Args:
            content: Full PHP file contents. Undecodable bytes carried as
                surrogate escapes are passed through unchanged.

        Returns:
            SourceTree with every function, class, method and property found,
            or None if the source has syntax errors.
        """
        source = content.encode("utf-8", "surrogateescape")
        root = self._parser.parse(source).root_node
        if root.has_error:
            logger.debug("Cannot parse PHP source: syntax error at line %d", _error_line(root))
            return None

        tree = SourceTree()
        pending: list[tuple[Node, ClassNode | None]] = [(root, None)]

        while pending:
            node, owner = pending.pop()
            kind = node.type

            if kind == "namespace_definition":
                name = node.child_by_field_name("name")
                if name is not None and tree.namespace is None:
                    tree.namespace = _text(name)
            elif kind == "function_definition":
                tree.functions.append(self._function(node))
                owner = None
            elif kind in CLASS_KINDS:
                class_node = self._class(node)
                tree.classes.append(class_node)
                owner = class_node
            elif kind == "method_declaration":
                if owner is not None:
                    owner.methods.append(self._function(node))
                owner = None
            elif kind == "property_declaration":
                if owner is not None:
                    owner.properties.extend(self._properties(node))
                continue
            elif kind in ANONYMOUS_CLASS_NODES:
                owner = None

            pending.extend((child, owner) for child in reversed(node.named_children))

        return tree

    @staticmethod
    def _class(node: Node) -> ClassNode:
        name = node.child_by_field_name("name")
        return ClassNode(
            name=_text(name) if name is not None else "",
            kind=CLASS_KINDS[node.type],
            start_line=node.start_point[0] + 1,
            end_line=node.end_point[0] + 1,
        )

    def _function(self, node: Node) -> FunctionNode:
        name = node.child_by_field_name("name")
        return_type = node.child_by_field_name("return_type")
        body = node.child_by_field_name("body")
        return FunctionNode(
            name=_text(name) if name is not None else "",
            start_line=node.start_point[0] + 1,
            end_line=node.end_point[0] + 1,
            params=self._params(node.child_by_field_name("parameters")),
            return_type=_text(return_type).lstrip(":").strip() if return_type else None,
            has_body=body is not None,
            returns_value=body is not None and _returns_value(body),
            delegates=_delegates(body) if body is not None else [],
        )

    @staticmethod
    def _params(node: Node | None) -> list[Parameter]:
        params: list[Parameter] = []
        if node is None:
            return params
        for child in node.named_children:
            if child.type not in PARAMETER_NODES:
                continue
            name = child.child_by_field_name("name")
            if name is None:
                continue
            declared = child.child_by_field_name("type")
            params.append(
                Parameter(
                    name=_text(name).lstrip("&$"),
                    type=_text(declared) if declared is not None else None,
                    position=len(params),
                )
            )
        return params

    @staticmethod
    def _properties(node: Node) -> list[PropertyNode]:
        declared = node.child_by_field_name("type")
        declared_type = _text(declared) if declared is not None else None
        properties: list[PropertyNode] = []
        for element in node.named_children:
            if element.type != "property_element":
                continue
            variable = next(
                (child for child in element.named_children if child.type == "variable_name"),
                None,
            )
            if variable is None:
                continue
            properties.append(
                PropertyNode(
                    name=_text(variable).lstrip("$"),
                    type=declared_type,
                    start_line=node.start_point[0] + 1,
                )
            )
        return properties


# -----------------------------------------------------------------------------
# Tree helpers
# -----------------------------------------------------------------------------


def _text(node: Node) -> str:
    return (node.text or b"").decode("utf-8", "surrogateescape")


def _walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and its named descendants in source order."""
    pending = [node]
    while pending:
        current = pending.pop()
        yield current
        pending.extend(reversed(current.named_children))


def _error_line(root: Node) -> int:
    for node in _walk(root):
        if node.type == "ERROR" or node.is_missing:
            return node.start_point[0] + 1
    return root.start_point[0] + 1


def _returns_value(body: Node) -> bool:
    return any(
        node.type == "return_statement"
        and any(child.type != "comment" for child in node.named_children)
        for node in _walk(body)
    )


def _delegates(body: Node) -> list[str]:
    names: list[str] = []
    for node in _walk(body):
        if node.type not in MEMBER_ACCESS_NODES:
            continue
        target = node.child_by_field_name("object")
        if target is None:
            continue
        if target.type == "member_access_expression":
            receiver = target.child_by_field_name("object")
            name = target.child_by_field_name("name")
            if receiver is not None and name is not None and _text(receiver) == "$this":
                names.append(_text(name))
        elif target.type == "scoped_property_access_expression":
            name = target.child_by_field_name("name")
            if name is not None:
                names.append(_text(name).lstrip("$"))
    return names
