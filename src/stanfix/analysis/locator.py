"""Locate the declaration a diagnostic refers to."""

from __future__ import annotations

from dataclasses import dataclass

from stanfix.analysis.php_source import ClassNode, FunctionNode, PropertyNode, SourceTree

# Diagnostics reported on the signature line
SIGNATURE_TOLERANCE = 0
# Diagnostics reported somewhere inside the body
BODY_TOLERANCE = 5


@dataclass(frozen=True)
class LocatedDeclaration:
    """A function or method matched to a diagnostic line.

    Attributes:
        declaration: The matched function or method.
        enclosing_class: Class owning the method, None for free functions.
        declaration_line: 1-based start line of the declaration.
    """

    declaration: FunctionNode
    enclosing_class: ClassNode | None
    declaration_line: int

    @property
    def is_method(self) -> bool:
        return self.enclosing_class is not None


def _matches_line(line: int, target_line: int, tolerance: int) -> bool:
    if tolerance == 0:
        return line == target_line
    return abs(line - target_line) <= tolerance


def locate(
    tree: SourceTree, target_line: int, tolerance: int = SIGNATURE_TOLERANCE
) -> LocatedDeclaration | None:
    """Find the function or method declared at (or near) a line.

    Free functions are searched first, then the methods of each class in file
    order; the first declaration whose start line is within ``tolerance`` of
    ``target_line`` wins.

    Args:
        tree: Parsed source.
        target_line: 1-based line reported by the diagnostic.
        tolerance: Allowed distance between the declaration line and the
            target line (0 means exact).

    Returns:
        The located declaration, or None if nothing matches.
    """
    for function in tree.functions:
        if _matches_line(function.start_line, target_line, tolerance):
            return LocatedDeclaration(function, None, function.start_line)

    for class_node in tree.classes:
        for method in class_node.methods:
            if _matches_line(method.start_line, target_line, tolerance):
                return LocatedDeclaration(method, class_node, method.start_line)

    return None


def locate_class(tree: SourceTree, target_line: int) -> ClassNode | None:
    """Find the innermost class-like whose span contains a line.

    The line directly above the declaration is accepted too, since some
    diagnostics point at the attribute or docblock line.
    """
    best: ClassNode | None = None
    for class_node in tree.classes:
        if class_node.start_line - 1 <= target_line <= class_node.end_line:
            if best is None or class_node.start_line > best.start_line:
                best = class_node
    return best


def locate_property(class_node: ClassNode, name: str) -> PropertyNode | None:
    """Find a declared property by name (with or without ``$``)."""
    name = name.lstrip("$")
    for prop in class_node.properties:
        if prop.name == name:
            return prop
    return None
