"""Source analysis for stanfix.

Provides the PHPDoc block editor, the tree-sitter based PHP declaration
analyzer and the locator that maps a diagnostic line to a declaration.
"""

from __future__ import annotations

from stanfix.analysis.docblock import AnnotationEntry, Docblock, DocblockEditor
from stanfix.analysis.locator import (
    BODY_TOLERANCE,
    SIGNATURE_TOLERANCE,
    LocatedDeclaration,
    locate,
    locate_class,
    locate_property,
)
from stanfix.analysis.php_source import (
    ClassNode,
    FunctionNode,
    Parameter,
    PhpFileAnalyzer,
    PropertyNode,
    SourceTree,
)

__all__ = [
    # Docblocks
    "AnnotationEntry",
    "Docblock",
    "DocblockEditor",
    # Analyzer
    "ClassNode",
    "FunctionNode",
    "Parameter",
    "PhpFileAnalyzer",
    "PropertyNode",
    "SourceTree",
    # Locator
    "BODY_TOLERANCE",
    "SIGNATURE_TOLERANCE",
    "LocatedDeclaration",
    "locate",
    "locate_class",
    "locate_property",
]
