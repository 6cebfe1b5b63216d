"""Loading of custom fixer classes named in configuration.

A custom fixer is referenced by import path, either ``package.module:Class``
or ``package.module.Class``. Its constructor parameters are filled by type:
parameters annotated as PhpFileAnalyzer or DocblockEditor receive the shared
instances; anything else gets its default value, or None.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import typing
from typing import Any

from stanfix.analysis.docblock import DocblockEditor
from stanfix.analysis.php_source import PhpFileAnalyzer
from stanfix.fixers.base import BaseFixer

logger = logging.getLogger(__name__)


class FixerLoadError(Exception):
    """Raised when a custom fixer cannot be loaded."""

    def __init__(self, class_path: str, reason: str) -> None:
        self.class_path = class_path
        self.reason = reason
        super().__init__(f"Could not load custom fixer '{class_path}': {reason}")


class FixerFactory:
    """Instantiate fixer classes with the shared collaborators.

    Example:
        >>> factory = FixerFactory(PhpFileAnalyzer(), DocblockEditor())
        >>> fixer = factory.create("acme_fixers.laravel:PivotFixer")
    """

    def __init__(self, analyzer: PhpFileAnalyzer, editor: DocblockEditor) -> None:
        self.analyzer = analyzer
        self.editor = editor

    def create(self, class_path: str) -> BaseFixer:
        """Import and instantiate a fixer class.

        Args:
            class_path: ``module:Class`` or ``module.Class`` import path.

        Returns:
            The fixer instance.

        Raises:
            FixerLoadError: If the class cannot be imported, is not a concrete
                BaseFixer subclass with a name, or its constructor fails.
        """
        fixer_class = self._import_class(class_path)

        if not inspect.isclass(fixer_class) or not issubclass(fixer_class, BaseFixer):
            raise FixerLoadError(
                class_path, f"must be a subclass of {BaseFixer.__module__}.BaseFixer"
            )
        if inspect.isabstract(fixer_class):
            raise FixerLoadError(class_path, "class is abstract")
        if not fixer_class.name:
            raise FixerLoadError(class_path, "class has no name defined")

        arguments = self._resolve_arguments(fixer_class)
        try:
            fixer = fixer_class(**arguments)
        except Exception as e:
            raise FixerLoadError(class_path, f"constructor failed: {e}") from e

        logger.debug("Loaded custom fixer %s from %s", fixer.name, class_path)
        return fixer

    @staticmethod
    def _import_class(class_path: str) -> Any:
        if ":" in class_path:
            module_name, _, attribute = class_path.partition(":")
        else:
            module_name, _, attribute = class_path.rpartition(".")
        if not module_name or not attribute:
            raise FixerLoadError(class_path, "expected 'module:Class' or 'module.Class'")

        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise FixerLoadError(class_path, f"module not found ({e})") from e

        try:
            return getattr(module, attribute)
        except AttributeError as e:
            raise FixerLoadError(
                class_path, f"class {attribute} not found in {module_name}"
            ) from e

    def _resolve_arguments(self, fixer_class: type[BaseFixer]) -> dict[str, Any]:
        """Match constructor parameters to collaborators by annotation."""
        init = fixer_class.__init__
        signature = inspect.signature(init)
        try:
            hints = typing.get_type_hints(init)
        except (NameError, TypeError):
            hints = {}

        arguments: dict[str, Any] = {}
        for name, param in list(signature.parameters.items())[1:]:
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            collaborator = self._collaborator_for(hints.get(name, param.annotation))
            if collaborator is not None:
                arguments[name] = collaborator
            elif param.default is param.empty:
                arguments[name] = None
        return arguments

    def _collaborator_for(self, annotation: Any) -> Any:
        if annotation is inspect.Parameter.empty:
            return None

        if isinstance(annotation, str):
            # Unresolved forward reference: compare short class names
            for token in annotation.replace("|", " ").replace("[", " ").replace("]", " ").split():
                short_name = token.rsplit(".", 1)[-1]
                if short_name == PhpFileAnalyzer.__name__:
                    return self.analyzer
                if short_name == DocblockEditor.__name__:
                    return self.editor
            return None

        if inspect.isclass(annotation):
            if issubclass(annotation, PhpFileAnalyzer):
                return self.analyzer
            if issubclass(annotation, DocblockEditor):
                return self.editor
            return None

        # Unions such as ``PhpFileAnalyzer | None``
        for member in typing.get_args(annotation):
            collaborator = self._collaborator_for(member)
            if collaborator is not None:
                return collaborator
        return None
