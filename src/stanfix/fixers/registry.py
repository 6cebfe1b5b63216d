"""Fixer registry and priority-ordered dispatch.

The registry holds every fixer for a run together with its effective priority
and enabled flag. Dispatch walks the enabled fixers from highest to lowest
priority (ties keep registration order) and hands the issue to the first one
that claims it. That fixer's result is final: a failure does not fall through
to the next fixer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stanfix.analysis.docblock import DocblockEditor
from stanfix.analysis.php_source import PhpFileAnalyzer
from stanfix.config import Configuration
from stanfix.fixers.base import BaseFixer, FixResult
from stanfix.fixers.factory import FixerFactory
from stanfix.issue import Issue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FixerRegistration:
    """A fixer with its effective dispatch settings.

    Attributes:
        fixer: The fixer instance.
        priority: Effective priority (configured override or class default).
        enabled: Whether the fixer participates in dispatch.
        order: Registration index, used to break priority ties.
    """

    fixer: BaseFixer
    priority: int
    enabled: bool = True
    order: int = 0

    @property
    def name(self) -> str:
        return self.fixer.name


class FixerRegistry:
    """Registry that maps fixer names to fixer instances.

    Example:
        >>> registry = FixerRegistry()
        >>> registry.register(MissingReturnDocblockFixer())
        >>> result = registry.dispatch(issue, content)
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._registrations: dict[str, FixerRegistration] = {}

    def register(
        self,
        fixer: BaseFixer,
        priority: int | None = None,
        enabled: bool = True,
    ) -> FixerRegistration:
        """Register a fixer by its name.

        Args:
            fixer: The fixer instance.
            priority: Priority override; defaults to the fixer's own priority.
            enabled: Whether the fixer participates in dispatch.

        Returns:
            The created registration.

        Raises:
            ValueError: If the fixer has no name or if a fixer with the same
                name is already registered.
        """
        name = fixer.name
        if not name:
            raise ValueError(f"Fixer class {type(fixer).__name__} has no name defined")
        if name in self._registrations:
            existing = self._registrations[name].fixer
            raise ValueError(
                f"Fixer '{name}' already registered: {type(existing).__name__}"
            )

        registration = FixerRegistration(
            fixer=fixer,
            priority=fixer.priority if priority is None else priority,
            enabled=enabled,
            order=len(self._registrations),
        )
        self._registrations[name] = registration
        return registration

    def get(self, name: str) -> BaseFixer | None:
        registration = self._registrations.get(name)
        return registration.fixer if registration else None

    def has_fixer(self, name: str) -> bool:
        return name in self._registrations

    def list_names(self) -> list[str]:
        """List all registered fixer names.

        Returns:
            Sorted list of registered names.
        """
        return sorted(self._registrations)

    def registrations(self) -> list[FixerRegistration]:
        """Return every registration in dispatch order.

        Returns:
            Registrations sorted by descending priority, then registration
            order. Disabled fixers are included.
        """
        return sorted(
            self._registrations.values(),
            key=lambda registration: (-registration.priority, registration.order),
        )

    def find_fixer(self, issue: Issue) -> BaseFixer | None:
        """Return the first enabled fixer, in dispatch order, claiming an issue."""
        for registration in self.registrations():
            if registration.enabled and registration.fixer.can_fix(issue):
                return registration.fixer
        return None

    def dispatch(self, issue: Issue, content: str) -> FixResult | None:
        """Let the first claiming fixer handle an issue.

        Args:
            issue: The issue to fix.
            content: Current file content.

        Returns:
            The claiming fixer's result, or None if no enabled fixer claims
            the issue.
        """
        fixer = self.find_fixer(issue)
        if fixer is None:
            return None

        try:
            return fixer.fix(issue, content)
        except Exception as e:
            logger.exception(
                "Fixer %s raised while fixing %s:%d", fixer.name, issue.file_path, issue.line
            )
            return FixResult.failure(
                issue, content, f"Fixer {fixer.name} raised {type(e).__name__}: {e}"
            )


def builtin_fixer_classes() -> list[type[BaseFixer]]:
    """Return the built-in fixer classes in registration order."""
    # Import here to avoid circular imports
    from stanfix.fixers.class_fixers import (
        MissingPropertyDocblockFixer,
        MixinFixer,
        ReadonlyPropertyFixer,
        RequireExtendsFixer,
        RequireImplementsFixer,
        SealedClassFixer,
        UndefinedMethodFixer,
    )
    from stanfix.fixers.function_fixers import (
        CallableTypeFixer,
        ImpureFunctionFixer,
        IterableValueTypeFixer,
        MissingParamDocblockFixer,
        MissingReturnDocblockFixer,
        MissingThrowsDocblockFixer,
        UndefinedVariableFixer,
    )

    return [
        MissingReturnDocblockFixer,
        MissingParamDocblockFixer,
        MissingPropertyDocblockFixer,
        ReadonlyPropertyFixer,
        UndefinedVariableFixer,
        UndefinedMethodFixer,
        MissingThrowsDocblockFixer,
        CallableTypeFixer,
        MixinFixer,
        ImpureFunctionFixer,
        SealedClassFixer,
        RequireExtendsFixer,
        RequireImplementsFixer,
        IterableValueTypeFixer,
    ]


def create_default_registry(
    configuration: Configuration | None = None,
    analyzer: PhpFileAnalyzer | None = None,
    editor: DocblockEditor | None = None,
) -> FixerRegistry:
    """Create a registry with the built-in fixers and configured custom fixers.

    Args:
        configuration: Supplies enabled/disabled lists, priority overrides and
            custom fixer import paths. Defaults apply when omitted.
        analyzer: Shared PHP declaration analyzer.
        editor: Shared docblock editor.

    Returns:
        A populated FixerRegistry.

    Raises:
        FixerLoadError: If a custom fixer cannot be loaded.
        ValueError: If two fixers share a name.
    """
    configuration = configuration or Configuration()
    analyzer = analyzer or PhpFileAnalyzer()
    editor = editor or DocblockEditor()

    fixers: list[BaseFixer] = [cls(analyzer, editor) for cls in builtin_fixer_classes()]
    factory = FixerFactory(analyzer, editor)
    fixers.extend(factory.create(class_path) for class_path in configuration.custom_fixers)

    registry = FixerRegistry()
    for fixer in fixers:
        registry.register(
            fixer,
            priority=configuration.fixer_priority(fixer.name),
            enabled=configuration.is_fixer_enabled(fixer.name),
        )
    return registry
