"""Fixer framework for automatically resolving PHPStan diagnostics.

Provides fixers that add PHPDoc annotations for the diagnostics PHPStan
reports, and the registry that dispatches each diagnostic to one of them.
"""

from __future__ import annotations

from stanfix.fixers.base import BaseFixer, FixResult
from stanfix.fixers.class_fixers import (
    MissingPropertyDocblockFixer,
    MixinFixer,
    ReadonlyPropertyFixer,
    RequireExtendsFixer,
    RequireImplementsFixer,
    SealedClassFixer,
    UndefinedMethodFixer,
)
from stanfix.fixers.factory import FixerFactory, FixerLoadError
from stanfix.fixers.function_fixers import (
    CallableTypeFixer,
    ImpureFunctionFixer,
    IterableValueTypeFixer,
    MissingParamDocblockFixer,
    MissingReturnDocblockFixer,
    MissingThrowsDocblockFixer,
    UndefinedVariableFixer,
)
from stanfix.fixers.registry import (
    FixerRegistration,
    FixerRegistry,
    builtin_fixer_classes,
    create_default_registry,
)

__all__ = [
    # Base types
    "BaseFixer",
    "FixResult",
    # Registry
    "FixerRegistration",
    "FixerRegistry",
    "builtin_fixer_classes",
    "create_default_registry",
    # Custom fixers
    "FixerFactory",
    "FixerLoadError",
    # Fixers
    "CallableTypeFixer",
    "ImpureFunctionFixer",
    "IterableValueTypeFixer",
    "MissingParamDocblockFixer",
    "MissingPropertyDocblockFixer",
    "MissingReturnDocblockFixer",
    "MissingThrowsDocblockFixer",
    "MixinFixer",
    "ReadonlyPropertyFixer",
    "RequireExtendsFixer",
    "RequireImplementsFixer",
    "SealedClassFixer",
    "UndefinedMethodFixer",
    "UndefinedVariableFixer",
]
