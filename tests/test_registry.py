"""Tests for the fixer registry, dispatch and custom fixer loading."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from stanfix.analysis import DocblockEditor, PhpFileAnalyzer
from stanfix.config import Configuration
from stanfix.fixers import (
    BaseFixer,
    FixerFactory,
    FixerLoadError,
    FixerRegistry,
    FixResult,
    MissingReturnDocblockFixer,
    UndefinedMethodFixer,
    builtin_fixer_classes,
    create_default_registry,
)
from stanfix.issue import Issue

# -----------------------------------------------------------------------------
# Test fixers
# -----------------------------------------------------------------------------


class RecordingFixer(BaseFixer):
    """Claims messages containing its keyword and records every call."""

    def __init__(self, name: str, keyword: str, priority: int = 0, succeed: bool = True) -> None:
        super().__init__()
        self.name = name
        self.keyword = keyword
        self.priority = priority
        self.succeed = succeed
        self.calls: list[Issue] = []

    def can_fix(self, issue: Issue) -> bool:
        return self.keyword in issue.message

    def fix(self, issue: Issue, content: str) -> FixResult:
        self.calls.append(issue)
        if self.succeed:
            return FixResult.success(issue, content + f"// {self.name}\n")
        return FixResult.failure(issue, content, f"{self.name} gave up")


class ExplodingFixer(BaseFixer):
    name = "ExplodingFixer"

    def can_fix(self, issue: Issue) -> bool:
        return True

    def fix(self, issue: Issue, content: str) -> FixResult:
        raise RuntimeError("boom")


ISSUE = Issue(file_path="src/A.php", line=3, message="undefined thing")


# -----------------------------------------------------------------------------
# Registry Tests
# -----------------------------------------------------------------------------


class TestFixerRegistry:
    """Tests for FixerRegistry."""

    def test_register_and_get(self) -> None:
        """Test registering and looking up fixers."""
        registry = FixerRegistry()
        fixer = RecordingFixer("First", "undefined")
        registry.register(fixer)
        assert registry.get("First") is fixer
        assert registry.has_fixer("First")
        assert registry.get("Missing") is None
        assert registry.list_names() == ["First"]

    def test_duplicate_name(self) -> None:
        """Test that registering the same name twice fails."""
        registry = FixerRegistry()
        registry.register(RecordingFixer("Same", "x"))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(RecordingFixer("Same", "y"))

    def test_missing_name(self) -> None:
        """Test that nameless fixers are rejected."""
        with pytest.raises(ValueError, match="has no name defined"):
            FixerRegistry().register(RecordingFixer("", "x"))

    def test_dispatch_order(self) -> None:
        """Test descending priority with ties broken by registration order."""
        registry = FixerRegistry()
        registry.register(RecordingFixer("LowA", "undefined", priority=1))
        registry.register(RecordingFixer("High", "undefined", priority=10))
        registry.register(RecordingFixer("LowB", "undefined", priority=1))
        assert [r.name for r in registry.registrations()] == ["High", "LowA", "LowB"]

        registry.register(RecordingFixer("Override", "undefined"), priority=50)
        assert registry.registrations()[0].name == "Override"

    def test_first_claiming_fixer_wins(self) -> None:
        """Test that only the highest-priority claiming fixer runs."""
        registry = FixerRegistry()
        high = RecordingFixer("High", "undefined", priority=10)
        low = RecordingFixer("Low", "undefined", priority=1)
        other = RecordingFixer("Other", "unrelated", priority=100)
        for fixer in (low, high, other):
            registry.register(fixer)

        result = registry.dispatch(ISSUE, "<?php\n")
        assert result is not None
        assert result.content == "<?php\n// High\n"
        assert high.calls == [ISSUE]
        assert low.calls == []
        assert other.calls == []

    def test_failure_does_not_fall_through(self) -> None:
        """Test that a claiming fixer's failure is final."""
        registry = FixerRegistry()
        failing = RecordingFixer("Failing", "undefined", priority=10, succeed=False)
        fallback = RecordingFixer("Fallback", "undefined", priority=1)
        registry.register(failing)
        registry.register(fallback)

        result = registry.dispatch(ISSUE, "<?php\n")
        assert result is not None
        assert result.is_failure
        assert result.description == "Failing gave up"
        assert fallback.calls == []

    def test_disabled_fixer_is_skipped(self) -> None:
        """Test that disabled fixers never claim issues."""
        registry = FixerRegistry()
        disabled = RecordingFixer("Disabled", "undefined", priority=10)
        enabled = RecordingFixer("Enabled", "undefined")
        registry.register(disabled, enabled=False)
        registry.register(enabled)

        registry.dispatch(ISSUE, "<?php\n")
        assert disabled.calls == []
        assert enabled.calls == [ISSUE]

    def test_no_claiming_fixer(self) -> None:
        """Test that dispatch returns None when nothing claims the issue."""
        registry = FixerRegistry()
        registry.register(RecordingFixer("Other", "unrelated"))
        assert registry.dispatch(ISSUE, "<?php\n") is None
        assert registry.find_fixer(ISSUE) is None

    def test_raising_fixer_becomes_failure(self) -> None:
        """Test that an exception inside a fixer is turned into a failure."""
        registry = FixerRegistry()
        registry.register(ExplodingFixer())
        result = registry.dispatch(ISSUE, "<?php\n")
        assert result is not None
        assert result.is_failure
        assert result.content == "<?php\n"
        assert result.description == "Fixer ExplodingFixer raised RuntimeError: boom"


class TestDefaultRegistry:
    """Tests for create_default_registry()."""

    def test_builtin_fixers(self) -> None:
        """Test that every built-in fixer is registered in dispatch order."""
        registry = create_default_registry()
        names = [r.name for r in registry.registrations()]
        assert names == [cls.name for cls in builtin_fixer_classes()]
        assert names[:2] == ["MissingReturnDocblockFixer", "MissingParamDocblockFixer"]
        assert len(names) == 14

    def test_shared_collaborators(self) -> None:
        """Test that every fixer shares one analyzer and one editor."""
        analyzer = PhpFileAnalyzer()
        editor = DocblockEditor()
        registry = create_default_registry(analyzer=analyzer, editor=editor)
        for registration in registry.registrations():
            assert registration.fixer.analyzer is analyzer
            assert registration.fixer.editor is editor

    def test_configuration_applied(self) -> None:
        """Test priority overrides and enable lists from configuration."""
        config = Configuration(
            disabled_fixers=["MissingReturnDocblockFixer"],
            fixer_priorities={"UndefinedMethodFixer": 500},
        )
        registry = create_default_registry(config)
        registrations = registry.registrations()
        assert registrations[0].name == "UndefinedMethodFixer"
        assert registrations[0].priority == 500
        enabled = {r.name: r.enabled for r in registrations}
        assert enabled["MissingReturnDocblockFixer"] is False
        assert enabled["MissingParamDocblockFixer"] is True

        issue = Issue("src/A.php", 3, "Function a() has no return type specified.")
        assert registry.find_fixer(issue) is None

    def test_classification(self) -> None:
        """Test that typical PHPStan messages reach the expected fixer."""
        registry = create_default_registry()
        cases = {
            "Method A::b() has no return type specified.": "MissingReturnDocblockFixer",
            "Method A::b() has parameter $c with no type specified.": "MissingParamDocblockFixer",
            "Access to an undefined property A::$c.": "MissingPropertyDocblockFixer",
            "Call to an undefined method A::c().": "UndefinedMethodFixer",
            "Readonly property A::$c is assigned outside of its declaring class.": (
                "ReadonlyPropertyFixer"
            ),
            "Undefined variable: $c": "UndefinedVariableFixer",
            "Parameter #1 $c of method A::b() expects callable, invoked later.": (
                "CallableTypeFixer"
            ),
            "Method A::b() has parameter $c with no value type specified in iterable type "
            "array.": "IterableValueTypeFixer",
            "Method A::b() return type has no value type specified in iterable type array.": (
                "IterableValueTypeFixer"
            ),
        }
        for message, expected in cases.items():
            fixer = registry.find_fixer(Issue("src/A.php", 3, message))
            assert fixer is not None
            assert fixer.name == expected

    def test_mixin_fixer_needs_priority(self) -> None:
        """Test that MixinFixer only receives undefined members when raised above the others."""
        issue = Issue("src/A.php", 3, "Call to an undefined method A::c().")
        default = create_default_registry().find_fixer(issue)
        assert default is not None
        assert default.name == "UndefinedMethodFixer"

        config = Configuration(fixer_priorities={"MixinFixer": 50})
        fixer = create_default_registry(config).find_fixer(issue)
        assert fixer is not None
        assert fixer.name == "MixinFixer"


# -----------------------------------------------------------------------------
# Custom Fixer Tests
# -----------------------------------------------------------------------------


CUSTOM_FIXER_MODULE = textwrap.dedent(
    """
    from stanfix.analysis.docblock import DocblockEditor
    from stanfix.fixers.base import BaseFixer, FixResult


    class PivotFixer(BaseFixer):
        name = "PivotFixer"
        description = "Documents pivot relations"
        priority = 200

        def __init__(self, editor: DocblockEditor, label: str = "pivot", extra=None):
            super().__init__(editor=editor)
            self.label = label
            self.extra = extra

        def can_fix(self, issue):
            return "$pivot" in issue.message

        def fix(self, issue, content):
            return FixResult.success(issue, content + "// pivot\\n")


    class BrokenFixer(BaseFixer):
        name = "BrokenFixer"

        def __init__(self):
            raise RuntimeError("cannot start")

        def can_fix(self, issue):
            return False

        def fix(self, issue, content):
            return FixResult.failure(issue, content)


    class NamelessFixer(BaseFixer):
        def can_fix(self, issue):
            return False

        def fix(self, issue, content):
            return FixResult.failure(issue, content)


    class NotAFixer:
        name = "NotAFixer"
    """
)


@pytest.fixture
def custom_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Write an importable module with custom fixers and return its name."""
    module_name = f"custom_fixers_{tmp_path.name.replace('-', '_')}"
    (tmp_path / f"{module_name}.py").write_text(CUSTOM_FIXER_MODULE)
    monkeypatch.syspath_prepend(str(tmp_path))
    return module_name


class TestFixerFactory:
    """Tests for FixerFactory."""

    def test_create_with_colon_path(self, custom_module: str) -> None:
        """Test loading by ``module:Class`` and injecting collaborators."""
        factory = FixerFactory(PhpFileAnalyzer(), DocblockEditor())
        fixer = factory.create(f"{custom_module}:PivotFixer")
        assert fixer.name == "PivotFixer"
        assert fixer.editor is factory.editor
        assert fixer.label == "pivot"  # type: ignore[attr-defined]
        assert fixer.extra is None  # type: ignore[attr-defined]

    def test_create_with_dotted_path(self, custom_module: str) -> None:
        """Test loading by ``module.Class``."""
        factory = FixerFactory(PhpFileAnalyzer(), DocblockEditor())
        assert factory.create(f"{custom_module}.PivotFixer").name == "PivotFixer"

    def test_builtin_by_path(self) -> None:
        """Test that built-in classes can be loaded by path too."""
        factory = FixerFactory(PhpFileAnalyzer(), DocblockEditor())
        fixer = factory.create("stanfix.fixers.class_fixers:UndefinedMethodFixer")
        assert isinstance(fixer, UndefinedMethodFixer)
        assert fixer.analyzer is factory.analyzer

    @pytest.mark.parametrize(
        ("attribute", "match"),
        [
            ("NotAFixer", "must be a subclass"),
            ("NamelessFixer", "has no name defined"),
            ("BrokenFixer", "constructor failed: cannot start"),
            ("Missing", "class Missing not found"),
        ],
    )
    def test_invalid_classes(self, custom_module: str, attribute: str, match: str) -> None:
        """Test that unusable classes raise FixerLoadError."""
        factory = FixerFactory(PhpFileAnalyzer(), DocblockEditor())
        with pytest.raises(FixerLoadError, match=match):
            factory.create(f"{custom_module}:{attribute}")

    def test_abstract_class(self) -> None:
        """Test that abstract classes are rejected."""
        factory = FixerFactory(PhpFileAnalyzer(), DocblockEditor())
        with pytest.raises(FixerLoadError, match="class is abstract"):
            factory.create("stanfix.fixers.base:BaseFixer")

    def test_missing_module(self) -> None:
        """Test that a missing module raises FixerLoadError."""
        factory = FixerFactory(PhpFileAnalyzer(), DocblockEditor())
        with pytest.raises(FixerLoadError, match="module not found") as exc_info:
            factory.create("no_such_module_for_stanfix:Fixer")
        assert exc_info.value.class_path == "no_such_module_for_stanfix:Fixer"

    def test_malformed_path(self) -> None:
        """Test that a bare name is rejected."""
        factory = FixerFactory(PhpFileAnalyzer(), DocblockEditor())
        with pytest.raises(FixerLoadError, match="expected 'module:Class'"):
            factory.create("PivotFixer")

    def test_custom_fixer_in_default_registry(self, custom_module: str) -> None:
        """Test that configured custom fixers join dispatch with their priority."""
        config = Configuration(custom_fixers=[f"{custom_module}:PivotFixer"])
        registry = create_default_registry(config)
        assert registry.registrations()[0].name == "PivotFixer"

        issue = Issue("src/Role.php", 5, "Access to an undefined property Role::$pivot.")
        result = registry.dispatch(issue, "<?php\n")
        assert result is not None
        assert result.content == "<?php\n// pivot\n"

    def test_custom_fixer_name_clash(self) -> None:
        """Test that a custom fixer cannot reuse a built-in name."""
        config = Configuration(
            custom_fixers=["stanfix.fixers.function_fixers:MissingReturnDocblockFixer"]
        )
        with pytest.raises(ValueError, match="already registered"):
            create_default_registry(config)

    def test_priority_class_attribute_untouched(self) -> None:
        """Test that priority overrides do not modify the fixer class."""
        create_default_registry(Configuration(fixer_priorities={"MissingReturnDocblockFixer": 1}))
        assert MissingReturnDocblockFixer.priority == 100
