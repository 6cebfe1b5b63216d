"""Configuration management for stanfix.

Handles the per-project policy file: which diagnostics to fix, ignore or
only report, which fixers participate and in what priority, extra fixer
classes to load, and which paths to process.

Configuration is loaded from the first of these found when walking up from
the working directory (stopping at a ``composer.json`` project root):
stanfix.yaml, stanfix.yml, stanfix.json, stanfix.toml, .stanfix.yaml, and the
legacy phpstan-fixer.yaml, phpstan-fixer.yml, phpstan-fixer.json,
.phpstan-fixer.yaml.
"""

from __future__ import annotations

import json
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from stanfix import path_filter

# tomllib is only available in Python 3.11+
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import-not-found]

ACTION_FIX = "fix"
ACTION_IGNORE = "ignore"
ACTION_REPORT = "report"
ACTIONS = (ACTION_FIX, ACTION_IGNORE, ACTION_REPORT)

CONFIG_FILE_NAMES = (
    "stanfix.yaml",
    "stanfix.yml",
    "stanfix.json",
    "stanfix.toml",
    ".stanfix.yaml",
    "phpstan-fixer.yaml",
    "phpstan-fixer.yml",
    "phpstan-fixer.json",
    ".phpstan-fixer.yaml",
)
PROJECT_ROOT_MARKER = "composer.json"
MAX_SEARCH_DEPTH = 10


class ConfigurationError(ValueError):
    """Raised when configuration cannot be loaded or is invalid."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        if path is not None:
            message = f"{message} ({path})"
        super().__init__(message)


@dataclass(frozen=True)
class Rule:
    """What to do with diagnostics matching a pattern.

    Attributes:
        action: One of "fix", "ignore", "report".
    """

    action: str = ACTION_FIX

    def __post_init__(self) -> None:
        if self.action not in ACTIONS:
            raise ValueError(
                f'Invalid action "{self.action}". Must be one of: {", ".join(ACTIONS)}'
            )

    @property
    def is_fix(self) -> bool:
        return self.action == ACTION_FIX

    @property
    def is_ignore(self) -> bool:
        return self.action == ACTION_IGNORE

    @property
    def is_report(self) -> bool:
        return self.action == ACTION_REPORT


@dataclass
class Configuration:
    """Run configuration for stanfix.

    Attributes:
        rules: Mapping of message pattern to Rule, in declaration order.
        default: Rule used when no pattern matches.
        enabled_fixers: If non-empty, only these fixers participate.
        disabled_fixers: Fixers excluded when no enabled list is given.
        fixer_priorities: Priority overrides by fixer name.
        custom_fixers: Import paths of extra fixer classes.
        include_paths: If non-empty, only matching files are processed.
        exclude_paths: Matching files are never processed.
    """

    rules: dict[str, Rule] = field(default_factory=dict)
    default: Rule = field(default_factory=Rule)
    enabled_fixers: list[str] = field(default_factory=list)
    disabled_fixers: list[str] = field(default_factory=list)
    fixer_priorities: dict[str, int] = field(default_factory=dict)
    custom_fixers: list[str] = field(default_factory=list)
    include_paths: list[str] = field(default_factory=list)
    exclude_paths: list[str] = field(default_factory=list)

    _exact_rules: dict[str, Rule] = field(init=False, repr=False, compare=False)
    _pattern_rules: list[tuple[re.Pattern[str], Rule]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        """Validate configuration and compile rule patterns."""
        self._validate()
        self._compile_rules()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: If any configuration value is invalid.
        """
        for pattern, rule in self.rules.items():
            if not isinstance(pattern, str) or not pattern:
                raise ConfigurationError("Rule patterns must be non-empty strings")
            if not isinstance(rule, Rule):
                raise ConfigurationError(f'Rule for pattern "{pattern}" must be a Rule')

        for name, priority in self.fixer_priorities.items():
            if isinstance(priority, bool) or not isinstance(priority, int):
                raise ConfigurationError(f'Priority for fixer "{name}" must be an integer')

    def _compile_rules(self) -> None:
        self._exact_rules = {}
        self._pattern_rules = []
        for pattern, rule in self.rules.items():
            if path_filter.is_regex_pattern(pattern):
                try:
                    compiled = path_filter.compile_regex_pattern(pattern)
                except re.error as e:
                    raise ConfigurationError(f'Invalid regex pattern "{pattern}": {e}') from e
                self._pattern_rules.append((compiled, rule))
            elif "*" in pattern:
                self._pattern_rules.append((path_filter.compile_wildcard(pattern), rule))
            else:
                self._exact_rules[pattern] = rule

    # -------------------------------------------------------------------------
    # Policy
    # -------------------------------------------------------------------------

    def rule_for(self, message: str) -> Rule:
        """Resolve the rule for a diagnostic message.

        An exact rule always wins. Otherwise regex and wildcard rules are tried
        in declaration order, and the default applies when none matches.

        Args:
            message: Diagnostic message text.

        Returns:
            The governing Rule.
        """
        exact = self._exact_rules.get(message)
        if exact is not None:
            return exact
        for compiled, rule in self._pattern_rules:
            if compiled.search(message):
                return rule
        return self.default

    # -------------------------------------------------------------------------
    # Fixers
    # -------------------------------------------------------------------------

    def is_fixer_enabled(self, name: str) -> bool:
        """Check whether a fixer participates in dispatch.

        A non-empty enabled list restricts participation to its members and
        takes precedence over the disabled list.
        """
        if self.enabled_fixers:
            return name in self.enabled_fixers
        return name not in self.disabled_fixers

    def fixer_priority(self, name: str) -> int | None:
        """Return the configured priority override for a fixer, if any."""
        return self.fixer_priorities.get(name)

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def is_path_allowed(self, path: str, base_dir: Path | None = None) -> bool:
        """Check a file path against include_paths and exclude_paths.

        Args:
            path: File path as reported by PHPStan.
            base_dir: Project directory; when given, the path relative to it
                is matched as well.

        Returns:
            True if the file should be processed.
        """
        candidates = [path]
        if base_dir is not None:
            try:
                candidates.append(str(Path(path).resolve().relative_to(base_dir.resolve())))
            except ValueError:
                pass

        if self.include_paths and not any(
            path_filter.matches_any(candidate, self.include_paths) for candidate in candidates
        ):
            return False
        return not any(
            path_filter.matches_any(candidate, self.exclude_paths) for candidate in candidates
        )


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Find a configuration file by traversing up the directory tree.

    Stops at the first directory containing ``composer.json``, at the
    filesystem root, or after MAX_SEARCH_DEPTH levels.

    Args:
        start_dir: Directory to start searching from. Defaults to current directory.

    Returns:
        Path to the config file if found, None otherwise.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(MAX_SEARCH_DEPTH):
        for name in CONFIG_FILE_NAMES:
            candidate = current / name
            if candidate.is_file():
                return candidate

        if (current / PROJECT_ROOT_MARKER).is_file():
            return None

        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent

    return None


def _load_yaml_file(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def _load_json_file(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _load_toml_file(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        result: dict[str, Any] = tomllib.load(f)
        return result


def load_configuration(path: Path) -> Configuration:
    """Load configuration from a YAML, JSON or TOML file.

    Args:
        path: Path to the configuration file.

    Returns:
        Parsed Configuration.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not parsable,
            or holds invalid values.
    """
    if not path.is_file():
        raise ConfigurationError("Configuration file not found", path)

    extension = path.suffix.lower().lstrip(".")
    loaders = {
        "yaml": _load_yaml_file,
        "yml": _load_yaml_file,
        "json": _load_json_file,
        "toml": _load_toml_file,
    }
    loader = loaders.get(extension)
    if loader is None:
        raise ConfigurationError(
            f"Unsupported configuration file format: {extension}. "
            "Supported: yaml, yml, json, toml",
            path,
        )

    try:
        data = loader(path)
    except OSError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}", path) from e
    except (yaml.YAMLError, json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(
            f"Failed to parse {extension.upper()} configuration file: {e}", path
        ) from e

    if data is None:
        data = {}
    try:
        return build_configuration(data)
    except ConfigurationError as e:
        raise ConfigurationError(str(e), path) from e


def load_config(
    config_path: Path | None = None,
    start_dir: Path | None = None,
) -> Configuration:
    """Load configuration from an explicit path or by discovery.

    Args:
        config_path: Explicit configuration file (from --config or
            STANFIX_CONFIG).
        start_dir: Directory to start discovery from.

    Returns:
        Loaded Configuration, or the defaults when no file is found.

    Raises:
        ConfigurationError: If the configuration file is invalid.
    """
    if config_path is None:
        config_path = find_config_file(start_dir)
        if config_path is None:
            return Configuration()
    return load_configuration(config_path)


def build_configuration(data: Any) -> Configuration:
    """Build a Configuration from decoded file data.

    Args:
        data: Decoded YAML/JSON/TOML document.

    Returns:
        Configuration instance.

    Raises:
        ConfigurationError: If a section has the wrong type or holds an
            invalid action.
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration root must be an object")

    rules: dict[str, Rule] = {}
    raw_rules = data.get("rules", {})
    if not isinstance(raw_rules, Mapping):
        raise ConfigurationError('Configuration "rules" must be an object')
    for pattern, rule_data in raw_rules.items():
        action = _action_of(rule_data)
        if action is None:
            continue
        rules[str(pattern)] = _make_rule(action, f'rule "{pattern}"')

    default = Rule()
    if "default" in data:
        action = _action_of(data["default"])
        if action is not None:
            default = _make_rule(action, "default rule")

    fixers = data.get("fixers", {})
    if not isinstance(fixers, Mapping):
        raise ConfigurationError('Configuration "fixers" must be an object')

    priorities = fixers.get("priorities", {})
    if not isinstance(priorities, Mapping):
        raise ConfigurationError('Configuration "fixers.priorities" must be an object')

    return Configuration(
        rules=rules,
        default=default,
        enabled_fixers=_string_list(fixers.get("enabled", []), "fixers.enabled"),
        disabled_fixers=_string_list(fixers.get("disabled", []), "fixers.disabled"),
        fixer_priorities={str(name): value for name, value in priorities.items()},
        custom_fixers=_string_list(data.get("custom_fixers", []), "custom_fixers"),
        include_paths=_string_list(data.get("include_paths", []), "include_paths"),
        exclude_paths=_string_list(data.get("exclude_paths", []), "exclude_paths"),
    )


def _action_of(rule_data: Any) -> str | None:
    """Accept both ``"pattern": "action"`` and ``"pattern": {action: ...}``."""
    if isinstance(rule_data, str):
        return rule_data
    if isinstance(rule_data, Mapping) and isinstance(rule_data.get("action"), str):
        return str(rule_data["action"])
    return None


def _make_rule(action: str, context: str) -> Rule:
    try:
        return Rule(action)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {context}: {e}") from e


def _string_list(value: Any, key: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigurationError(f'Configuration "{key}" must be an array')
    return list(value)
