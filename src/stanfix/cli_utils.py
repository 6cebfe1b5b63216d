"""CLI utility functions for stanfix.

Provides helper functions for:
- Config wiring: Loading the configuration named by --config or discovered
- Path resolution: Finding the PHP project root by looking for composer.json
- PHPStan invocation: Running PHPStan and capturing its JSON output
- Error formatting: Consistent user-friendly error messages with exit codes
- Logging: Rich log handler for --verbose
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler

from stanfix.config import PROJECT_ROOT_MARKER, Configuration, ConfigurationError, load_config

DEFAULT_PHPSTAN_COMMAND = "vendor/bin/phpstan analyse --error-format=json"

# Exit code conventions
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1  # User error (bad input, missing file, etc.)
EXIT_SYSTEM_ERROR = 2  # System error (permissions, I/O, etc.)


class PhpstanRunError(Exception):
    """Raised when PHPStan cannot be run or produces no output."""

    def __init__(self, command: str, reason: str, returncode: int | None = None) -> None:
        self.command = command
        self.reason = reason
        self.returncode = returncode
        super().__init__(
            f"PHPStan command failed ({reason}). "
            f"Make sure PHPStan is installed and configured. Command: {command}"
        )


# -----------------------------------------------------------------------------
# Error Formatting Helpers
# -----------------------------------------------------------------------------


def error(msg: str, *, exit_code: int = EXIT_USER_ERROR) -> NoReturn:
    """Print an error message and exit with the given exit code.

    Args:
        msg: The error message to display.
        exit_code: Exit code to use (default: EXIT_USER_ERROR=1).

    Raises:
        typer.Exit: Always raises to exit the program.
    """
    styled_prefix = typer.style("Error:", fg=typer.colors.RED, bold=True)
    typer.echo(f"{styled_prefix} {msg}", err=True)
    raise typer.Exit(code=exit_code)


def format_issue_lines(issues: list[Any]) -> str:
    """Format issues PHPStan-style, one ``path:line: message`` per line.

    Args:
        issues: Issues to format.

    Returns:
        Formatted string with bullet points.
    """
    if not issues:
        return ""
    return "\n".join(f"  - {i.file_path}:{i.line}: {i.message}" for i in issues)


# -----------------------------------------------------------------------------
# Path Resolution Helper
# -----------------------------------------------------------------------------


def find_project_root(start_dir: Path | None = None) -> Path | None:
    """Find the PHP project root by looking for composer.json.

    Args:
        start_dir: Directory to start searching from. Defaults to cwd.

    Returns:
        Path to the directory containing composer.json, or None if there is
        none up to the filesystem root.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        if (current / PROJECT_ROOT_MARKER).is_file():
            return current

        parent = current.parent
        if parent == current:
            return None
        current = parent


# -----------------------------------------------------------------------------
# Config Wiring Helper
# -----------------------------------------------------------------------------


def wire_config(
    config_path: Path | None = None,
    start_dir: Path | None = None,
) -> Configuration:
    """Load configuration for a command, exiting on invalid configuration.

    Args:
        config_path: Explicit configuration file from --config / STANFIX_CONFIG.
        start_dir: Directory to start searching for config files.

    Returns:
        Loaded Configuration (defaults when no file is found).

    Raises:
        typer.Exit: If configuration is invalid.
    """
    try:
        return load_config(config_path=config_path, start_dir=start_dir)
    except ConfigurationError as e:
        error(f"Invalid configuration: {e}", exit_code=EXIT_USER_ERROR)


def config_option() -> Any:
    """Create a Typer Option for --config / -c.

    Returns:
        Typer Option with default None and appropriate help text.
    """
    return typer.Option(
        None,
        "--config",
        "-c",
        help=(
            "Path to configuration file (stanfix.yaml, .yml, .json or .toml). "
            "Searched for automatically if omitted."
        ),
        envvar="STANFIX_CONFIG",
    )


# -----------------------------------------------------------------------------
# PHPStan
# -----------------------------------------------------------------------------


def run_phpstan(command: str, cwd: Path | None = None) -> str:
    """Run PHPStan and return its JSON output.

    PHPStan exits non-zero whenever it reports errors, so the exit code alone
    is not a failure; only a run without any output is.

    Args:
        command: Command line to run.
        cwd: Working directory for the command.

    Returns:
        Captured standard output.

    Raises:
        PhpstanRunError: If the command cannot be started or prints nothing.
    """
    try:
        completed = subprocess.run(
            shlex.split(command),
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except (OSError, ValueError) as e:
        raise PhpstanRunError(command, str(e)) from e

    if completed.returncode != 0 and not completed.stdout.strip():
        reason = completed.stderr.strip() or f"exit code {completed.returncode}"
        raise PhpstanRunError(command, reason, completed.returncode)
    return completed.stdout


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for a CLI run.

    Warnings always reach stderr; --verbose adds debug output through a
    Rich handler.
    """
    handler = RichHandler(
        console=Console(stderr=True), show_path=False, rich_tracebacks=verbose
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
