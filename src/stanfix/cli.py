"""stanfix CLI - Main entry point."""

from __future__ import annotations

import dataclasses
import difflib
import json
import logging
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from stanfix import __version__
from stanfix.cli_utils import (
    DEFAULT_PHPSTAN_COMMAND,
    EXIT_SYSTEM_ERROR,
    EXIT_USER_ERROR,
    PhpstanRunError,
    config_option,
    find_project_root,
    format_issue_lines,
    run_phpstan,
    setup_logging,
    wire_config,
)
from stanfix.config import Configuration, ConfigurationError
from stanfix.fixers.factory import FixerLoadError
from stanfix.fixers.registry import FixerRegistry, create_default_registry
from stanfix.issue import Issue
from stanfix.report import ReportParseError, load_report, parse_report
from stanfix.service import FileFixReport, FixService, write_source

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="stanfix",
    help="stanfix - Automatically fix PHPStan errors by adding PHPDoc annotations.",
    add_completion=False,
)

# Rich consoles for output
console = Console()
err_console = Console(stderr=True)

MODES = ("suggest", "apply")


# -----------------------------------------------------------------------------
# Output Helpers
# -----------------------------------------------------------------------------


def _output_success(message: str, quiet: bool = False) -> None:
    """Print a success message."""
    if not quiet:
        console.print(f"[green]Success:[/green] {message}")


def _output_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[red]Error:[/red] {message}")


def _output_warning(message: str, quiet: bool = False) -> None:
    """Print a warning message."""
    if not quiet:
        err_console.print(f"[yellow]Warning:[/yellow] {message}")


def _output_info(message: str, quiet: bool = False) -> None:
    """Print an info message."""
    if not quiet:
        console.print(message)


def _exit_error(message: str, exit_code: int = EXIT_USER_ERROR) -> NoReturn:
    """Print error and exit."""
    _output_error(message)
    raise typer.Exit(code=exit_code)


# -----------------------------------------------------------------------------
# Version and Main Callbacks
# -----------------------------------------------------------------------------


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"stanfix version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """stanfix - Automatically fix PHPStan errors by adding PHPDoc annotations."""
    pass


# -----------------------------------------------------------------------------
# Fix Command
# -----------------------------------------------------------------------------


@app.command()
def fix(
    input_file: Path | None = typer.Option(
        None,
        "--input",
        "-i",
        help="Path to PHPStan JSON output file. If omitted, PHPStan is run automatically.",
    ),
    mode: str = typer.Option(
        "suggest",
        "--mode",
        "-m",
        help='"suggest" shows proposed changes, "apply" writes changes to disk.',
    ),
    phpstan_command: str = typer.Option(
        DEFAULT_PHPSTAN_COMMAND,
        "--phpstan-command",
        help="PHPStan command to run when --input is not given.",
    ),
    only_fixer: str | None = typer.Option(
        None,
        "--fixer",
        "-f",
        help="Apply only the named fixer.",
    ),
    config: Path | None = config_option(),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output for CI.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Show debug logging.",
    ),
) -> None:
    """Fix PHPStan errors from a JSON report.

    In suggest mode (the default) the proposed changes are shown as unified
    diffs and no file is touched. In apply mode the changed files are
    written back.

    Exits with code 1 on invalid input or configuration, and 2 if PHPStan
    cannot be run or a file cannot be written.
    """
    setup_logging(verbose)

    if mode not in MODES:
        _exit_error(f'Invalid mode "{mode}". Must be one of: {", ".join(MODES)}')

    cwd = Path.cwd()
    project_root = find_project_root(cwd) or cwd
    configuration = wire_config(config_path=config, start_dir=cwd)

    if only_fixer is not None:
        try:
            configuration = dataclasses.replace(configuration, enabled_fixers=[only_fixer])
        except ConfigurationError as e:
            _exit_error(f"Invalid configuration: {e}")

    issues = _load_issues(input_file, phpstan_command, project_root, quiet or json_output)

    registry = _build_registry(configuration)
    if only_fixer is not None and not registry.has_fixer(only_fixer):
        _exit_error(
            f"Unknown fixer: {only_fixer}. Available: {', '.join(registry.list_names())}"
        )

    if not issues:
        if json_output:
            console.print_json(json.dumps(_json_result(mode, {}, FixService.statistics({}))))
        else:
            _output_success("No issues found!", quiet)
        return

    _output_info(f"Found {len(issues)} issue(s) to fix", quiet or json_output)

    service = FixService(registry, configuration, base_dir=project_root)

    progress_bar = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        disable=quiet or json_output,
    )
    task = progress_bar.add_task("Fixing files", total=None)

    def progress(processed: int, total: int, file_path: str) -> None:
        logger.debug("Processed %d/%d: %s", processed, total, file_path)
        progress_bar.update(task, completed=processed, total=total)

    with progress_bar:
        reports = service.fix_all(issues, progress)
    stats = service.statistics(reports)

    written: list[str] = []
    if mode == "apply":
        written = _apply_fixes(reports)

    if json_output:
        result = _json_result(mode, reports, stats)
        result["written"] = written
        console.print_json(json.dumps(result))
        return

    _print_results(reports, stats, mode, service, quiet)
    if mode == "apply":
        for file_path in written:
            _output_info(f"[green]✓[/green] Fixed: {file_path}", quiet)
        if written:
            _output_success(f"Applied fixes to {len(written)} file(s)", quiet)


def _load_issues(
    input_file: Path | None,
    phpstan_command: str,
    project_root: Path,
    quiet: bool,
) -> list[Issue]:
    """Read Issues from --input or from a PHPStan run."""
    try:
        if input_file is not None:
            return load_report(input_file)

        _output_info(f"Running PHPStan: {phpstan_command}", quiet)
        output = run_phpstan(phpstan_command, cwd=project_root)
        return parse_report(output, source=phpstan_command)
    except ReportParseError as e:
        _exit_error(str(e))
    except PhpstanRunError as e:
        _exit_error(str(e), exit_code=EXIT_SYSTEM_ERROR)


def _build_registry(configuration: Configuration) -> FixerRegistry:
    try:
        return create_default_registry(configuration)
    except FixerLoadError as e:
        _exit_error(str(e))
    except ValueError as e:
        _exit_error(f"Invalid fixer setup: {e}")


def _apply_fixes(reports: dict[str, FileFixReport]) -> list[str]:
    """Write changed files back to disk.

    Returns:
        Paths written.
    """
    written: list[str] = []
    for file_path, report in reports.items():
        if not report.has_changes:
            continue
        try:
            write_source(file_path, report.final_content)
        except OSError as e:
            _exit_error(f"Failed to write {file_path}: {e}", exit_code=EXIT_SYSTEM_ERROR)
        written.append(file_path)
    return written


def _unified_diff(file_path: str, original: str, fixed: str) -> str:
    diff = "".join(
        difflib.unified_diff(
            original.splitlines(keepends=True),
            fixed.splitlines(keepends=True),
            fromfile=f"a/{file_path}",
            tofile=f"b/{file_path}",
        )
    )
    # Undecodable bytes are shown as U+FFFD
    return diff.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def _print_results(
    reports: dict[str, FileFixReport],
    stats: dict[str, int],
    mode: str,
    service: FixService,
    quiet: bool,
) -> None:
    """Print the statistics table, proposed diffs and remaining issues."""
    if quiet:
        console.print(
            f"{stats['issues_fixed']}/{stats['total_issues']} issue(s) fixed "
            f"in {stats['files_fixed']} file(s)"
        )
        return

    table = Table(title="Fix Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Total Files", str(stats["total_files"]))
    table.add_row("Files Fixed", str(stats["files_fixed"]))
    table.add_row("Total Issues", str(stats["total_issues"]))
    table.add_row("Issues Fixed", str(stats["issues_fixed"]))
    table.add_row("Issues Ignored", str(stats["issues_ignored"]))
    table.add_row("Issues Reported", str(stats["issues_reported"]))
    table.add_row("Issues Failed", str(stats["issues_failed"]))
    console.print(table)

    if mode == "suggest":
        console.print("\n[bold]Proposed Changes[/bold]")
        for file_path, report in reports.items():
            if not report.has_changes:
                continue
            console.print(f"[cyan]{file_path}[/cyan]")
            diff = _unified_diff(file_path, report.original_content, report.final_content)
            console.print(diff, markup=False, highlight=False)
            for result in report.results:
                mark = "✓" if result.is_success else "✗"
                console.print(f"  {mark} {result.change_description()}", markup=False)
        console.print("Run with --mode=apply to apply these changes")

    reported = service.reported_issues(reports)
    if reported:
        console.print("\n[bold]Reported Issues (not fixed per configuration)[/bold]")
        console.print(format_issue_lines(reported), markup=False)

    unfixed = service.unfixed_issues(reports)
    if unfixed:
        console.print("\n[bold]Unfixed Issues (PHPStan format)[/bold]")
        _output_warning(f"{len(unfixed)} issue(s) could not be automatically fixed")
        console.print(format_issue_lines(unfixed), markup=False)

    ignored = service.ignored_issues(reports)
    if ignored:
        console.print(f"\n{len(ignored)} issue(s) were ignored per configuration.")


def _issue_dict(issue: Issue) -> dict[str, Any]:
    return {"file": issue.file_path, "line": issue.line, "message": issue.message}


def _json_result(
    mode: str,
    reports: dict[str, FileFixReport],
    stats: dict[str, int],
) -> dict[str, Any]:
    files = []
    for file_path, report in reports.items():
        entry: dict[str, Any] = {
            "file": file_path,
            "fixed": report.fixed_count,
            "changes": [r.change_description() for r in report.results if r.is_success],
            "unfixed": [_issue_dict(i) for i in report.unfixed_issues],
            "reported": [_issue_dict(i) for i in report.reported_issues],
            "ignored": [_issue_dict(i) for i in report.ignored_issues],
        }
        if mode == "suggest" and report.has_changes:
            entry["diff"] = _unified_diff(
                file_path, report.original_content, report.final_content
            )
        files.append(entry)
    return {"mode": mode, "statistics": stats, "files": files}


# -----------------------------------------------------------------------------
# Fixers Command
# -----------------------------------------------------------------------------


@app.command()
def fixers(
    config: Path | None = config_option(),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON.",
    ),
) -> None:
    """List registered fixers in dispatch order."""
    configuration = wire_config(config_path=config)
    registry = _build_registry(configuration)
    registrations = registry.registrations()

    if json_output:
        data = [
            {
                "name": r.name,
                "priority": r.priority,
                "enabled": r.enabled,
                "description": r.fixer.description,
            }
            for r in registrations
        ]
        console.print_json(json.dumps(data))
        return

    table = Table(title="Fixers")
    table.add_column("Name", style="cyan")
    table.add_column("Priority", justify="right")
    table.add_column("Enabled")
    table.add_column("Description")
    for r in registrations:
        enabled = "[green]yes[/green]" if r.enabled else "[red]no[/red]"
        table.add_row(r.name, str(r.priority), enabled, r.fixer.description)
    console.print(table)


if __name__ == "__main__":
    app()
