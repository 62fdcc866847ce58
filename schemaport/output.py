"""Styled terminal output for schemaport reports.

The engine itself only logs. Tools built on it (scripts, notebooks, a CLI
living in another package) print through these helpers so every report
looks the same.

Basic Usage:
    from schemaport.output import success, info, warn, error, detail

    success("Imported 12 item types")
    info("Checking 40 entities for conflicts")
    warn("2 colliding entities need a resolution")
    error("Create field failed for 'hero_image'")
    detail("blog_post: identical")

Reports:
    print_conflict_report(report)
    print_import_result(result, dry_run=True)

Progress:
    controller = TaskController()
    await build_conflicts(..., on_progress=progress_printer("Checking conflicts"))

Dry-Run Mode:
    ``dry_run=True`` prefixes messages with [DRY RUN], for imports applied
    to an in-memory copy of the destination.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, TextIO

import click

if TYPE_CHECKING:
    from schemaport.schema.apply import ImportResult
    from schemaport.schema.conflicts import ConflictReport

# ANSI color codes via click's style system
_STYLES = {
    "success": {"fg": "green"},
    "info": {"fg": "blue"},
    "warn": {"fg": "yellow"},
    "error": {"fg": "red"},
    "detail": {"fg": "bright_black"},  # Dimmed/gray
}

_PREFIXES = {
    "success": "✓",  # checkmark
    "info": "→",  # arrow
    "warn": "⚠",  # warning
    "error": "✗",  # X
    "detail": " ",  # space (no prefix, just indent)
}

_DISPOSITION_STYLES = {
    "new": "success",
    "identical": "detail",
    "colliding": "warn",
}


def _output(
    message: str,
    style: str,
    *,
    file: TextIO | None = None,
    nl: bool = True,
    dry_run: bool = False,
) -> None:
    if dry_run:
        message = f"[DRY RUN] {message}"

    fg_color = _STYLES[style]["fg"]
    styled_prefix = click.style(_PREFIXES[style], fg=fg_color)
    styled_message = click.style(message, fg=fg_color)
    click.echo(f"{styled_prefix} {styled_message}", file=file, nl=nl)


def success(message: str, *, file: TextIO | None = None, nl: bool = True, dry_run: bool = False) -> None:
    """Print a success message with green checkmark (stdout)."""
    _output(message, "success", file=file, nl=nl, dry_run=dry_run)


def info(message: str, *, file: TextIO | None = None, nl: bool = True, dry_run: bool = False) -> None:
    """Print an info message with blue arrow (stdout)."""
    _output(message, "info", file=file, nl=nl, dry_run=dry_run)


def warn(message: str, *, file: TextIO | None = None, nl: bool = True, dry_run: bool = False) -> None:
    """Print a warning with yellow warning symbol (stderr by default)."""
    _output(message, "warn", file=file or sys.stderr, nl=nl, dry_run=dry_run)


def error(message: str, *, file: TextIO | None = None, nl: bool = True, dry_run: bool = False) -> None:
    """Print an error with red X (stderr by default)."""
    _output(message, "error", file=file or sys.stderr, nl=nl, dry_run=dry_run)


def detail(message: str, *, file: TextIO | None = None, nl: bool = True, dry_run: bool = False) -> None:
    """Print a dimmed detail line (stdout)."""
    _output(message, "detail", file=file, nl=nl, dry_run=dry_run)


def print_conflict_report(report: ConflictReport, *, file: TextIO | None = None) -> None:
    """Print one line per entity, then the differences of colliding ones.

    Args:
        report: Report to print.
        file: File to write to (default: stdout for every line).
    """
    out = file or sys.stdout
    counts = report.counts()
    info(
        f"{counts['new']} new, {counts['identical']} identical, "
        f"{counts['colliding']} colliding",
        file=out,
    )
    for entry in report.entries():
        style = _DISPOSITION_STYLES[entry.disposition.value]
        _output(f"{entry.kind} {entry.label}: {entry.disposition.value}", style, file=out)
        for difference in entry.differences:
            detail(f"  {difference}", file=out)

    if report.has_collisions:
        warn(f"{counts['colliding']} colliding entities need a resolution", file=out)


def print_import_result(
    result: ImportResult, *, file: TextIO | None = None, dry_run: bool = False
) -> None:
    """Print what an import created, reused and skipped."""
    out = file or sys.stdout
    success(
        f"Created {result.item_types_created} item types, {result.plugins_created} plugins, "
        f"{result.fieldsets_created} fieldsets, {result.fields_created} fields",
        file=out,
        dry_run=dry_run,
    )
    if result.item_types_reused or result.plugins_reused:
        info(
            f"Reused {result.item_types_reused} item types, {result.plugins_reused} plugins",
            file=out,
            dry_run=dry_run,
        )
    if result.fields_patched:
        detail(f"Patched {result.fields_patched} cyclic references", file=out, dry_run=dry_run)
    skipped = len(result.skipped_item_type_ids) + len(result.skipped_plugin_ids)
    if skipped:
        warn(f"Skipped {skipped} entities", file=out, dry_run=dry_run)


def progress_printer(label: str, *, file: TextIO | None = None) -> Callable[[int, int], None]:
    """Return an ``on_progress`` callback printing ``label: done/total`` on one line."""
    out = file or sys.stdout

    def on_progress(done: int, total: int) -> None:
        _output(f"{label}: {done}/{total}", "detail", file=out, nl=done >= total)
        if done < total:
            click.echo("\r", file=out, nl=False)

    return on_progress
