"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- full post-sync summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action, with
  the diff that would be applied.
- ``report_to_json`` -- structured dict for ``--json`` output.
- ``generate_diff`` -- unified diff between old and new file content.
"""

from __future__ import annotations

import difflib
from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncReport, SyncResult

from .models import SyncAction

_SECTIONS: list[tuple[SyncAction, str]] = [
    (SyncAction.CREATE, "Created"),
    (SyncAction.COMPLETE, "Completed"),
    (SyncAction.COMPLETE_MISSING, "Completed (no longer listed remotely)"),
    (SyncAction.REOPEN, "Reopened"),
    (SyncAction.DROP_DUPLICATE, "Dropped duplicates"),
]


def _label(r: SyncResult) -> str:
    if r.external_id is not None:
        return f"[{r.external_id}] {r.description}".rstrip()
    return r.description


# ------------------------------------------------------------------
# Diff
# ------------------------------------------------------------------


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "old",
    label_new: str = "new",
) -> str:
    """Generate a unified diff between two strings.

    Returns:
        A unified diff string.  Empty string if the contents are identical.
    """
    diff_lines = difflib.unified_diff(
        old_content.splitlines(True),
        new_content.splitlines(True),
        fromfile=label_old,
        tofile=label_new,
    )
    return "".join(diff_lines)


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Unchanged records are summarised by count only.
    """
    lines: list[str] = []

    header = f"Sync report for '{report.todo_file}'"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"{report.record_count} todos: "
        f"{len(report.created)} created, "
        f"{len(report.completed)} completed, "
        f"{len(report.reopened)} reopened, "
        f"{len(report.warnings)} warnings"
    )
    if report.written:
        lines.append(f"Wrote {report.bytes_written} bytes")
    elif not report.dry_run:
        lines.append("File unchanged")
    lines.append("")

    for action, title in _SECTIONS:
        results = report.by_action(action)
        if not results:
            continue
        lines.append(f"{title}:")
        for r in results:
            lines.append(f"  {_label(r)}")
        lines.append("")

    if report.warnings:
        lines.append("Warnings:")
        for r in report.warnings:
            lines.append(f"  {_label(r) or '(no id)'}: {r.error}")
        lines.append("")

    unchanged = len(report.retained) + len(report.missing)
    if unchanged:
        lines.append(
            f"Unchanged: {unchanged} synced todos "
            f"({len(report.missing)} no longer listed remotely)"
        )
    if report.local_only:
        lines.append(f"Local only: {len(report.local_only)} todos")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: SyncReport) -> str:
    """Format a dry-run preview grouped by action type, then the diff."""
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"File: {report.todo_file}")
    lines.append("")

    groups: dict[SyncAction, list[SyncResult]] = defaultdict(list)
    for r in report.results:
        groups[r.action].append(r)

    for action, _title in _SECTIONS:
        if action not in groups:
            continue
        label = action.value.upper().replace("_", " ")
        lines.append(f"[{label}]")
        for r in groups[action]:
            lines.append(f"  {_label(r)}")
        lines.append("")

    if report.diff:
        lines.append(report.diff.rstrip())
        lines.append("")
    else:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation."""
    results_list = []
    for r in report.results:
        entry: dict = {
            "external_id": r.external_id,
            "action": r.action.value,
            "description": r.description,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "todo_file": report.todo_file,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "written": report.written,
        "bytes_written": report.bytes_written,
        "counts": {
            "total": len(report.results),
            "records": report.record_count,
            "created": len(report.created),
            "completed": len(report.completed),
            "reopened": len(report.reopened),
            "retained": len(report.retained),
            "missing": len(report.missing),
            "local_only": len(report.local_only),
            "warnings": len(report.warnings),
        },
        "results": results_list,
    }
