"""Markdown rendering for the CLI and MCP server."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .core.filters import function_status
from .core.models import FunctionFilters, FunctionRecord, FunctionStatus, ProgressActionType, TrackedFile
from .core.progress import ProgressReport, ProgressTotals

_STATUS_MARK = {
    FunctionStatus.UNREAD: "[ ]",
    FunctionStatus.READ: "[r]",
    FunctionStatus.REVIEWED: "[x]",
}

_ACTION_TITLES = {
    ProgressActionType.FUNCTION_READ: "Functions read",
    ProgressActionType.FUNCTION_REVIEWED: "Functions reviewed",
    ProgressActionType.FILE_READ: "Files read",
    ProgressActionType.FILE_REVIEWED: "Files reviewed",
}


def _pct(part: int, whole: int) -> str:
    if whole <= 0:
        return "0%"
    return f"{part * 100 // whole}%"


def function_line(fn: FunctionRecord) -> str:
    tags = []
    if fn.is_entrypoint:
        tags.append("entrypoint")
    if fn.is_admin:
        tags.append("admin")
    if fn.is_hidden:
        tags.append("hidden")
    suffix = f" ({', '.join(tags)})" if tags else ""
    return (
        f"- {_STATUS_MARK[function_status(fn)]} `{fn.name}` "
        f"L{fn.start_line + 1}-{fn.end_line + 1}{suffix}\n    id: `{fn.id}`"
    )


def file_summary(file: TrackedFile) -> str:
    visible = file.visible_functions()
    read = sum(1 for fn in visible if fn.is_read)
    reviewed = sum(1 for fn in visible if fn.is_reviewed)
    return f"{file.relative_path}: {read}/{len(visible)} read, {reviewed}/{len(visible)} reviewed"


def render_files(files: Sequence[TrackedFile], filters: FunctionFilters) -> str:
    lines = [f"# Files in scope ({len(files)})", "", f"_Filters: {describe_filters(filters)}_", ""]
    if not files:
        lines.append("No files match the current filters.")
    for f in files:
        lines.append(f"- {file_summary(f)}")
    return "\n".join(lines)


def render_functions(file: TrackedFile, functions: Sequence[FunctionRecord], *, include_hidden: Sequence[FunctionRecord] = ()) -> str:
    lines = [f"## {file_summary(file)}", ""]
    if not functions and not include_hidden:
        lines.append("No functions match the current filters.")
    lines.extend(function_line(fn) for fn in functions)
    lines.extend(function_line(fn) for fn in include_hidden)
    return "\n".join(lines)


def describe_filters(filters: FunctionFilters) -> str:
    statuses = ", ".join(s.value for s in filters.statuses) or "all"
    tags = " or ".join(t.value for t in filters.tags) or "any"
    return f"status in [{statuses}], tags: {tags}"


def _totals_table(totals: ProgressTotals) -> List[str]:
    return [
        "| Metric | Done | Total | % |",
        "|--------|------|-------|---|",
        f"| Functions read | {totals.total_read} | {totals.total_functions} | {_pct(totals.total_read, totals.total_functions)} |",
        f"| Functions reviewed | {totals.total_reviewed} | {totals.total_functions} | {_pct(totals.total_reviewed, totals.total_functions)} |",
        f"| Files fully read | {totals.files_fully_read} | {totals.total_files} | {_pct(totals.files_fully_read, totals.total_files)} |",
        f"| Files fully reviewed | {totals.files_fully_reviewed} | {totals.total_files} | {_pct(totals.files_fully_reviewed, totals.total_files)} |",
        f"| Lines read | {totals.lines_read} | {totals.total_lines} | {_pct(totals.lines_read, totals.total_lines)} |",
        f"| Lines reviewed | {totals.lines_reviewed} | {totals.total_lines} | {_pct(totals.lines_reviewed, totals.total_lines)} |",
    ]


def render_progress(report: ProgressReport, *, max_days: Optional[int] = None) -> str:
    lines = ["# Audit Progress", "", "## Current", ""]
    lines.extend(_totals_table(report.totals))

    at = report.all_time
    lines += [
        "",
        "## All time",
        "",
        f"- Functions read: {at.functions_read} ({at.lines_read} lines)",
        f"- Functions reviewed: {at.functions_reviewed} ({at.lines_reviewed} lines)",
        f"- Files read: {at.files_read}",
        f"- Files reviewed: {at.files_reviewed}",
    ]

    days = report.days if max_days is None else report.days[:max_days]
    if not days:
        lines += ["", "No activity recorded yet."]
    for day in days:
        e = day.entry
        lines += [
            "",
            f"## {e.date}",
            "",
            f"{e.functions_read} read ({e.lines_read} lines), {e.functions_reviewed} reviewed ({e.lines_reviewed} lines), "
            f"{e.files_read} file(s) read, {e.files_reviewed} file(s) reviewed",
        ]
        for action_type, title in _ACTION_TITLES.items():
            actions = day.actions_by_type.get(action_type)
            if not actions:
                continue
            lines += ["", f"### {title}"]
            for a in actions:
                if a.function_name is not None:
                    lines.append(f"- `{a.function_name}` in {a.file_path} ({a.line_count or 0} lines)")
                else:
                    lines.append(f"- {a.file_path}")
    if max_days is not None and len(report.days) > max_days:
        lines.append(f"\n... and {len(report.days) - max_days} earlier day(s)")
    return "\n".join(lines)


def status_dict(
    *,
    root: str,
    state_path: Optional[str],
    scope_paths: Sequence[str],
    excluded_paths: Sequence[str],
    totals: ProgressTotals,
) -> Dict[str, Any]:
    return {
        "root": root,
        "statePath": state_path,
        "scopePaths": list(scope_paths),
        "excludedPaths": list(excluded_paths),
        "totals": totals.to_dict(),
    }


def render_status(status: Dict[str, Any]) -> str:
    t = status["totals"]
    lines = [
        "# Audit Tracker Status",
        "",
        f"**Workspace:** {status['root']}",
        f"**State file:** {status['statePath'] or '(not persisted)'}",
        "",
        f"## Scope ({len(status['scopePaths'])})",
    ]
    lines += [f"- {p}" for p in status["scopePaths"]] or ["- (none)"]
    if status["excludedPaths"]:
        lines += ["", f"## Excluded ({len(status['excludedPaths'])})"]
        lines += [f"- {p}" for p in status["excludedPaths"]]
    lines += [
        "",
        f"**Files:** {t['totalFiles']}  **Functions:** {t['totalFunctions']}  "
        f"**Read:** {t['totalRead']}  **Reviewed:** {t['totalReviewed']}",
    ]
    return "\n".join(lines)
