#!/usr/bin/env python3
"""
Audit Tracker MCP Server - review-state tracking for agents assisting an audit

Tools mirror the CLI: scope management, per-function review flags, filters
and the progress report. One audit session is held per server process.

Typical workflow:
1. audit_init with the repository path (loads SCOPE.txt/SCOPE.md if scope is empty)
2. audit_list_functions to see what is left
3. audit_mark as functions are read and reviewed
4. audit_progress to summarize the day
"""

from __future__ import annotations

import json
from enum import Enum
from typing import List, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import BaseModel, ConfigDict, Field

from .core.errors import AuditTrackerError
from .core.models import FunctionFilters, FunctionStatus, FunctionTag
from .report import render_files, render_functions, render_progress, render_status
from .session import AuditSession
from .workspace import find_workspace_root

mcp = FastMCP("audittracker_mcp")

_session: Optional[AuditSession] = None

CHARACTER_LIMIT = 25000


class ResponseFormat(str, Enum):
    MARKDOWN = "markdown"
    JSON = "json"


class Flag(str, Enum):
    READ = "read"
    REVIEWED = "reviewed"
    ENTRYPOINT = "entrypoint"
    ADMIN = "admin"
    HIDDEN = "hidden"


# ============================================================================
# Input Models
# ============================================================================


class InitInput(BaseModel):
    """Input for opening an audit session."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    path: Optional[str] = Field(
        default=None,
        description="Workspace root. Defaults to $AUDIT_TRACKER_ROOT or the project containing the server's cwd",
    )
    load_scope_file: bool = Field(
        default=True, description="Seed scope from SCOPE.txt/SCOPE.md when no scope paths exist yet"
    )


class PathsInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    paths: List[str] = Field(
        ...,
        description="Files or folders, relative to the workspace root or absolute",
        min_length=1,
        max_length=200,
    )


class ListFilesInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    response_format: ResponseFormat = Field(default=ResponseFormat.MARKDOWN)


class ListFunctionsInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    path: Optional[str] = Field(default=None, description="Only this file (relative or absolute)")
    statuses: Optional[List[FunctionStatus]] = Field(
        default=None, description="Override the stored status filter for this query"
    )
    tags: Optional[List[FunctionTag]] = Field(default=None, description="Override the stored tag filter for this query")
    response_format: ResponseFormat = Field(default=ResponseFormat.MARKDOWN)


class MarkInput(BaseModel):
    """Input for setting or clearing a function flag."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    functions: List[str] = Field(
        ...,
        description="Function ids, or 'path::Name' selectors (e.g. 'src/Vault.sol::Vault.withdraw')",
        min_length=1,
        max_length=200,
    )
    flag: Flag = Field(..., description="Which flag to change")
    value: bool = Field(default=True, description="True to mark, False to unmark")


class SetFiltersInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    statuses: List[FunctionStatus] = Field(default_factory=list, description="Empty means all statuses")
    tags: List[FunctionTag] = Field(default_factory=list, description="Entrypoint/admin; combined with OR")


class ProgressInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    days: Optional[int] = Field(default=None, description="Only the most recent N days", ge=1, le=3650)
    response_format: ResponseFormat = Field(default=ResponseFormat.MARKDOWN)


class ScopeQueryInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    path: str = Field(..., description="Path to test", min_length=1)


# ============================================================================
# Helper Functions
# ============================================================================


async def _get_session(path: Optional[str] = None) -> AuditSession:
    global _session
    if path is not None or _session is None:
        if _session is not None:
            await _session.close()
        _session = await AuditSession.open(path or find_workspace_root())
    return _session


def _truncate_response(response: str, message: str = "") -> str:
    if len(response) <= CHARACTER_LIMIT:
        return response
    truncated = response[: CHARACTER_LIMIT - 200]
    truncated += f"\n\n---\n**TRUNCATED**: Response exceeded {CHARACTER_LIMIT} characters. {message}"
    return truncated


# ============================================================================
# MCP Tools
# ============================================================================


@mcp.tool(
    name="audit_init",
    annotations={
        "title": "Open Audit Session",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def audit_init(params: InitInput) -> str:
    """
    Open the audit session for a workspace and load its saved state.

    Call this first. When the workspace has no scope yet and a SCOPE.txt or
    SCOPE.md exists at its root, every path listed there is added to scope.
    """
    try:
        session = await _get_session(params.path or None)
        result = await session.load_scope_file() if params.load_scope_file else None
    except AuditTrackerError as e:
        return f"Error: {e.reason}"

    out = render_status(session.status())
    if result is not None:
        out += f"\n\nLoaded {result.source.name}: {len(result.added_files)} file(s) added"
        for err in result.errors:
            out += f"\n- line {err.line_no} `{err.line}`: {err.reason}"
    return out


@mcp.tool(
    name="audit_add_to_scope",
    annotations={"title": "Add to Scope", "readOnlyHint": False, "destructiveHint": False, "idempotentHint": True},
)
async def audit_add_to_scope(params: PathsInput) -> str:
    """Add files or folders to the audit scope and extract their functions."""
    session = await _get_session()
    lines = []
    for path in params.paths:
        try:
            files = await session.add_to_scope(path)
        except AuditTrackerError as e:
            lines.append(f"Error: {path}: {e.reason}")
            continue
        lines.append(f"Added {path}: {len(files)} file(s)")
    return "\n".join(lines)


@mcp.tool(
    name="audit_remove_from_scope",
    annotations={"title": "Remove from Scope", "readOnlyHint": False, "destructiveHint": True, "idempotentHint": True},
)
async def audit_remove_from_scope(params: PathsInput) -> str:
    """Remove files or folders from scope. Review flags of dropped files are discarded."""
    session = await _get_session()
    lines = []
    for path in params.paths:
        try:
            dropped = await session.remove_from_scope(path)
        except AuditTrackerError as e:
            lines.append(f"Error: {path}: {e.reason}")
            continue
        lines.append(f"Removed {path}: {len(dropped)} file(s) dropped")
    return "\n".join(lines)


@mcp.tool(
    name="audit_exclude",
    annotations={"title": "Exclude Files", "readOnlyHint": False, "destructiveHint": True, "idempotentHint": True},
)
async def audit_exclude(params: PathsInput) -> str:
    """Exclude individual files from scope, even when a parent folder is in scope."""
    session = await _get_session()
    lines = []
    for path in params.paths:
        try:
            excluded = await session.exclude(path)
        except AuditTrackerError as e:
            lines.append(f"Error: {path}: {e.reason}")
            continue
        lines.append(f"Excluded {len(excluded)} file(s) for {path}")
    return "\n".join(lines)


@mcp.tool(
    name="audit_include",
    annotations={"title": "Re-include Files", "readOnlyHint": False, "destructiveHint": False, "idempotentHint": True},
)
async def audit_include(params: PathsInput) -> str:
    """Lift exclusions added with audit_exclude."""
    session = await _get_session()
    lines = []
    for path in params.paths:
        try:
            lifted = await session.include(path)
        except AuditTrackerError as e:
            lines.append(f"Error: {path}: {e.reason}")
            continue
        lines.append(f"Re-included {path}" if lifted else f"Not excluded: {path}")
    return "\n".join(lines)


@mcp.tool(
    name="audit_refresh",
    annotations={"title": "Refresh Functions", "readOnlyHint": False, "destructiveHint": False, "idempotentHint": True},
)
async def audit_refresh() -> str:
    """Re-extract functions for every in-scope file, keeping review flags."""
    session = await _get_session()
    try:
        count = await session.refresh_all()
    except AuditTrackerError as e:
        return f"Error: {e.reason}"
    return f"Refreshed {count} file(s)"


@mcp.tool(
    name="audit_list_files",
    annotations={"title": "List Files", "readOnlyHint": True, "destructiveHint": False, "idempotentHint": True},
)
async def audit_list_files(params: ListFilesInput) -> str:
    """List in-scope files that have at least one function matching the current filters."""
    session = await _get_session()
    files = session.list_visible_files()
    if params.response_format == ResponseFormat.JSON:
        return _truncate_response(json.dumps([f.to_dict() for f in files], indent=2))
    return _truncate_response(render_files(files, session.store.get_function_filters()))


@mcp.tool(
    name="audit_list_functions",
    annotations={"title": "List Functions", "readOnlyHint": True, "destructiveHint": False, "idempotentHint": True},
)
async def audit_list_functions(params: ListFunctionsInput) -> str:
    """
    List functions matching the filters, unread first, then read, then reviewed.

    Hidden functions are never listed. `statuses` / `tags` apply to this
    query only; use audit_set_filters to change the stored filters.
    """
    session = await _get_session()
    filters = None
    if params.statuses is not None or params.tags is not None:
        stored = session.store.get_function_filters()
        filters = FunctionFilters(
            statuses=list(params.statuses) if params.statuses is not None else list(stored.statuses),
            tags=list(params.tags) if params.tags is not None else list(stored.tags),
        )

    if params.path:
        try:
            tracked = session.store.get_file(str(session.resolve(params.path, must_exist=False)))
        except AuditTrackerError as e:
            return f"Error: {e.reason}"
        if tracked is None:
            return f"Error: {params.path} is not tracked. Add it with audit_add_to_scope."
        files = [tracked]
    else:
        files = session.list_visible_files(filters)

    if params.response_format == ResponseFormat.JSON:
        data = {f.relative_path: [fn.to_dict() for fn in session.list_visible_functions(f, filters)] for f in files}
        return _truncate_response(json.dumps(data, indent=2), "Narrow the query with path or filters.")
    sections = [render_functions(f, session.list_visible_functions(f, filters)) for f in files]
    if not sections:
        return "No files match the current filters."
    return _truncate_response("\n\n".join(sections), "Narrow the query with path or filters.")


@mcp.tool(
    name="audit_mark",
    annotations={"title": "Set Function Flag", "readOnlyHint": False, "destructiveHint": False, "idempotentHint": True},
)
async def audit_mark(params: MarkInput) -> str:
    """
    Mark or unmark functions as read, reviewed, entrypoint, admin or hidden.

    A function must be read before it can be reviewed, and a reviewed
    function must be unmarked reviewed before it can be unmarked read.
    """
    session = await _get_session()
    lines = []
    for selector in params.functions:
        try:
            if params.flag == Flag.READ:
                changed = await (session.mark_read(selector) if params.value else session.unmark_read(selector))
            elif params.flag == Flag.REVIEWED:
                changed = await (session.mark_reviewed(selector) if params.value else session.unmark_reviewed(selector))
            elif params.flag == Flag.ENTRYPOINT:
                changed = await session.set_entrypoint(selector, params.value)
            elif params.flag == Flag.ADMIN:
                changed = await session.set_admin(selector, params.value)
            else:
                changed = await session.set_hidden(selector, params.value)
        except AuditTrackerError as e:
            lines.append(f"Error: {selector}: {e.reason}")
            continue
        verb = "marked" if params.value else "unmarked"
        lines.append(f"{verb} {params.flag.value}: {selector}" + ("" if changed else " (unchanged)"))
    return "\n".join(lines)


@mcp.tool(
    name="audit_set_filters",
    annotations={"title": "Set Filters", "readOnlyHint": False, "destructiveHint": False, "idempotentHint": True},
)
async def audit_set_filters(params: SetFiltersInput) -> str:
    """Replace the stored function filters. No statuses means all statuses."""
    session = await _get_session()
    try:
        filters = await session.set_filters([s.value for s in params.statuses], [t.value for t in params.tags])
    except AuditTrackerError as e:
        return f"Error: {e.reason}"
    return json.dumps(filters.to_dict())


@mcp.tool(
    name="audit_progress",
    annotations={"title": "Progress Report", "readOnlyHint": True, "destructiveHint": False, "idempotentHint": True},
)
async def audit_progress(params: ProgressInput) -> str:
    """Daily activity log, all-time totals and current completion counts."""
    session = await _get_session()
    report = session.get_progress_report()
    if params.response_format == ResponseFormat.JSON:
        data = report.to_dict()
        if params.days is not None:
            data["days"] = data["days"][: params.days]
        return _truncate_response(json.dumps(data, indent=2), "Use the days parameter.")
    return _truncate_response(render_progress(report, max_days=params.days), "Use the days parameter.")


@mcp.tool(
    name="audit_status",
    annotations={"title": "Audit Status", "readOnlyHint": True, "destructiveHint": False, "idempotentHint": True},
)
async def audit_status(params: ListFilesInput) -> str:
    """Workspace, state file location, scope and current totals."""
    session = await _get_session()
    status = session.status()
    if params.response_format == ResponseFormat.JSON:
        return json.dumps(status, indent=2)
    return render_status(status)


@mcp.tool(
    name="audit_is_in_scope",
    annotations={"title": "Is In Scope", "readOnlyHint": True, "destructiveHint": False, "idempotentHint": True},
)
async def audit_is_in_scope(params: ScopeQueryInput) -> str:
    """Whether a path is in scope (exclusions win over included folders)."""
    session = await _get_session()
    return "yes" if session.is_in_scope(params.path) else "no"


def main():
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
