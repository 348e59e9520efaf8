"""Field-by-field validation of a parsed state document.

Every value read from disk is treated as untrusted JSON. Each field is checked
on its own and falls back to a safe default; nothing here raises for any JSON
value. Running the output back through `normalize_state(state.to_dict())`
yields an equal state.
"""

from __future__ import annotations

import math
import os
from typing import Any, Dict, Iterable, List, Optional, Set

from .models import (
    DEFAULT_STATUSES,
    STATE_VERSION,
    DailyProgressEntry,
    FunctionFilters,
    FunctionRecord,
    FunctionStatus,
    FunctionTag,
    ProgressAction,
    ProgressActionType,
    RootState,
    TrackedFile,
    make_function_id,
    now_ms,
)

_STATUS_VALUES = {s.value for s in FunctionStatus}
_TAG_VALUES = {t.value for t in FunctionTag}
_ACTION_VALUES = {a.value for a in ProgressActionType}

_COUNTER_FIELDS = (
    ("functionsRead", "functions_read"),
    ("functionsReviewed", "functions_reviewed"),
    ("linesRead", "lines_read"),
    ("linesReviewed", "lines_reviewed"),
    ("filesRead", "files_read"),
    ("filesReviewed", "files_reviewed"),
)


def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON true/false are not numbers here.
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and math.isfinite(value)


def _unique(values: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    out: List[str] = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def _coerce_paths(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return _unique(p for p in raw if isinstance(p, str) and p)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0
    return False


def _coerce_count(value: Any) -> int:
    if not _is_number(value):
        return 0
    return max(0, int(value))


def normalize_filters(raw: Any) -> FunctionFilters:
    statuses: List[str] = []
    tags: List[str] = []
    if isinstance(raw, dict):
        raw_statuses = raw.get("statuses")
        if isinstance(raw_statuses, list):
            statuses = _unique(s for s in raw_statuses if isinstance(s, str) and s in _STATUS_VALUES)
        raw_tags = raw.get("tags")
        if isinstance(raw_tags, list):
            tags = _unique(t for t in raw_tags if isinstance(t, str) and t in _TAG_VALUES)

    return FunctionFilters(
        statuses=[FunctionStatus(s) for s in statuses] if statuses else list(DEFAULT_STATUSES),
        tags=[FunctionTag(t) for t in tags],
    )


def _coerce_function(file_path: str, raw: Dict[str, Any]) -> FunctionRecord:
    start = raw.get("startLine")
    start_line = int(start) if _is_number(start) and start >= 0 else 0
    end = raw.get("endLine")
    end_line = int(end) if _is_number(end) else start_line

    name = raw.get("name")
    if not isinstance(name, str):
        name = "unknown"

    fn_id = raw.get("id")
    if not isinstance(fn_id, str) or not fn_id:
        fn_id = make_function_id(file_path, name, start_line)

    read_count = raw.get("readCount")
    return FunctionRecord(
        id=fn_id,
        name=name,
        file_path=file_path,
        start_line=start_line,
        end_line=max(end_line, start_line),
        read_count=1 if _is_number(read_count) and read_count > 0 else 0,
        is_reviewed=_coerce_bool(raw.get("isReviewed")),
        is_entrypoint=_coerce_bool(raw.get("isEntrypoint")),
        is_admin=_coerce_bool(raw.get("isAdmin")),
        is_hidden=_coerce_bool(raw.get("isHidden")),
    )


def _coerce_file(file_path: str, raw: Dict[str, Any]) -> TrackedFile:
    relative_path = raw.get("relativePath")
    if not isinstance(relative_path, str) or not relative_path:
        relative_path = os.path.basename(file_path)

    functions: List[FunctionRecord] = []
    seen_ids: Set[str] = set()
    raw_functions = raw.get("functions")
    if isinstance(raw_functions, list):
        for item in raw_functions:
            if not isinstance(item, dict):
                continue
            fn = _coerce_function(file_path, item)
            if fn.id in seen_ids:
                continue
            seen_ids.add(fn.id)
            functions.append(fn)

    return TrackedFile(file_path=file_path, relative_path=relative_path, functions=functions)


def _coerce_files(raw: Any) -> Dict[str, TrackedFile]:
    if not isinstance(raw, dict):
        return {}
    out: Dict[str, TrackedFile] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key or not isinstance(value, dict):
            continue
        out[key] = _coerce_file(key, value)
    return out


def _coerce_action(raw: Any) -> Optional[ProgressAction]:
    if not isinstance(raw, dict):
        return None
    action_type = raw.get("type")
    if not isinstance(action_type, str) or action_type not in _ACTION_VALUES:
        return None

    file_path = raw.get("filePath")
    function_name = raw.get("functionName")
    line_count = raw.get("lineCount")
    return ProgressAction(
        type=ProgressActionType(action_type),
        file_path=file_path if isinstance(file_path, str) else "unknown",
        function_name=function_name if isinstance(function_name, str) else None,
        line_count=int(line_count) if _is_number(line_count) else None,
    )


def _coerce_entry(raw: Dict[str, Any]) -> DailyProgressEntry:
    date = raw.get("date")
    entry = DailyProgressEntry(date=date if isinstance(date, str) else "unknown")
    for json_key, attr in _COUNTER_FIELDS:
        setattr(entry, attr, _coerce_count(raw.get(json_key)))

    raw_actions = raw.get("actions")
    if isinstance(raw_actions, list):
        for item in raw_actions:
            action = _coerce_action(item)
            if action is not None:
                entry.actions.append(action)
    return entry


def _coerce_history(raw: Any) -> List[DailyProgressEntry]:
    """Validate progress entries; entries sharing a date are merged in order."""
    if not isinstance(raw, list):
        return []
    by_date: Dict[str, DailyProgressEntry] = {}
    out: List[DailyProgressEntry] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        entry = _coerce_entry(item)
        existing = by_date.get(entry.date)
        if existing is None:
            by_date[entry.date] = entry
            out.append(entry)
            continue
        for _, attr in _COUNTER_FIELDS:
            setattr(existing, attr, getattr(existing, attr) + getattr(entry, attr))
        existing.actions.extend(entry.actions)
    return out


def normalize_state(raw: Any) -> RootState:
    """Build a `RootState` from an arbitrary parsed JSON value."""
    if not isinstance(raw, dict):
        return RootState()

    version = raw.get("version")
    last_modified = raw.get("lastModified")
    return RootState(
        version=int(version) if _is_number(version) else STATE_VERSION,
        scope_paths=_coerce_paths(raw.get("scopePaths")),
        excluded_paths=_coerce_paths(raw.get("excludedPaths")),
        function_filters=normalize_filters(raw.get("functionFilters")),
        files=_coerce_files(raw.get("files")),
        progress_history=_coerce_history(raw.get("progressHistory")),
        last_modified=int(last_modified) if _is_number(last_modified) else now_ms(),
    )
