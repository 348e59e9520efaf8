from __future__ import annotations

from typing import Iterable, List

from .models import FunctionFilters, FunctionRecord, FunctionStatus, FunctionTag, TrackedFile

_STATUS_PRIORITY = {
    FunctionStatus.UNREAD: 0,
    FunctionStatus.READ: 1,
    FunctionStatus.REVIEWED: 2,
}


def function_status(fn: FunctionRecord) -> FunctionStatus:
    if fn.is_reviewed:
        return FunctionStatus.REVIEWED
    if fn.read_count > 0:
        return FunctionStatus.READ
    return FunctionStatus.UNREAD


def matches(fn: FunctionRecord, filters: FunctionFilters) -> bool:
    """Status group AND tag group; tags combine with OR. Empty groups match all."""
    status_ok = not filters.statuses or function_status(fn) in filters.statuses
    tag_ok = (
        not filters.tags
        or (FunctionTag.ENTRYPOINT in filters.tags and fn.is_entrypoint)
        or (FunctionTag.ADMIN in filters.tags and fn.is_admin)
    )
    return status_ok and tag_ok


def visible_functions(file: TrackedFile, filters: FunctionFilters) -> List[FunctionRecord]:
    """Non-hidden functions matching `filters`: unread first, then read, then reviewed, by line."""
    shown = [fn for fn in file.functions if not fn.is_hidden and matches(fn, filters)]
    return sorted(shown, key=lambda fn: (_STATUS_PRIORITY[function_status(fn)], fn.start_line))


def is_file_visible(file: TrackedFile, filters: FunctionFilters) -> bool:
    return any(not fn.is_hidden and matches(fn, filters) for fn in file.functions)


def visible_files(files: Iterable[TrackedFile], filters: FunctionFilters) -> List[TrackedFile]:
    return sorted((f for f in files if is_file_visible(f, filters)), key=lambda f: f.relative_path)
