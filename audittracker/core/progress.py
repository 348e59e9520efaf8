"""Daily progress log and aggregate reporting.

The record_* functions assume the caller has already established that a real
state transition happened; they never de-duplicate. Reporting totals come
from the current tracked files, not from the action log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from .models import (
    DailyProgressEntry,
    ProgressAction,
    ProgressActionType,
    RootState,
)


def today_key(day: Optional[date] = None) -> str:
    """Local-clock calendar date as YYYY-MM-DD."""
    return (day or date.today()).isoformat()


def entry_for(state: RootState, day: Optional[date] = None, *, create: bool = True) -> Optional[DailyProgressEntry]:
    key = today_key(day)
    for entry in state.progress_history:
        if entry.date == key:
            return entry
    if not create:
        return None
    entry = DailyProgressEntry(date=key)
    state.progress_history.append(entry)
    return entry


def record_function_read(
    state: RootState, file_path: str, function_name: str, line_count: int, *, day: Optional[date] = None
) -> ProgressAction:
    entry = entry_for(state, day)
    entry.functions_read += 1
    entry.lines_read += line_count
    action = ProgressAction(ProgressActionType.FUNCTION_READ, file_path, function_name, line_count)
    entry.actions.append(action)
    return action


def record_function_reviewed(
    state: RootState, file_path: str, function_name: str, line_count: int, *, day: Optional[date] = None
) -> ProgressAction:
    entry = entry_for(state, day)
    entry.functions_reviewed += 1
    entry.lines_reviewed += line_count
    action = ProgressAction(ProgressActionType.FUNCTION_REVIEWED, file_path, function_name, line_count)
    entry.actions.append(action)
    return action


def record_file_read(state: RootState, file_path: str, *, day: Optional[date] = None) -> ProgressAction:
    entry = entry_for(state, day)
    entry.files_read += 1
    action = ProgressAction(ProgressActionType.FILE_READ, file_path)
    entry.actions.append(action)
    return action


def record_file_reviewed(state: RootState, file_path: str, *, day: Optional[date] = None) -> ProgressAction:
    entry = entry_for(state, day)
    entry.files_reviewed += 1
    action = ProgressAction(ProgressActionType.FILE_REVIEWED, file_path)
    entry.actions.append(action)
    return action


# --- Reporting ---


@dataclass
class DayReport:
    entry: DailyProgressEntry
    actions_by_type: Dict[ProgressActionType, List[ProgressAction]] = field(default_factory=dict)

    @property
    def date(self) -> str:
        return self.entry.date


@dataclass
class ProgressTotals:
    total_functions: int = 0
    total_read: int = 0
    total_reviewed: int = 0
    total_files: int = 0
    files_fully_read: int = 0
    files_fully_reviewed: int = 0
    total_lines: int = 0
    lines_read: int = 0
    lines_reviewed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalFunctions": self.total_functions,
            "totalRead": self.total_read,
            "totalReviewed": self.total_reviewed,
            "totalFiles": self.total_files,
            "filesFullyRead": self.files_fully_read,
            "filesFullyReviewed": self.files_fully_reviewed,
            "totalLines": self.total_lines,
            "linesRead": self.lines_read,
            "linesReviewed": self.lines_reviewed,
        }


@dataclass
class ProgressReport:
    days: List[DayReport]
    totals: ProgressTotals
    all_time: DailyProgressEntry

    def to_dict(self) -> Dict[str, Any]:
        all_time = self.all_time.to_dict()
        all_time.pop("actions", None)
        all_time.pop("date", None)
        return {
            "totals": self.totals.to_dict(),
            "allTime": all_time,
            "days": [
                {
                    **{k: v for k, v in day.entry.to_dict().items() if k != "actions"},
                    "actions": {t.value: [a.to_dict() for a in acts] for t, acts in day.actions_by_type.items()},
                }
                for day in self.days
            ],
        }


def _date_sort_key(entry: DailyProgressEntry) -> tuple[bool, str]:
    # Well-formed dates first, newest first; anything else after them.
    return (entry.date[:1].isdigit(), entry.date)


def current_totals(state: RootState) -> ProgressTotals:
    totals = ProgressTotals()
    for tracked in state.files.values():
        visible = tracked.visible_functions()
        if not visible:
            continue
        totals.total_files += 1
        totals.total_functions += len(visible)
        for fn in visible:
            totals.total_lines += fn.line_count
            if fn.is_read:
                totals.total_read += 1
                totals.lines_read += fn.line_count
            if fn.is_reviewed:
                totals.total_reviewed += 1
                totals.lines_reviewed += fn.line_count
        if tracked.is_fully_read():
            totals.files_fully_read += 1
        if tracked.is_fully_reviewed():
            totals.files_fully_reviewed += 1
    return totals


def build_progress_report(state: RootState) -> ProgressReport:
    all_time = DailyProgressEntry(date="all")
    days: List[DayReport] = []
    for entry in sorted(state.progress_history, key=_date_sort_key, reverse=True):
        by_type: Dict[ProgressActionType, List[ProgressAction]] = {}
        for action in entry.actions:
            by_type.setdefault(action.type, []).append(action)
        days.append(DayReport(entry=entry, actions_by_type=by_type))

        all_time.functions_read += entry.functions_read
        all_time.functions_reviewed += entry.functions_reviewed
        all_time.lines_read += entry.lines_read
        all_time.lines_reviewed += entry.lines_reviewed
        all_time.files_read += entry.files_read
        all_time.files_reviewed += entry.files_reviewed

    return ProgressReport(days=days, totals=current_totals(state), all_time=all_time)
