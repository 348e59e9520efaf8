from __future__ import annotations

from dataclasses import replace
from datetime import date

from audittracker.core import progress
from audittracker.core.models import (
    DailyProgressEntry,
    FunctionRecord,
    ProgressActionType,
    RootState,
    TrackedFile,
)

DAY1 = date(2024, 5, 1)
DAY2 = date(2024, 5, 2)


def test_entries_are_created_lazily_per_date() -> None:
    state = RootState()
    assert progress.entry_for(state, DAY1, create=False) is None
    assert state.progress_history == []

    progress.record_function_read(state, "src/A.sol", "A.f", 10, day=DAY1)
    progress.record_function_read(state, "src/A.sol", "A.g", 5, day=DAY1)
    progress.record_function_reviewed(state, "src/A.sol", "A.f", 10, day=DAY2)

    assert [e.date for e in state.progress_history] == ["2024-05-01", "2024-05-02"]
    day1 = state.progress_history[0]
    assert day1.functions_read == 2
    assert day1.lines_read == 15
    assert [a.function_name for a in day1.actions] == ["A.f", "A.g"]
    day2 = state.progress_history[1]
    assert day2.functions_reviewed == 1
    assert day2.lines_reviewed == 10


def test_file_actions_have_no_function_fields() -> None:
    state = RootState()
    action = progress.record_file_read(state, "src/A.sol", day=DAY1)
    progress.record_file_reviewed(state, "src/A.sol", day=DAY1)

    assert action.to_dict() == {"type": "fileRead", "filePath": "src/A.sol"}
    entry = state.progress_history[0]
    assert (entry.files_read, entry.files_reviewed) == (1, 1)


def test_today_key_format() -> None:
    assert progress.today_key(date(2024, 1, 9)) == "2024-01-09"


def _state_with_files() -> RootState:
    def fn(name: str, start: int, end: int, **flags) -> FunctionRecord:
        return replace(FunctionRecord.candidate("/ws/A.sol", name, start, end), **flags)

    a = TrackedFile(
        "/ws/A.sol",
        "A.sol",
        [
            fn("f", 0, 9, read_count=1, is_reviewed=True),
            fn("g", 10, 14, read_count=1),
            fn("h", 20, 99, is_hidden=True),
        ],
    )
    b = TrackedFile("/ws/B.sol", "B.sol", [fn("k", 0, 4, read_count=1, is_reviewed=True)])
    hidden_only = TrackedFile("/ws/C.sol", "C.sol", [fn("x", 0, 1, is_hidden=True)])
    return RootState(files={a.file_path: a, b.file_path: b, hidden_only.file_path: hidden_only})


def test_current_totals_exclude_hidden_functions() -> None:
    totals = progress.current_totals(_state_with_files())

    assert totals.total_files == 2
    assert totals.total_functions == 3
    assert totals.total_read == 3
    assert totals.total_reviewed == 2
    assert totals.files_fully_read == 2
    assert totals.files_fully_reviewed == 1
    assert totals.total_lines == 10 + 5 + 5
    assert totals.lines_reviewed == 15


def test_report_sorts_days_descending_and_partitions_actions() -> None:
    state = _state_with_files()
    progress.record_function_read(state, "A.sol", "f", 10, day=DAY1)
    progress.record_function_read(state, "A.sol", "g", 5, day=DAY2)
    progress.record_file_read(state, "A.sol", day=DAY2)
    progress.record_function_reviewed(state, "A.sol", "f", 10, day=DAY2)
    state.progress_history.append(DailyProgressEntry(date="unknown", functions_read=1))

    report = progress.build_progress_report(state)

    assert [d.date for d in report.days] == ["2024-05-02", "2024-05-01", "unknown"]
    latest = report.days[0]
    assert [a.function_name for a in latest.actions_by_type[ProgressActionType.FUNCTION_READ]] == ["g"]
    assert len(latest.actions_by_type[ProgressActionType.FILE_READ]) == 1
    assert ProgressActionType.FILE_REVIEWED not in latest.actions_by_type

    assert report.all_time.functions_read == 3
    assert report.all_time.functions_reviewed == 1
    assert report.all_time.lines_read == 15
    assert report.all_time.files_read == 1
    assert report.totals.total_files == 2

    data = report.to_dict()
    assert data["totals"]["totalFunctions"] == 3
    assert "actions" not in data["allTime"]
    assert set(data["days"][0]["actions"]) == {"functionRead", "fileRead", "functionReviewed"}
