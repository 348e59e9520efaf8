from __future__ import annotations

import json
import math

from audittracker.core.models import (
    DEFAULT_STATUSES,
    STATE_VERSION,
    FunctionStatus,
    FunctionTag,
    ProgressActionType,
    RootState,
)
from audittracker.core.normalize import normalize_state


def test_non_object_values_give_default_state() -> None:
    for raw in (None, 42, "state", [1, 2], True):
        state = normalize_state(raw)
        assert state.version == STATE_VERSION
        assert state.scope_paths == []
        assert state.files == {}
        assert state.function_filters.statuses == list(DEFAULT_STATUSES)


def test_path_lists_drop_bad_entries_and_duplicates() -> None:
    state = normalize_state(
        {"scopePaths": ["/a", "", 3, None, "/b", "/a"], "excludedPaths": "not-a-list"}
    )
    assert state.scope_paths == ["/a", "/b"]
    assert state.excluded_paths == []


def test_filters_drop_unknown_values_and_default_empty_statuses() -> None:
    state = normalize_state({"functionFilters": {"statuses": ["bogus"], "tags": ["admin", "nope", "admin"]}})
    assert state.function_filters.statuses == list(DEFAULT_STATUSES)
    assert state.function_filters.tags == [FunctionTag.ADMIN]

    state = normalize_state({"functionFilters": {"statuses": ["read", "reviewed"], "tags": []}})
    assert state.function_filters.statuses == [FunctionStatus.READ, FunctionStatus.REVIEWED]


def test_function_fields_fall_back_to_safe_defaults() -> None:
    raw = {
        "files": {
            "/ws/A.sol": {
                "functions": [
                    {"name": 7, "startLine": -4, "endLine": "x", "readCount": 5, "isReviewed": "yes"},
                    {"id": "keep", "name": "f", "startLine": 10, "endLine": 3, "readCount": -1, "isHidden": True},
                    {"id": "keep", "name": "dup", "startLine": 20, "endLine": 30},
                    "garbage",
                ]
            },
            "/ws/B.sol": "not an object",
        }
    }
    state = normalize_state(raw)

    assert list(state.files) == ["/ws/A.sol"]
    tracked = state.files["/ws/A.sol"]
    assert tracked.relative_path == "A.sol"
    assert tracked.file_path == "/ws/A.sol"

    first, second = tracked.functions
    assert first.name == "unknown"
    assert first.start_line == 0
    assert first.end_line == 0
    assert first.id == "/ws/A.sol#unknown#0"
    assert first.read_count == 1
    assert first.is_reviewed is False

    assert second.id == "keep"
    assert second.end_line == 10
    assert second.read_count == 0
    assert second.is_hidden is True


def test_file_path_always_matches_key() -> None:
    state = normalize_state(
        {"files": {"/ws/A.sol": {"filePath": "/elsewhere.sol", "relativePath": "src/A.sol", "functions": []}}}
    )
    assert state.files["/ws/A.sol"].file_path == "/ws/A.sol"
    assert state.files["/ws/A.sol"].relative_path == "src/A.sol"


def test_non_finite_numbers_are_treated_as_invalid() -> None:
    raw = {
        "version": math.inf,
        "lastModified": math.nan,
        "files": {"/ws/A.sol": {"functions": [{"name": "f", "startLine": math.nan, "endLine": math.inf}]}},
        "progressHistory": [{"date": "2024-05-01", "functionsRead": math.inf, "linesRead": 12.9}],
    }
    state = normalize_state(raw)
    assert state.version == STATE_VERSION
    assert state.last_modified > 0
    fn = state.files["/ws/A.sol"].functions[0]
    assert (fn.start_line, fn.end_line) == (0, 0)
    entry = state.progress_history[0]
    assert entry.functions_read == 0
    assert entry.lines_read == 12


def test_progress_entries_validate_actions_and_merge_dates() -> None:
    raw = {
        "progressHistory": [
            {
                "date": "2024-05-01",
                "functionsRead": 2,
                "linesRead": -5,
                "actions": [
                    {"type": "functionRead", "filePath": "src/A.sol", "functionName": "A.f", "lineCount": 4},
                    {"type": "teleport", "filePath": "src/A.sol"},
                    {"type": "fileRead", "filePath": 3, "functionName": 9, "lineCount": "x"},
                ],
            },
            {"date": 20240501, "functionsReviewed": 1},
            {"date": "2024-05-01", "functionsRead": 1, "actions": [{"type": "fileReviewed", "filePath": "src/A.sol"}]},
            "junk",
        ]
    }
    state = normalize_state(raw)

    assert [e.date for e in state.progress_history] == ["2024-05-01", "unknown"]
    merged = state.progress_history[0]
    assert merged.functions_read == 3
    assert merged.lines_read == 0
    assert [a.type for a in merged.actions] == [
        ProgressActionType.FUNCTION_READ,
        ProgressActionType.FILE_READ,
        ProgressActionType.FILE_REVIEWED,
    ]
    file_read = merged.actions[1]
    assert file_read.file_path == "unknown"
    assert file_read.function_name is None
    assert file_read.line_count is None
    assert "functionName" not in file_read.to_dict()


def test_normalization_is_idempotent() -> None:
    raw = {
        "version": 1,
        "scopePaths": ["/ws/src", "/ws/src"],
        "functionFilters": {"statuses": [], "tags": ["entrypoint"]},
        "files": {
            "/ws/src/A.sol": {
                "relativePath": "src/A.sol",
                "functions": [{"name": "A.f", "startLine": 3, "endLine": 9, "readCount": 1, "isReviewed": True}],
            }
        },
        "progressHistory": [{"date": "2024-05-01", "functionsRead": 1, "actions": [{"type": "functionRead", "filePath": "src/A.sol"}]}],
        "lastModified": 1714521600000,
    }
    once = normalize_state(raw)
    twice = normalize_state(json.loads(json.dumps(once.to_dict())))
    assert twice == once
    assert twice.to_dict() == once.to_dict()


def test_default_state_round_trips() -> None:
    state = RootState(last_modified=1)
    assert normalize_state(state.to_dict()) == state
