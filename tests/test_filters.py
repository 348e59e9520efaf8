from __future__ import annotations

from dataclasses import replace

from audittracker.core.filters import function_status, is_file_visible, matches, visible_files, visible_functions
from audittracker.core.models import FunctionFilters, FunctionRecord, FunctionStatus, FunctionTag, TrackedFile


def _fn(name: str, start: int, path: str = "/ws/A.sol", **flags) -> FunctionRecord:
    return replace(FunctionRecord.candidate(path, name, start, start + 4), **flags)


UNREAD = _fn("unread", 30)
READ = _fn("read", 20, read_count=1)
REVIEWED = _fn("reviewed", 10, read_count=1, is_reviewed=True)
ENTRY = _fn("entry", 40, is_entrypoint=True)
ADMIN = _fn("admin", 50, read_count=1, is_admin=True)
HIDDEN = _fn("hidden", 0, is_hidden=True, is_entrypoint=True)


def test_function_status() -> None:
    assert function_status(UNREAD) == FunctionStatus.UNREAD
    assert function_status(READ) == FunctionStatus.READ
    assert function_status(REVIEWED) == FunctionStatus.REVIEWED


def test_default_filters_match_everything() -> None:
    filters = FunctionFilters()
    assert all(matches(fn, filters) for fn in (UNREAD, READ, REVIEWED, ENTRY, ADMIN))


def test_empty_groups_match_everything() -> None:
    filters = FunctionFilters(statuses=[], tags=[])
    assert matches(UNREAD, filters)
    assert matches(REVIEWED, filters)


def test_status_and_tag_groups_combine_with_and() -> None:
    filters = FunctionFilters(statuses=[FunctionStatus.UNREAD], tags=[FunctionTag.ENTRYPOINT])
    assert matches(ENTRY, filters)
    assert not matches(UNREAD, filters)
    assert not matches(ADMIN, filters)


def test_tags_combine_with_or() -> None:
    filters = FunctionFilters(tags=[FunctionTag.ENTRYPOINT, FunctionTag.ADMIN])
    assert matches(ENTRY, filters)
    assert matches(ADMIN, filters)
    assert not matches(READ, filters)


def test_visible_functions_skip_hidden_and_sort_by_status_then_line() -> None:
    tracked = TrackedFile("/ws/A.sol", "A.sol", [REVIEWED, READ, UNREAD, HIDDEN, ENTRY, ADMIN])
    names = [fn.name for fn in visible_functions(tracked, FunctionFilters())]
    assert names == ["unread", "entry", "read", "admin", "reviewed"]


def test_hidden_functions_never_make_a_file_visible() -> None:
    only_hidden = TrackedFile("/ws/H.sol", "H.sol", [HIDDEN])
    assert not is_file_visible(only_hidden, FunctionFilters())
    assert not is_file_visible(only_hidden, FunctionFilters(tags=[FunctionTag.ENTRYPOINT]))


def test_visible_files_sorted_by_relative_path() -> None:
    b = TrackedFile("/ws/src/b.sol", "src/b.sol", [_fn("f", 1, "/ws/src/b.sol")])
    a = TrackedFile("/ws/src/a.sol", "src/a.sol", [_fn("g", 1, "/ws/src/a.sol", read_count=1)])
    empty = TrackedFile("/ws/src/c.sol", "src/c.sol", [])

    assert [f.relative_path for f in visible_files([b, empty, a], FunctionFilters())] == ["src/a.sol", "src/b.sol"]
    only_unread = FunctionFilters(statuses=[FunctionStatus.UNREAD])
    assert [f.relative_path for f in visible_files([b, empty, a], only_unread)] == ["src/b.sol"]
